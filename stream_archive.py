#!/usr/bin/env python3
"""
Command line consumer for the tar.gz directory stream.
"""

import argparse
import hashlib
import logging
import sys
from pathlib import Path

try:
    from tqdm import tqdm
    TQDM_AVAILABLE = True
except ImportError:
    TQDM_AVAILABLE = False

from stream_configs import (
    DEFAULT_BUFFER_SIZE, DEFAULT_CHANNEL_CAPACITY, UNREADABLE_RAISE, UNREADABLE_SKIP,
    StreamOptions
)
from stream_errors import ArchiveStreamError
from tar_gz_stream import TarGzStream

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Stream a directory as a tar.gz archive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stream-archive /data -o data.tar.gz          # Archive to a file
  stream-archive /data | aws s3 cp - s3://b/k  # Archive to stdout
  stream-archive -q --progress --checksum /data -o data.tar.gz
        """
    )

    parser.add_argument('path', help='Directory to archive')
    parser.add_argument('-o', '--output', default='-',
                        help='Output file (default: stdout)')
    parser.add_argument('--buffer-size', type=int, default=DEFAULT_BUFFER_SIZE,
                        help='Write buffer size in bytes (default: 1MB)')
    parser.add_argument('--channel-capacity', type=int, default=DEFAULT_CHANNEL_CAPACITY,
                        help='Pipe capacity in bytes (default: 1MB)')
    parser.add_argument('--compression-level', type=int, default=6,
                        help='gzip compression level 0-9 (default: 6)')
    parser.add_argument('--sort', action='store_true',
                        help='Archive siblings in sorted order')
    parser.add_argument('--fail-on-unreadable', action='store_true',
                        help='Abort when a directory cannot be listed')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Do not print one line per archived node')
    parser.add_argument('--progress', action='store_true',
                        help='Show a progress bar of compressed bytes')
    parser.add_argument('--checksum', action='store_true',
                        help='Print the SHA-256 of the produced stream')
    parser.add_argument('--log-level', default='WARNING',
                        help='Logging level (default: WARNING)')

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    to_stdout = args.output == '-'
    # Progress lines must not mix with archive bytes on stdout
    report_stream = sys.stderr if to_stdout else sys.stdout

    try:
        options = StreamOptions(
            buffer_size=args.buffer_size,
            channel_capacity=args.channel_capacity,
            compression_level=args.compression_level,
            sort_children=args.sort,
            unreadable_directory=UNREADABLE_RAISE if args.fail_on_unreadable else UNREADABLE_SKIP,
            verbose=not args.quiet,
        )
    except ValueError as e:
        print(f"Invalid option: {e}", file=sys.stderr)
        return 2

    stream = TarGzStream(args.path, options, output=report_stream)
    digest = hashlib.sha256() if args.checksum else None
    progress = None
    if args.progress:
        if TQDM_AVAILABLE:
            progress = tqdm(desc="Streaming", unit='B', unit_scale=True, file=sys.stderr)
        else:
            logger.info("Install 'tqdm' for progress bars: pip install tqdm")

    def on_chunk(chunk: bytes) -> None:
        if digest is not None:
            digest.update(chunk)
        if progress is not None:
            progress.update(len(chunk))

    try:
        output = sys.stdout.buffer if to_stdout else open(Path(args.output), 'wb')
    except OSError as e:
        print(f"Cannot open output: {e}", file=sys.stderr)
        return 1

    try:
        stats = stream.write_to(output, on_chunk=on_chunk)
        output.flush()
    except (ArchiveStreamError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 1
    finally:
        if progress is not None:
            progress.close()
        if not to_stdout:
            output.close()

    print(f"Archived {stats.entries} entries ({stats.skipped} skipped), "
          f"{stats.payload_bytes:,} bytes -> {stats.compressed_bytes:,} bytes",
          file=sys.stderr)
    if digest is not None:
        print(f"sha256:{digest.hexdigest()}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
