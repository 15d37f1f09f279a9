#!/usr/bin/env python3
"""
Setup configuration for tar.gz Directory Streaming.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the contents of README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

# Read requirements from requirements.txt
requirements = []
if (this_directory / "requirements.txt").exists():
    requirements = (this_directory / "requirements.txt").read_text().strip().split('\n')
    requirements = [req.strip() for req in requirements if req.strip() and not req.startswith('#')]

setup(
    name="tar-gz-stream",
    version="1.0.0",
    author="Project Think",
    author_email="",
    description="Stream a directory tree as a tar.gz archive through a bounded pipe",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['archiver*']),
    py_modules=[
        'tar_gz_stream',
        'stream_archive',
        'stream_configs',
        'stream_errors',
        'stream_monitoring',
        'security_validation',
        'base_classes',
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: System :: Archiving :: Compression",
        "Topic :: System :: Archiving :: Backup",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: POSIX",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov",
            "pytest-asyncio",
            "black",
            "flake8",
            "mypy",
        ],
        "test": [
            "pytest>=7.0",
            "pytest-cov",
            "pytest-asyncio",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "stream-archive=stream_archive:main",
        ],
    },
    keywords=[
        "tar",
        "gzip",
        "streaming",
        "archive",
        "backup",
        "pipe",
    ],
)
