#!/usr/bin/env python3
"""
Setup configuration for spot-library
Duplicate detection and lossless-upgrade matching for local music libraries
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "spotipy>=2.22.1",
    "mutagen>=1.47.0",
    "rapidfuzz>=3.5.0",
    "click>=8.1.7",
    "rich-click>=1.7.0",
    "rich>=13.7.0",
    "pyyaml>=6.0.1",
    "requests>=2.31.0",
    "tqdm>=4.66.1",
]

setup(
    name="spot-library",
    version="0.1.0",
    author="spot-library contributors",
    description="Find duplicate tracks and lossless upgrades in a local music library",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "test": [
            "pytest>=7.4.3",
        ],
        "dev": [
            "pytest>=7.4.3",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "spotlib=spot_library.cli:main",
        ],
    },
    keywords="music library duplicates lossless flac spotify cli",
)
