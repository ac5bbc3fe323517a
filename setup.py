#!/usr/bin/env python3
"""
Setup script for intune-packager.

This file is primarily for backward compatibility.
The project is configured via pyproject.toml using hatchling.
"""

import codecs
import os
import re
from setuptools import setup, find_packages


def read(rel_path):
    """Read file content."""
    here = os.path.abspath(os.path.dirname(__file__))
    with codecs.open(os.path.join(here, rel_path), 'r', 'utf-8') as fp:
        return fp.read()


def find_version(rel_path):
    """Extract version from the version module."""
    version_content = read(rel_path)
    version_match = re.search(
        r'^__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
        version_content,
        re.MULTILINE
    )
    if version_match:
        return version_match.group(1)
    raise RuntimeError("Unable to find version string.")


if __name__ == "__main__":
    setup(
        name="intune-packager",
        version=find_version("intune_packager/__version__.py"),
        packages=find_packages(exclude=["tests*", "docs*", "examples*", "scripts*"]),
        python_requires=">=3.9",
        install_requires=[
            "click>=8.0",
            "rich>=12.0",
            "pyyaml>=6.0",
            "aiofiles>=23.1",
            "packaging>=21.0",
            "jsonschema>=4.0",
            "httpx>=0.24",
            "cryptography>=41.0",
        ],
        entry_points={
            "console_scripts": ["intune-packager=intune_packager.cli.main:main"],
        },
    )
