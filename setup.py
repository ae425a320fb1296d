# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for the Package Installer
"""

from setuptools import setup, find_packages

setup(
    name="package-installer",
    version="1.0.0",
    description="Registry-driven package installer with transactional directory swaps",
    author="Jason Cafarelli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "package_installer": ["data/languages/*.yaml"],
    },
    python_requires=">=3.11",
    install_requires=[
        "httpx>=0.25.0,<0.28",
        "pydantic>=2.6.0",
        "aiofiles>=23.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "package-installer=package_installer.cli:main",
        ],
    },
)
