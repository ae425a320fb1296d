# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Core utilities shared across the package installer.

This package contains:
- config: Configuration loading
- errors: Custom exceptions
- logging: Structured logging
"""

from package_installer.core.errors import InstallerError, NotFoundError, ConfigurationError
from package_installer.core.logging import get_logger, configure_logging

__all__ = [
    "InstallerError",
    "NotFoundError",
    "ConfigurationError",
    "get_logger",
    "configure_logging",
]
