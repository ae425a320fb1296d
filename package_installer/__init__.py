# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package Installer

Resolves package versions against a registry, downloads archives and swaps
them into a package tree, plus installs archives dropped into a local folder.
"""

__version__ = "1.0.0"
