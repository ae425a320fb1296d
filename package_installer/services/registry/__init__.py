# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Registry Module - Resolve, Fetch, Swap

Modular install pipeline:
- Each module does one thing well
- Modules compose into PackageInstallerService
"""

from .versions import compare_versions, select_latest, select_by_request, resolve_request, Resolution
from .retry import RetryPolicy
from .fetcher import RegistryFetcher
from .installer import TransactionalInstaller
from .messages import MessageCatalog
from .transactions import TransactionLogger
from .service import PackageInstallerService

__all__ = [
    "compare_versions",
    "select_latest",
    "select_by_request",
    "resolve_request",
    "Resolution",
    "RetryPolicy",
    "RegistryFetcher",
    "TransactionalInstaller",
    "MessageCatalog",
    "TransactionLogger",
    "PackageInstallerService",
]
