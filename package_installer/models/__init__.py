# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""Data models for registry documents, install requests and run reports."""

from package_installer.models.registry_models import (
    InstallOutcome,
    InstallRequest,
    InstallResult,
    InstalledPackageProbe,
    PackageEntry,
    PackageResult,
    PackageSource,
    PackageVersion,
    RegistryDocument,
    RunReport,
    VersionAuthor,
    VersionSample,
)

__all__ = [
    "InstallOutcome",
    "InstallRequest",
    "InstallResult",
    "InstalledPackageProbe",
    "PackageEntry",
    "PackageResult",
    "PackageSource",
    "PackageVersion",
    "RegistryDocument",
    "RunReport",
    "VersionAuthor",
    "VersionSample",
]
