# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Registry Data Models

Defines data structures for the package registry (registry document,
package entries, versions), install requests, installed-package probes,
and per-run result reporting.
"""

import json
import logging
from typing import List, Dict, Optional, Any, Union
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from package_installer.core.errors import InvalidRegistryError, PackageNotFoundError

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"


class InstallOutcome(str, Enum):
    """Outcome of one install attempt"""
    INSTALLED = "installed"
    UP_TO_DATE = "up_to_date"
    MANAGED_SKIP = "managed_skip"
    FAILED = "failed"
    DEGRADED = "degraded"


class PackageSource(str, Enum):
    """Where a package in a run came from"""
    ZIP = "zip"
    REGISTRY = "registry"


class RegistryModel(BaseModel):
    """
    Base for models read from a registry document.

    Published registries are hand-edited: numbers in text fields become
    strings and null falls back to the field default, so one sloppy entry
    cannot reject the whole document.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name:
            field = cls.model_fields[info.field_name]
            if not field.is_required():
                return field.get_default(call_default_factory=True)
        return value


class VersionSample(RegistryModel):
    """Sample shipped with a package version (passed through unchanged)"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    display_name: str = Field("", alias="displayName")
    description: str = ""
    path: str = ""


class VersionAuthor(RegistryModel):
    """Author information"""
    model_config = ConfigDict(extra="allow")

    name: str = ""
    email: str = ""
    url: str = ""


class PackageVersion(RegistryModel):
    """
    One published version of a package.

    Wire names are camelCase; both spellings are accepted on input.
    zip_sha256 is only checked when checksum verification is enabled.
    legacy_folders maps an old relative path to the token identifying it.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        json_schema_extra={
            "example": {
                "name": "com.example.foo",
                "displayName": "Foo",
                "version": "1.2.0",
                "url": "https://example.com/com.example.foo-1.2.0.zip",
                "zipSHA256": "",
                "vpmDependencies": {"com.example.bar": "^1.0.0"}
            }
        }
    )

    name: str = ""
    display_name: str = Field("", alias="displayName")
    version: str = ""
    unity: str = ""
    description: str = ""
    documentation_url: str = Field("", alias="documentationUrl")
    changelog_url: str = Field("", alias="changelogUrl")
    licenses_url: str = Field("", alias="licensesUrl")
    license: str = ""
    keywords: List[str] = Field(default_factory=list)
    dependencies: Dict[str, str] = Field(default_factory=dict)
    vpm_dependencies: Dict[str, str] = Field(default_factory=dict, alias="vpmDependencies")
    samples: List[VersionSample] = Field(default_factory=list)
    author: Optional[Union[VersionAuthor, str]] = None
    url: str = ""
    zip_sha256: str = Field("", alias="zipSHA256")
    repo: str = ""
    legacy_folders: Dict[str, str] = Field(default_factory=dict, alias="legacyFolders")


class PackageEntry(RegistryModel):
    """All published versions of one package, keyed by version string"""
    model_config = ConfigDict(extra="allow")

    versions: Dict[str, PackageVersion] = Field(default_factory=dict)


class RegistryDocument(RegistryModel):
    """Registry document as served by the registry URL"""
    model_config = ConfigDict(extra="allow")

    name: str = ""
    author: str = ""
    id: str = ""
    url: str = ""
    packages: Dict[str, PackageEntry] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Any) -> "RegistryDocument":
        """
        Deserialize a decoded registry payload.

        Args:
            data: Decoded JSON value

        Returns:
            Registry document

        Raises:
            InvalidRegistryError: If the payload is not a registry document
        """
        if not isinstance(data, dict):
            raise InvalidRegistryError(
                f"Registry payload must be an object, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidRegistryError(
                f"Invalid registry payload: {e.error_count()} validation errors",
                details={"errors": e.errors(include_url=False)}
            ) from e

    def get_package(self, name: str) -> PackageEntry:
        """
        Look up a package entry by exact (case-sensitive) name.

        Raises:
            PackageNotFoundError: If the registry has no such package
        """
        entry = self.packages.get(name)
        if entry is None:
            raise PackageNotFoundError(name)
        return entry


class InstallRequest(BaseModel):
    """
    A package the caller wants installed.

    version is an exact version, "latest", empty, or a "^"-prefixed range
    marker (treated as "latest").
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    version: str = "latest"
    force_install: bool = Field(False, alias="forceInstall")


class InstalledPackageProbe(BaseModel):
    """Currently installed version of a package directory, read from its manifest"""
    path: Path
    version: Optional[str] = None

    @property
    def installed(self) -> bool:
        return self.version is not None

    @classmethod
    def read(cls, directory: Path) -> "InstalledPackageProbe":
        """Read the manifest in directory. Never cached."""
        return cls(path=directory, version=read_manifest_field(directory, "version"))


def read_manifest(directory: Path) -> Optional[Dict[str, Any]]:
    """
    Read package.json from a package directory.

    Returns:
        Manifest dict, or None if missing or unreadable
    """
    manifest_file = Path(directory) / MANIFEST_FILE
    if not manifest_file.is_file():
        return None
    try:
        data = json.loads(manifest_file.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read manifest {manifest_file}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Manifest {manifest_file} is not a JSON object")
        return None
    return data


def read_manifest_field(directory: Path, field_name: str) -> Optional[str]:
    """Return a non-blank string field from package.json, or None"""
    manifest = read_manifest(directory)
    if manifest is None:
        return None
    value = manifest.get(field_name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class InstallResult(BaseModel):
    """Result of one installer invocation"""
    package: str
    archive: Path
    destination: Path
    outcome: InstallOutcome
    installed_version: Optional[str] = None
    previous_version: Optional[str] = None
    quarantine_path: Optional[Path] = None


class PackageResult(BaseModel):
    """Per-package record in a run report"""
    package: str
    source: PackageSource
    outcome: InstallOutcome
    requested_version: Optional[str] = None
    resolved_version: Optional[str] = None
    fallback_from: Optional[str] = None
    installed_version: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome not in (InstallOutcome.FAILED, InstallOutcome.DEGRADED)


class RunReport(BaseModel):
    """Aggregate result of one orchestration run"""
    run_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None
    results: List[PackageResult] = Field(default_factory=list)
    cache_purged: bool = False
    deleted_folders: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[PackageResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[PackageResult]:
        return [r for r in self.results if r.outcome == InstallOutcome.FAILED]

    @property
    def degraded(self) -> List[PackageResult]:
        return [r for r in self.results if r.outcome == InstallOutcome.DEGRADED]

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)
