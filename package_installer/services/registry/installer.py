# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Transactional Installer

Single responsibility: Replace one installed package directory with the
contents of an archive, keeping the previous version in quarantine until
the new one is in place.

Install attempt:
1. PreStage   - clear stale scratch dir for this archive (retried)
2. Extract    - unzip into scratch dir (never retried)
3. VersionGate- optional; skip when installed version >= archive version
4. Swap-Out   - rename destination into quarantine (retried)
5. Swap-In    - rename scratch dir to destination (never retried)
6. Cleanup    - delete quarantine (failure only logged)
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from package_installer.core.errors import (
    ArchiveNotFoundError,
    DegradedStateError,
    InstallerError,
    PartialMoveError,
    RetryExhaustedError,
    StageConflictError,
    SwapFailureError,
)
from package_installer.models.registry_models import (
    InstallOutcome,
    InstallResult,
    InstalledPackageProbe,
    read_manifest_field,
)
from package_installer.services.registry import fsops
from package_installer.services.registry.messages import MessageCatalog
from package_installer.services.registry.retry import RetryPolicy
from package_installer.services.registry.versions import compare_versions

logger = logging.getLogger(__name__)

SCRATCH_DIR = "unpacked"
QUARANTINE_DIR = "quarantine"


def move_aside(destination: Path, quarantine: Path) -> None:
    """Move destination into an emptied quarantine slot"""
    fsops.remove_path(quarantine)
    fsops.move_path(destination, quarantine)


def is_safe_component(name: Optional[str]) -> bool:
    """True if name can be used as a single directory name under the package tree"""
    if not name:
        return False
    return name not in (".", "..") and "/" not in name and "\\" not in name and "\0" not in name


class TransactionalInstaller:
    """Installs archives into the live package tree with swap-and-quarantine"""

    def __init__(
        self,
        packages_dir: Path,
        cache_dir: Path,
        retry_policy: Optional[RetryPolicy] = None,
        managed_marker: Optional[Path] = None,
        messages: Optional[MessageCatalog] = None
    ):
        """
        Initialize installer.

        Args:
            packages_dir: Live package tree; each package is one subdirectory
            cache_dir: Process-local cache root (scratch and quarantine live here)
            retry_policy: Policy for every filesystem mutation that may hit a lock
            managed_marker: File whose presence means an external process owns the tree
            messages: Catalog for localized log text
        """
        self.packages_dir = Path(packages_dir)
        self.cache_dir = Path(cache_dir)
        self.scratch_root = self.cache_dir / SCRATCH_DIR
        self.quarantine_root = self.cache_dir / QUARANTINE_DIR
        self.retry_policy = retry_policy or RetryPolicy()
        self.managed_marker = Path(managed_marker) if managed_marker else None
        self._ = messages or MessageCatalog()

    @property
    def managed(self) -> bool:
        """Whether the managed-environment marker is present right now"""
        return self.managed_marker is not None and self.managed_marker.exists()

    def destination_for(self, package_name: str) -> Path:
        return self.packages_dir / package_name

    async def _clear(self, path: Path, description: str):
        await self.retry_policy.run(fsops.remove_path, path, description=description)

    async def stage_local_archive(self, archive: Path) -> Path:
        """
        Move a locally dropped archive into the cache root.

        In a managed environment the archive is copied instead, since the
        drop folder belongs to the external process.

        Returns:
            Path of the staged archive

        Raises:
            StageConflictError: If a stale cached copy or the move keeps failing
        """
        archive = Path(archive)
        staged = self.cache_dir / archive.name
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        try:
            await self._clear(staged, self._("Delete {path}", path=staged))
        except RetryExhaustedError as e:
            raise StageConflictError(
                self._("Failed to delete {path}, retry count exceeded {count}",
                       path=staged, count=e.attempts),
                path=staged
            ) from e

        try:
            if self.managed:
                await self.retry_policy.run(
                    fsops.copy_file, archive, staged,
                    description=self._("Copy {path}", path=archive)
                )
            else:
                await self.retry_policy.run(
                    fsops.move_path, archive, staged,
                    description=self._("Move {path}", path=archive)
                )
        except RetryExhaustedError as e:
            raise StageConflictError(
                self._("Failed to move {path}, retry count exceeded {count}",
                       path=archive, count=e.attempts),
                path=archive
            ) from e

        return staged

    async def install_archive(
        self,
        archive: Path,
        package_name: Optional[str] = None,
        check_version: bool = False
    ) -> InstallResult:
        """
        Install an archive as one package directory.

        Args:
            archive: Zip file to install
            package_name: Destination directory name; defaults to the
                archive manifest's name, then the archive file stem
            check_version: Skip when the installed version is not older
                than the archive's version

        Returns:
            InstallResult (installed, up_to_date or managed_skip)

        Raises:
            ArchiveNotFoundError: archive does not exist
            StageConflictError: stale scratch dir could not be cleared
            ExtractFailureError: archive is corrupt or unsafe
            SwapFailureError: current installation could not be moved aside
            DegradedStateError: new content could not be moved in after the old
                was moved out; destination is absent or incomplete
        """
        archive = Path(archive)
        if not archive.is_file():
            raise ArchiveNotFoundError(archive)
        if package_name is not None and not is_safe_component(package_name):
            raise InstallerError(f"Invalid package name: {package_name!r}")

        key = archive.stem
        scratch = self.scratch_root / key

        # PreStage
        self.scratch_root.mkdir(parents=True, exist_ok=True)
        try:
            await self._clear(scratch, self._("Delete {path}", path=scratch))
        except RetryExhaustedError as e:
            raise StageConflictError(
                self._("Failed to delete {path}, retry count exceeded {count}",
                       path=scratch, count=e.attempts),
                path=scratch
            ) from e

        # Extract
        await asyncio.to_thread(fsops.extract_zip, archive, scratch)

        archive_version = read_manifest_field(scratch, "version")
        name = package_name or self._name_from_manifest(scratch) or key
        destination = self.destination_for(name)
        previous = InstalledPackageProbe.read(destination)

        result = InstallResult(
            package=name,
            archive=archive,
            destination=destination,
            outcome=InstallOutcome.INSTALLED,
            installed_version=archive_version,
            previous_version=previous.version
        )

        # VersionGate
        if check_version and archive_version and previous.installed:
            if compare_versions(previous.version, archive_version) >= 0:
                logger.info(self._(
                    "Local package {name} version {local} is not older than archive version {version}",
                    name=name, local=previous.version, version=archive_version
                ))
                await self._discard_scratch(scratch)
                return result.model_copy(update={
                    "outcome": InstallOutcome.UP_TO_DATE,
                    "installed_version": previous.version
                })

        had_destination = destination.exists()

        if had_destination and self.managed:
            logger.warning(self._("Managed environment detected, skip install {name}", name=name))
            await self._discard_scratch(scratch)
            return result.model_copy(update={
                "outcome": InstallOutcome.MANAGED_SKIP,
                "installed_version": previous.version
            })

        quarantine = self.quarantine_root / name

        # Swap-Out
        if had_destination:
            await self._swap_out(destination, quarantine)

        # Swap-In
        self.packages_dir.mkdir(parents=True, exist_ok=True)
        try:
            await asyncio.to_thread(fsops.move_path, scratch, destination)
        except PartialMoveError as e:
            # destination is complete, only the scratch copy is left behind
            logger.warning(self._("Failed to delete {path}: {error}", path=scratch, error=e))
        except OSError as e:
            if had_destination:
                error = DegradedStateError(destination, quarantine, cause=e)
                logger.critical(self._(
                    "Install of {name} left {destination} absent; previous version is in {quarantine}",
                    name=name, destination=destination, quarantine=quarantine
                ))
                raise error from e
            raise SwapFailureError(
                self._("Failed to move {path} to {destination}: {error}",
                       path=scratch, destination=destination, error=e),
                destination=destination
            ) from e

        # Cleanup
        if had_destination:
            try:
                await self._clear(quarantine, self._("Delete {path}", path=quarantine))
            except (RetryExhaustedError, OSError) as e:
                logger.warning(self._(
                    "Failed to delete quarantined version {path}: {error}", path=quarantine, error=e
                ))
                result = result.model_copy(update={"quarantine_path": quarantine})

        logger.info(self._(
            "Installed {name} {version} to {destination}",
            name=name, version=archive_version or "?", destination=destination
        ))
        return result

    async def _swap_out(self, destination: Path, quarantine: Path):
        self.quarantine_root.mkdir(parents=True, exist_ok=True)
        try:
            await self.retry_policy.run(
                move_aside, destination, quarantine,
                description=self._("Move {path}", path=destination)
            )
        except PartialMoveError as e:
            logger.critical(self._(
                "Install of {name} left {destination} absent; previous version is in {quarantine}",
                name=destination.name, destination=destination, quarantine=quarantine
            ))
            raise DegradedStateError(destination, quarantine, cause=e) from e
        except RetryExhaustedError as e:
            raise SwapFailureError(
                self._("Failed to move {path} aside, retry count exceeded {count}",
                       path=destination, count=e.attempts),
                destination=destination
            ) from e

    async def _discard_scratch(self, scratch: Path):
        try:
            await self._clear(scratch, self._("Delete {path}", path=scratch))
        except RetryExhaustedError as e:
            logger.warning(f"Leaving scratch directory {scratch}: {e}")

    def _name_from_manifest(self, scratch: Path) -> Optional[str]:
        name = read_manifest_field(scratch, "name")
        if name and not is_safe_component(name):
            logger.warning(f"Ignoring unsafe package name {name!r} in {scratch}")
            return None
        return name
