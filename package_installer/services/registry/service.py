# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package Installer Service - Orchestration

Sequences one run:
1. install archives dropped in the local zip folder
2. install requested packages from the registry
3. purge the cache root
4. delete configured folders (self cleanup)

A failure in one package is recorded and the run moves on to the next.
"""

import logging
import uuid
from datetime import datetime, UTC
from pathlib import Path
from typing import List, Optional

from package_installer.core.config import Config
from package_installer.core.errors import (
    DegradedStateError,
    InstallerError,
    NotFoundError,
    RetryExhaustedError,
)
from package_installer.core.logging import log_event
from package_installer.models.registry_models import (
    InstallOutcome,
    InstallRequest,
    InstalledPackageProbe,
    PackageResult,
    PackageSource,
    RegistryDocument,
    RunReport,
)
from package_installer.services.registry import fsops
from package_installer.services.registry.checksum import verify_archive
from package_installer.services.registry.fetcher import RegistryFetcher
from package_installer.services.registry.installer import TransactionalInstaller
from package_installer.services.registry.messages import MessageCatalog
from package_installer.services.registry.transactions import TransactionLogger
from package_installer.services.registry.versions import compare_versions, resolve_request

logger = logging.getLogger(__name__)


def split_folder(folder: str) -> List[str]:
    """Split a configured folder on either path separator"""
    return [part for part in folder.replace("\\", "/").split("/") if part]


class PackageInstallerService:
    """
    Runs the install pipeline for one configuration.

    Composes:
    - RegistryFetcher: registry document and archive downloads
    - TransactionalInstaller: staged swap into the package tree
    - TransactionLogger: optional JSONL record of every package result
    """

    def __init__(
        self,
        config: Config,
        messages: Optional[MessageCatalog] = None,
        fetcher: Optional[RegistryFetcher] = None,
        installer: Optional[TransactionalInstaller] = None,
        transaction_logger: Optional[TransactionLogger] = None
    ):
        """
        Initialize the service.

        Args:
            config: Installer configuration
            messages: Catalog for localized log text
            fetcher: Optional fetcher (built from config if omitted)
            installer: Optional installer (built from config if omitted)
            transaction_logger: Optional transaction log (built from config if omitted)
        """
        self.config = config
        self._ = messages or MessageCatalog()
        self.retry_policy = config.retry_policy()

        self.fetcher = fetcher or RegistryFetcher(
            config.cache_path,
            timeout=config.http_timeout
        )
        self.installer = installer or TransactionalInstaller(
            packages_dir=config.packages_path,
            cache_dir=config.cache_path,
            retry_policy=self.retry_policy,
            managed_marker=config.managed_marker_path,
            messages=self._
        )
        if transaction_logger is None and config.transactions_log_path:
            transaction_logger = TransactionLogger(config.transactions_log_path)
        self.transaction_logger = transaction_logger

    @property
    def managed(self) -> bool:
        return self.config.managed_marker_path.exists()

    async def close(self):
        await self.fetcher.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _record(self, report: RunReport, result: PackageResult):
        report.results.append(result)
        if self.transaction_logger:
            try:
                self.transaction_logger.log(result, report.run_id)
            except OSError as e:
                logger.error(f"Failed to write transaction log: {e}")

    @staticmethod
    def _failure(
        package: str,
        source: PackageSource,
        error: Exception,
        **fields
    ) -> PackageResult:
        outcome = InstallOutcome.DEGRADED if isinstance(error, DegradedStateError) else InstallOutcome.FAILED
        message = error.message if isinstance(error, InstallerError) else str(error)
        return PackageResult(
            package=package,
            source=source,
            outcome=outcome,
            error=message,
            error_type=type(error).__name__,
            **fields
        )

    async def run(self) -> RunReport:
        """
        Execute one full run.

        Returns:
            RunReport with one PackageResult per processed package
        """
        report = RunReport(run_id=f"run-{uuid.uuid4().hex[:12]}")
        logger.info(f"Starting package install run {report.run_id}")

        if self.config.install_zip_packages:
            await self.install_zip_packages(report)

        if self.config.install_registry_packages and self.config.registry_url.strip():
            await self.install_registry_packages(report)

        if report.degraded:
            logger.error(self._(
                "Keeping cache {path}: it holds quarantined packages that need manual recovery",
                path=self.config.cache_path
            ))
        else:
            report.cache_purged = await self.purge_cache()

        if self.managed:
            logger.warning(self._("Managed environment detected, skip deleting folders"))
        elif self.config.delete_self:
            report.deleted_folders = await self.delete_folders()

        report.finished_at = datetime.now(UTC)
        log_event(
            logger,
            f"Run {report.run_id} finished: {len(report.succeeded)} ok, "
            f"{len(report.failed)} failed, {len(report.degraded)} degraded",
            level="ERROR" if report.degraded else "INFO",
            run_id=report.run_id,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            degraded=len(report.degraded),
            cache_purged=report.cache_purged
        )
        return report

    # -------------------------------------------------------------------------
    # Local zip installs
    # -------------------------------------------------------------------------

    async def install_zip_packages(self, report: RunReport):
        zip_dir = self.config.zip_packages_path
        if not zip_dir.is_dir():
            logger.debug(f"No zip package folder at {zip_dir}")
            return

        archives = sorted(p for p in zip_dir.glob("*.zip") if p.is_file())
        for archive in archives:
            self._record(report, await self.install_zip_package(archive))

    async def install_zip_package(self, archive: Path) -> PackageResult:
        """Stage one local archive and install it. Never raises."""
        logger.info(self._("Install zip package {path}", path=archive))
        check_version = not self.config.force_install_zip_packages

        try:
            staged = await self.installer.stage_local_archive(archive)
            result = await self.installer.install_archive(staged, check_version=check_version)
        except (InstallerError, OSError) as e:
            logger.error(self._("Failed to install zip package {path}: {error}", path=archive, error=e))
            return self._failure(archive.stem, PackageSource.ZIP, e)

        logger.info(self._("Install zip package {path} success", path=archive))
        return PackageResult(
            package=result.package,
            source=PackageSource.ZIP,
            outcome=result.outcome,
            resolved_version=result.installed_version,
            installed_version=result.installed_version
        )

    # -------------------------------------------------------------------------
    # Registry installs
    # -------------------------------------------------------------------------

    async def install_registry_packages(self, report: RunReport):
        url = self.config.registry_url.strip()
        try:
            registry = await self.fetcher.fetch_registry(url)
        except InstallerError as e:
            logger.error(self._("Failed to get registry {url}: {error}", url=url, error=e))
            return

        for request in self.config.packages:
            if not request.name.strip():
                continue
            self._record(report, await self.install_registry_package(registry, request))

    async def install_registry_package(
        self,
        registry: RegistryDocument,
        request: InstallRequest
    ) -> PackageResult:
        """Resolve, fetch and install one requested package. Never raises."""
        name = request.name.strip()
        fields = {"requested_version": request.version}

        try:
            entry = registry.get_package(name)
        except NotFoundError as e:
            logger.error(self._("Package {name} not found", name=name))
            return self._failure(name, PackageSource.REGISTRY, e, **fields)

        resolution = resolve_request(entry, request.version)
        if resolution is None:
            logger.error(self._("Package {name} has no versions", name=name))
            return PackageResult(
                package=name,
                source=PackageSource.REGISTRY,
                outcome=InstallOutcome.FAILED,
                error=f"Package {name} has no versions",
                error_type="PackageNotFoundError",
                **fields
            )

        target = resolution.package
        fields.update(resolved_version=target.version, fallback_from=resolution.fallback_from)
        if resolution.fell_back:
            logger.warning(self._(
                "Package {name} version {version} not found, use latest version {latest}",
                name=name, version=resolution.fallback_from, latest=target.version
            ))

        installed = InstalledPackageProbe.read(self.installer.destination_for(name))
        if (
            installed.installed
            and not request.force_install
            and compare_versions(installed.version, target.version) >= 0
        ):
            logger.info(self._(
                "Local package {name} version {local} is not older than {version}",
                name=name, local=installed.version, version=target.version
            ))
            return PackageResult(
                package=name,
                source=PackageSource.REGISTRY,
                outcome=InstallOutcome.UP_TO_DATE,
                installed_version=installed.version,
                **fields
            )

        try:
            archive = await self.fetcher.fetch_archive(target.url)
            if self.config.verify_checksums:
                verify_archive(archive, target.zip_sha256)
            result = await self.installer.install_archive(archive, package_name=name, check_version=False)
        except (InstallerError, OSError) as e:
            logger.error(self._(
                "Failed to install package {name} version {version}: {error}",
                name=name, version=target.version, error=e
            ))
            return self._failure(name, PackageSource.REGISTRY, e, **fields)

        logger.info(self._(
            "Install package {name} version {version} success", name=name, version=target.version
        ))
        return PackageResult(
            package=name,
            source=PackageSource.REGISTRY,
            outcome=result.outcome,
            installed_version=result.installed_version,
            **fields
        )

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def purge_cache(self) -> bool:
        """Delete the cache root. Returns True when it is gone."""
        cache = self.config.cache_path
        try:
            await self.retry_policy.run(fsops.remove_path, cache, description=self._("Delete {path}", path=cache))
        except (RetryExhaustedError, OSError) as e:
            logger.error(self._("Failed to delete {path}: {error}", path=cache, error=e))
            return False
        return True

    def _folder_target(self, folder: str) -> Optional[Path]:
        parts = split_folder(folder)
        if len(parts) <= 1:
            logger.warning(f"Refusing to delete top-level folder {folder!r}")
            return None

        base = Path(self.config.base_dir).resolve()
        target = (base / Path(*parts)).resolve()
        if target == base or not fsops.is_path_within_base(target, base):
            logger.warning(f"Refusing to delete {folder!r}: outside {base}")
            return None
        return target

    async def delete_folders(self) -> List[str]:
        """Delete configured folders. Returns the folders that were removed."""
        deleted = []
        for folder in self.config.delete_folders:
            if not folder or not folder.strip():
                continue
            target = self._folder_target(folder)
            if target is None or not target.is_dir():
                continue
            try:
                await self.retry_policy.run(
                    fsops.remove_path, target, description=self._("Delete {path}", path=target)
                )
            except (RetryExhaustedError, OSError) as e:
                logger.error(self._("Failed to delete {path}: {error}", path=target, error=e))
                continue
            logger.info(self._("Deleted {path}", path=target))
            deleted.append(folder)
        return deleted
