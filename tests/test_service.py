# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tests for PackageInstallerService: full runs against a mocked registry.
"""

import errno
import hashlib
import shutil
from pathlib import Path

import httpx
import pytest

from package_installer.core.config import Config
from package_installer.models.registry_models import InstallOutcome, InstallRequest, PackageSource
from package_installer.services.registry import fsops
from package_installer.services.registry.fetcher import RegistryFetcher
from package_installer.services.registry.service import PackageInstallerService, split_folder
from package_installer.services.registry.transactions import TransactionLogger

from conftest import install_package_dir, make_package_zip, manifest_version

NAME = "com.example.foo"
REGISTRY_URL = "https://example.com/index.json"


class FakeRegistry:
    """Serves a registry document and its archives through httpx.MockTransport"""

    def __init__(self, tmp_path: Path, versions=("1.0.0", "1.2.0")):
        self.archives = {}
        self.downloads = []
        self.registry_status = 200
        entries = {}
        for version in versions:
            filename = f"{NAME}-{version}.zip"
            data = make_package_zip(tmp_path / "served" / filename, NAME, version).read_bytes()
            self.archives[f"/files/{filename}"] = data
            entries[version] = {
                "name": NAME,
                "version": version,
                "url": f"https://example.com/files/{filename}",
                "zipSHA256": hashlib.sha256(data).hexdigest(),
            }
        self.document = {"name": "Example", "packages": {NAME: {"versions": entries}}}

    def handler(self, request):
        if request.url.path == "/index.json":
            if self.registry_status != 200:
                return httpx.Response(self.registry_status)
            return httpx.Response(200, json=self.document)
        if request.url.path in self.archives:
            self.downloads.append(request.url.path)
            return httpx.Response(200, content=self.archives[request.url.path])
        return httpx.Response(404)


@pytest.fixture
def registry(tmp_path):
    return FakeRegistry(tmp_path)


def make_service(registry, base_dir, **overrides):
    values = dict(
        base_dir=base_dir,
        registry_url=REGISTRY_URL,
        packages=(InstallRequest(name=NAME, version="latest"),),
        retry_delay=0,
    )
    values.update(overrides)
    config = Config(**values)
    client = httpx.AsyncClient(transport=httpx.MockTransport(registry.handler))
    fetcher = RegistryFetcher(config.cache_path, client=client)
    return PackageInstallerService(config, fetcher=fetcher), client


async def run(service, client):
    async with client:
        async with service:
            return await service.run()


class TestRegistryInstalls:
    """Registry pass of a run"""

    @pytest.mark.asyncio
    async def test_installs_latest_when_absent(self, registry, project_dir, packages_dir):
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        [result] = report.results
        assert result.source == PackageSource.REGISTRY
        assert result.outcome == InstallOutcome.INSTALLED
        assert result.resolved_version == "1.2.0"
        assert result.installed_version == "1.2.0"
        assert manifest_version(packages_dir / NAME) == "1.2.0"
        assert registry.downloads == [f"/files/{NAME}-1.2.0.zip"]
        assert report.cache_purged
        assert not service.config.cache_path.exists()
        assert report.ok

    @pytest.mark.asyncio
    async def test_upgrades_older_installation(self, registry, project_dir, packages_dir):
        install_package_dir(packages_dir, NAME, "1.0.0")
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.INSTALLED
        assert manifest_version(packages_dir / NAME) == "1.2.0"

    @pytest.mark.asyncio
    async def test_skips_when_up_to_date(self, registry, project_dir, packages_dir):
        install_package_dir(packages_dir, NAME, "1.2.0")
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.UP_TO_DATE
        assert report.results[0].installed_version == "1.2.0"
        assert registry.downloads == []

    @pytest.mark.asyncio
    async def test_repeated_runs_are_idempotent(self, registry, project_dir, packages_dir):
        service, client = make_service(registry, project_dir)
        first = await run(service, client)
        service, client = make_service(registry, project_dir)
        second = await run(service, client)

        assert first.results[0].outcome == InstallOutcome.INSTALLED
        assert second.results[0].outcome == InstallOutcome.UP_TO_DATE
        assert len(registry.downloads) == 1
        assert manifest_version(packages_dir / NAME) == "1.2.0"

    @pytest.mark.asyncio
    async def test_force_install_reinstalls(self, registry, project_dir, packages_dir):
        install_package_dir(packages_dir, NAME, "1.2.0")
        service, client = make_service(
            registry, project_dir,
            packages=(InstallRequest(name=NAME, version="1.0.0", force_install=True),)
        )
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.INSTALLED
        assert manifest_version(packages_dir / NAME) == "1.0.0"

    @pytest.mark.asyncio
    async def test_exact_version(self, registry, project_dir, packages_dir):
        service, client = make_service(
            registry, project_dir, packages=(InstallRequest(name=NAME, version="1.0.0"),)
        )
        report = await run(service, client)

        assert report.results[0].resolved_version == "1.0.0"
        assert manifest_version(packages_dir / NAME) == "1.0.0"

    @pytest.mark.asyncio
    async def test_missing_version_falls_back_to_latest(self, registry, project_dir, packages_dir):
        service, client = make_service(
            registry, project_dir, packages=(InstallRequest(name=NAME, version="9.9.9"),)
        )
        report = await run(service, client)

        result = report.results[0]
        assert result.outcome == InstallOutcome.INSTALLED
        assert result.requested_version == "9.9.9"
        assert result.fallback_from == "9.9.9"
        assert result.resolved_version == "1.2.0"

    @pytest.mark.asyncio
    async def test_unknown_package_does_not_stop_run(self, registry, project_dir, packages_dir):
        service, client = make_service(
            registry, project_dir,
            packages=(
                InstallRequest(name="com.example.missing"),
                InstallRequest(name="  "),
                InstallRequest(name=NAME),
            )
        )
        report = await run(service, client)

        assert [r.package for r in report.results] == ["com.example.missing", NAME]
        assert report.results[0].outcome == InstallOutcome.FAILED
        assert report.results[0].error_type == "PackageNotFoundError"
        assert report.results[1].outcome == InstallOutcome.INSTALLED
        assert not report.ok

    @pytest.mark.asyncio
    async def test_registry_unavailable_skips_registry_pass(self, registry, project_dir, packages_dir):
        registry.registry_status = 503
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results == []
        assert not (packages_dir / NAME).exists()

    @pytest.mark.asyncio
    async def test_blank_registry_url_skips_registry_pass(self, registry, project_dir):
        service, client = make_service(registry, project_dir, registry_url="  ")
        report = await run(service, client)
        assert report.results == []

    @pytest.mark.asyncio
    async def test_missing_archive_is_recorded(self, registry, project_dir, packages_dir):
        registry.archives.clear()
        install_package_dir(packages_dir, NAME, "1.0.0")
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.FAILED
        assert report.results[0].error_type == "NetworkError"
        assert manifest_version(packages_dir / NAME) == "1.0.0"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_url", ["https://example.com:notaport/bad.zip", None])
    async def test_bad_archive_url_does_not_stop_run(self, registry, project_dir, packages_dir, bad_url):
        registry.document["packages"]["com.example.bad"] = {
            "versions": {"1.0.0": {"name": "com.example.bad", "version": "1.0.0", "url": bad_url}}
        }
        service, client = make_service(
            registry, project_dir,
            packages=(InstallRequest(name="com.example.bad"), InstallRequest(name=NAME))
        )
        report = await run(service, client)

        bad, good = report.results
        assert bad.outcome == InstallOutcome.FAILED
        assert bad.error_type == "NetworkError"
        assert good.outcome == InstallOutcome.INSTALLED
        assert manifest_version(packages_dir / NAME) == "1.2.0"
        assert report.cache_purged


class TestChecksumGate:
    """verify_checksums"""

    @pytest.mark.asyncio
    async def test_matching_checksum_installs(self, registry, project_dir, packages_dir):
        service, client = make_service(registry, project_dir, verify_checksums=True)
        report = await run(service, client)
        assert report.results[0].outcome == InstallOutcome.INSTALLED

    @pytest.mark.asyncio
    async def test_mismatch_fails_and_keeps_installation(self, registry, project_dir, packages_dir):
        install_package_dir(packages_dir, NAME, "1.0.0")
        registry.document["packages"][NAME]["versions"]["1.2.0"]["zipSHA256"] = "00" * 32
        service, client = make_service(registry, project_dir, verify_checksums=True)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.FAILED
        assert report.results[0].error_type == "ChecksumMismatchError"
        assert manifest_version(packages_dir / NAME) == "1.0.0"

    @pytest.mark.asyncio
    async def test_mismatch_ignored_when_disabled(self, registry, project_dir, packages_dir):
        registry.document["packages"][NAME]["versions"]["1.2.0"]["zipSHA256"] = "00" * 32
        service, client = make_service(registry, project_dir)
        report = await run(service, client)
        assert report.results[0].outcome == InstallOutcome.INSTALLED


class TestZipInstalls:
    """Local zip folder pass of a run"""

    @pytest.mark.asyncio
    async def test_installs_dropped_archives(self, registry, project_dir, packages_dir):
        zip_dir = project_dir / "ZipPackages"
        make_package_zip(zip_dir / "b.zip", "com.example.bar", "2.0.0")
        make_package_zip(zip_dir / "a.zip", "com.example.baz", "0.1.0")

        service, client = make_service(registry, project_dir, install_registry_packages=False)
        report = await run(service, client)

        assert [r.package for r in report.results] == ["com.example.baz", "com.example.bar"]
        assert all(r.source == PackageSource.ZIP for r in report.results)
        assert manifest_version(packages_dir / "com.example.bar") == "2.0.0"
        assert manifest_version(packages_dir / "com.example.baz") == "0.1.0"
        assert not (zip_dir / "a.zip").exists()
        assert registry.downloads == []

    @pytest.mark.asyncio
    async def test_older_archive_is_skipped(self, registry, project_dir, packages_dir):
        install_package_dir(packages_dir, "com.example.bar", "3.0.0")
        make_package_zip(project_dir / "ZipPackages" / "bar.zip", "com.example.bar", "2.0.0")

        service, client = make_service(registry, project_dir, install_registry_packages=False)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.UP_TO_DATE
        assert manifest_version(packages_dir / "com.example.bar") == "3.0.0"

    @pytest.mark.asyncio
    async def test_force_install_zip_packages(self, registry, project_dir, packages_dir):
        install_package_dir(packages_dir, "com.example.bar", "3.0.0")
        make_package_zip(project_dir / "ZipPackages" / "bar.zip", "com.example.bar", "2.0.0")

        service, client = make_service(
            registry, project_dir,
            install_registry_packages=False,
            force_install_zip_packages=True
        )
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.INSTALLED
        assert manifest_version(packages_dir / "com.example.bar") == "2.0.0"

    @pytest.mark.asyncio
    async def test_corrupt_archive_is_recorded(self, registry, project_dir, packages_dir):
        zip_dir = project_dir / "ZipPackages"
        zip_dir.mkdir()
        (zip_dir / "broken.zip").write_bytes(b"garbage")

        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results[0].package == "broken"
        assert report.results[0].error_type == "ExtractFailureError"
        assert report.results[1].outcome == InstallOutcome.INSTALLED

    @pytest.mark.asyncio
    async def test_zip_pass_disabled(self, registry, project_dir, packages_dir):
        make_package_zip(project_dir / "ZipPackages" / "bar.zip", "com.example.bar", "2.0.0")
        service, client = make_service(
            registry, project_dir, install_zip_packages=False, install_registry_packages=False
        )
        report = await run(service, client)

        assert report.results == []
        assert (project_dir / "ZipPackages" / "bar.zip").exists()


class TestDegradedRun:
    """Swap-in failure after swap-out"""

    @pytest.mark.asyncio
    async def test_degraded_keeps_cache(self, registry, project_dir, packages_dir, monkeypatch):
        destination = install_package_dir(packages_dir, NAME, "1.0.0")
        real_move = fsops.move_path

        def swap_in_fails(src, dst):
            if Path(dst) == destination:
                raise PermissionError(13, "locked")
            return real_move(src, dst)

        monkeypatch.setattr(fsops, "move_path", swap_in_fails)
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.DEGRADED
        assert report.degraded
        assert not report.cache_purged
        quarantine = service.config.cache_path / "quarantine" / NAME
        assert manifest_version(quarantine) == "1.0.0"
        assert not destination.exists()

    @pytest.mark.asyncio
    async def test_unrecoverable_cross_device_swap_out_keeps_cache(
        self, registry, project_dir, packages_dir, monkeypatch
    ):
        destination = install_package_dir(packages_dir, NAME, "1.0.0")
        real_rmtree = shutil.rmtree

        def cross_device(src, dst):
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        def partial_rmtree(path, *args, **kwargs):
            if Path(path) == destination:
                (destination / "package.json").unlink(missing_ok=True)
                raise PermissionError(errno.EACCES, "locked")
            return real_rmtree(path, *args, **kwargs)

        def copy_fails(src, dst):
            raise PermissionError(errno.EACCES, "locked")

        monkeypatch.setattr(fsops.os, "rename", cross_device)
        monkeypatch.setattr(fsops.shutil, "rmtree", partial_rmtree)
        monkeypatch.setattr(fsops, "_copy_missing", copy_fails)
        service, client = make_service(registry, project_dir)
        report = await run(service, client)

        assert report.results[0].outcome == InstallOutcome.DEGRADED
        assert not report.cache_purged
        quarantine = service.config.cache_path / "quarantine" / NAME
        assert manifest_version(quarantine) == "1.0.0"


class TestManagedEnvironment:
    """Behavior when the managed marker exists"""

    @pytest.mark.asyncio
    async def test_managed_run(self, registry, project_dir, packages_dir):
        (project_dir / "codespace.txt").write_text("")
        install_package_dir(packages_dir, NAME, "1.0.0")
        drop = make_package_zip(project_dir / "ZipPackages" / "bar.zip", "com.example.bar", "2.0.0")
        installer_dir = project_dir / "Assets" / "Installer"
        installer_dir.mkdir(parents=True)

        service, client = make_service(
            registry, project_dir,
            delete_self=True,
            delete_folders=("Assets/Installer",)
        )
        report = await run(service, client)

        outcomes = {r.package: r.outcome for r in report.results}
        assert outcomes["com.example.bar"] == InstallOutcome.INSTALLED
        assert outcomes[NAME] == InstallOutcome.MANAGED_SKIP
        assert manifest_version(packages_dir / NAME) == "1.0.0"
        assert drop.exists()
        assert installer_dir.exists()
        assert report.deleted_folders == []


class TestDeleteFolders:
    """Self cleanup"""

    @pytest.mark.asyncio
    async def test_only_nested_folders_inside_base_are_deleted(self, registry, tmp_path):
        base = tmp_path / "Project"
        (base / "Packages").mkdir(parents=True)
        (base / "Assets" / "Installer").mkdir(parents=True)
        (base / "Assets" / "Other").mkdir(parents=True)
        outside = tmp_path / "outside" / "dir"
        outside.mkdir(parents=True)

        service, client = make_service(
            registry, base,
            install_registry_packages=False,
            delete_self=True,
            delete_folders=("Assets/Installer", "Assets", "../outside/dir", "Assets\\Other", "", "Assets/Missing")
        )
        report = await run(service, client)

        assert report.deleted_folders == ["Assets/Installer", "Assets\\Other"]
        assert not (base / "Assets" / "Installer").exists()
        assert not (base / "Assets" / "Other").exists()
        assert (base / "Assets").exists()
        assert outside.exists()

    @pytest.mark.asyncio
    async def test_delete_self_disabled(self, registry, project_dir):
        target = project_dir / "Assets" / "Installer"
        target.mkdir(parents=True)
        service, client = make_service(
            registry, project_dir,
            install_registry_packages=False,
            delete_folders=("Assets/Installer",)
        )
        report = await run(service, client)
        assert target.exists()
        assert report.deleted_folders == []


class TestTransactionLog:
    """Per-package records in the transaction log"""

    @pytest.mark.asyncio
    async def test_results_are_logged(self, registry, project_dir):
        service, client = make_service(registry, project_dir, transactions_log="Logs/transactions.jsonl")
        report = await run(service, client)

        records = TransactionLogger(project_dir / "Logs" / "transactions.jsonl").list_transactions()
        assert len(records) == 1
        assert records[0]["run_id"] == report.run_id
        assert records[0]["package"] == NAME
        assert records[0]["outcome"] == "installed"
        assert records[0]["id"].startswith("txn-")


@pytest.mark.parametrize("folder,expected", [
    ("Assets/Installer", ["Assets", "Installer"]),
    ("Assets\\Installer\\", ["Assets", "Installer"]),
    ("/Assets", ["Assets"]),
    ("", []),
])
def test_split_folder(folder, expected):
    assert split_folder(folder) == expected
