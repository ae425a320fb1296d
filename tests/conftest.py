# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Fixtures and Utilities

Provides archive builders, package tree helpers and a fast retry policy
for installer and orchestrator tests.
"""

import json
import os
import sys
import zipfile
from pathlib import Path
from typing import Dict, Optional

import pytest

# Add repository root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from package_installer.services.registry.retry import RetryPolicy


# ============================================================================
# Helpers
# ============================================================================

def make_zip(path: Path, files: Dict[str, str]) -> Path:
    """Write a zip archive containing files (name -> text content)"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def package_files(name: str, version: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Files of a minimal package: a manifest plus one source file"""
    files = {
        "package.json": json.dumps({"name": name, "version": version}),
        "Runtime/Main.cs": f"// {name} {version}\n",
    }
    files.update(extra or {})
    return files


def make_package_zip(path: Path, name: str, version: str) -> Path:
    return make_zip(path, package_files(name, version))


def install_package_dir(packages_dir: Path, name: str, version: str) -> Path:
    """Create an already-installed package directory"""
    directory = packages_dir / name
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.json").write_text(json.dumps({"name": name, "version": version}))
    (directory / "Runtime").mkdir(exist_ok=True)
    (directory / "Runtime" / "Main.cs").write_text(f"// {name} {version}\n")
    return directory


def manifest_version(directory: Path) -> str:
    return json.loads((directory / "package.json").read_text())["version"]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def project_dir(tmp_path):
    """Project root with empty Packages folder"""
    (tmp_path / "Packages").mkdir()
    return tmp_path


@pytest.fixture
def packages_dir(project_dir):
    return project_dir / "Packages"


@pytest.fixture
def cache_dir(project_dir):
    return project_dir / "Temp" / "package-installer"


@pytest.fixture
def fast_retry():
    """Same attempt count as production, without the 100ms waits"""
    return RetryPolicy(max_attempts=20, delay=0)
