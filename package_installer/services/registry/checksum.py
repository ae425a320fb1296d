# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Checksum helpers

SHA-256 of archives (checked against a registry's zipSHA256 when
verification is enabled) and of directory trees (used to verify a
cross-device copy before the source is removed).
"""

import hashlib
import logging
from pathlib import Path

from package_installer.core.errors import ChecksumMismatchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def file_sha256(path: Path) -> str:
    """Hex SHA-256 of a file, read in chunks"""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def tree_digest(path: Path) -> str:
    """
    Hex SHA-256 over a directory tree.

    Covers relative paths and file contents, so two trees hash equal only
    when they hold the same files with the same bytes.
    """
    hasher = hashlib.sha256()
    path = Path(path)

    for file_path in sorted(path.rglob("*")):
        rel_path = file_path.relative_to(path).as_posix()
        if file_path.is_dir():
            hasher.update(f"d:{rel_path}\0".encode())
            continue
        hasher.update(f"f:{rel_path}\0".encode())
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                hasher.update(chunk)
    return hasher.hexdigest()


def verify_archive(path: Path, expected: str) -> bool:
    """
    Check an archive against its published SHA-256.

    Args:
        path: Archive file
        expected: Hex digest from the registry; blank means nothing to check

    Returns:
        True if verified, False if there was nothing to verify

    Raises:
        ChecksumMismatchError: If the digests differ
    """
    expected = (expected or "").strip().lower()
    if not expected:
        logger.debug(f"No checksum published for {path.name}, skipping verification")
        return False

    actual = file_sha256(path)
    if actual != expected:
        raise ChecksumMismatchError(path, expected, actual)

    logger.info(f"Checksum verified for {path.name}")
    return True
