# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Filesystem primitives for staging and swapping package directories.

All functions are synchronous; callers run them through a RetryPolicy,
which moves them onto a worker thread.
"""

import errno
import logging
import os
import shutil
import zipfile
from pathlib import Path

from package_installer.core.errors import ExtractFailureError, PartialMoveError
from package_installer.services.registry.checksum import tree_digest

logger = logging.getLogger(__name__)

MAX_MEMBER_NAME = 1024


def remove_path(path: Path) -> None:
    """
    Delete a file or a directory tree.

    A path that does not exist (or vanishes mid-delete) counts as removed.
    """
    path = Path(path)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
    except FileNotFoundError:
        pass


def move_path(src: Path, dst: Path) -> None:
    """
    Move src to dst with a single rename.

    Rename is atomic within one filesystem, which is what makes a swap
    crash-safe. Across filesystems the move degrades to copy, verify,
    then delete the source; a crash during that window can leave both
    copies on disk. If the source cannot be deleted it is restored from
    the copy and the copy removed, so a failed move leaves the source whole.

    Raises:
        PartialMoveError: If the source could neither be deleted nor restored
    """
    try:
        os.rename(src, dst)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.warning(
            f"{src} and {dst} are on different filesystems, falling back to copy and delete"
        )
        _copy_verify_remove(Path(src), Path(dst))


def _copy_verify_remove(src: Path, dst: Path) -> None:
    if src.is_dir():
        shutil.copytree(src, dst, symlinks=True)
        if tree_digest(src) != tree_digest(dst):
            remove_path(dst)
            raise OSError(f"Copy of {src} to {dst} did not verify")
        try:
            shutil.rmtree(src)
        except OSError as e:
            _restore_source(src, dst, e)
            raise
    else:
        shutil.copy2(src, dst)
        if src.stat().st_size != dst.stat().st_size:
            remove_path(dst)
            raise OSError(f"Copy of {src} to {dst} did not verify")
        try:
            src.unlink()
        except OSError:
            remove_path(dst)
            raise


def _copy_missing(src: str, dst: str) -> str:
    if not os.path.lexists(dst):
        shutil.copy2(src, dst)
    return dst


def _restore_source(src: Path, dst: Path, cause: OSError) -> None:
    """Refill a partially deleted src from its verified copy at dst, then drop dst"""
    logger.warning(f"Failed to delete {src} after copying it to {dst}, restoring it: {cause}")
    try:
        shutil.copytree(dst, src, symlinks=True, dirs_exist_ok=True, copy_function=_copy_missing)
    except OSError as e:
        logger.warning(f"Some entries of {src} were not restored: {e}")

    try:
        restored = tree_digest(src) == tree_digest(dst)
    except OSError as e:
        logger.error(f"Failed to verify restored {src}: {e}")
        restored = False

    if not restored:
        raise PartialMoveError(src, dst, cause=cause) from cause
    remove_path(dst)


def copy_file(src: Path, dst: Path) -> None:
    """Copy a single file, keeping metadata"""
    shutil.copy2(src, dst)


def is_path_within_base(path: Path, base: Path) -> bool:
    """Check if path is within base directory"""
    try:
        Path(path).resolve().relative_to(Path(base).resolve())
        return True
    except ValueError:
        return False


def extract_zip(archive: Path, dest_dir: Path) -> int:
    """
    Extract a zip archive into dest_dir.

    Every member is validated before anything is written: absolute paths,
    members escaping dest_dir and symlinks pointing outside it are refused.

    Returns:
        Number of members extracted

    Raises:
        ExtractFailureError: If the archive is corrupt, unsafe or unreadable
    """
    archive = Path(archive)
    dest_dir = Path(dest_dir)

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        base = dest_dir.resolve()

        with zipfile.ZipFile(archive, "r") as zip_ref:
            members = zip_ref.infolist()
            for member in members:
                _validate_member(zip_ref, member, base, archive)

            bad_member = zip_ref.testzip()
            if bad_member is not None:
                raise ExtractFailureError(
                    f"Corrupt member {bad_member} in {archive.name}", archive=archive
                )

            zip_ref.extractall(dest_dir)
    except ExtractFailureError:
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as e:
        raise ExtractFailureError(f"Corrupt archive {archive.name}: {e}", archive=archive) from e
    except OSError as e:
        raise ExtractFailureError(f"Failed to extract {archive.name}: {e}", archive=archive) from e

    logger.debug(f"Extracted {len(members)} members from {archive.name} to {dest_dir}")
    return len(members)


def _validate_member(zip_ref: zipfile.ZipFile, member: zipfile.ZipInfo, base: Path, archive: Path):
    name = member.filename
    if len(name) > MAX_MEMBER_NAME:
        raise ExtractFailureError(f"Suspicious member name length in {archive.name}", archive=archive)

    if os.path.isabs(name) or name.startswith(("/", "\\")):
        raise ExtractFailureError(f"Absolute path not allowed: {name}", archive=archive)

    if not is_path_within_base(base / name, base):
        raise ExtractFailureError(f"Path traversal attempt: {name}", archive=archive)

    # Unix file type bits live in the high 16 bits of external_attr
    is_symlink = (member.external_attr >> 16) & 0o170000 == 0o120000
    if is_symlink:
        target = zip_ref.read(member).decode("utf-8", errors="replace")
        link_path = (base / name).parent / target
        if os.path.isabs(target) or not is_path_within_base(link_path, base):
            raise ExtractFailureError(f"Suspicious symlink: {name} -> {target}", archive=archive)
