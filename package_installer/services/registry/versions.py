# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Version Resolver

Single responsibility: Order dotted version strings and pick a version
from a registry package entry.

Each request is resolved independently against the flat registry; there
is no transitive dependency solving.
"""

import functools
import logging
import re
from dataclasses import dataclass
from typing import Optional

from package_installer.models.registry_models import PackageEntry, PackageVersion

logger = logging.getLogger(__name__)

LATEST = "latest"
RANGE_PREFIX = "^"

_INTEGER = re.compile(r"\s*[+-]?\d+\s*")


def _normalize(version: str) -> str:
    version = version.strip()
    if version[:1] in ("v", "V"):
        version = version[1:]
    return version


def _as_int(segment: str) -> Optional[int]:
    if _INTEGER.fullmatch(segment):
        return int(segment)
    return None


def compare_versions(a: str, b: str) -> int:
    """
    Compare two dotted version strings.

    Segments are compared numerically when both parse as integers and as
    ordinal strings otherwise. With all compared segments equal, the
    version with more segments is greater.

    Returns:
        1 if a > b, 0 if equal, -1 if a < b
    """
    left = _normalize(a).split(".")
    right = _normalize(b).split(".")

    for i, left_segment in enumerate(left):
        if i >= len(right):
            return 1

        right_segment = right[i]
        left_int = _as_int(left_segment)
        right_int = _as_int(right_segment)

        if left_int is not None and right_int is not None:
            if left_int != right_int:
                return 1 if left_int > right_int else -1
        elif left_segment != right_segment:
            return 1 if left_segment > right_segment else -1

    if len(right) > len(left):
        return -1
    return 0


version_key = functools.cmp_to_key(compare_versions)


def is_latest_request(requested: Optional[str]) -> bool:
    """True for requests that mean "newest available"."""
    if requested is None:
        return True
    requested = requested.strip()
    return not requested or requested == LATEST or requested.startswith(RANGE_PREFIX)


def select_latest(entry: PackageEntry) -> Optional[PackageVersion]:
    """
    Return the greatest version in the entry, or None if it has none.

    The first of several equal versions wins.
    """
    latest: Optional[PackageVersion] = None
    for candidate in entry.versions.values():
        if latest is None or compare_versions(candidate.version, latest.version) > 0:
            latest = candidate
    return latest


@dataclass(frozen=True)
class Resolution:
    """Version chosen for a request, plus whether a fallback happened"""
    package: PackageVersion
    requested: str
    fallback_from: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.fallback_from is not None


def resolve_request(entry: PackageEntry, requested: Optional[str]) -> Optional[Resolution]:
    """
    Resolve a requested version against a package entry.

    Empty, "latest" and "^"-prefixed requests select the latest version.
    A range marker is not range-resolved. An exact version missing from the
    entry falls back to the latest version; the fallback is recorded on
    the returned Resolution.

    Returns:
        Resolution, or None if the entry has no versions
    """
    requested = (requested or "").strip()

    if is_latest_request(requested):
        latest = select_latest(entry)
        if latest is None:
            return None
        return Resolution(package=latest, requested=requested or LATEST)

    exact = entry.versions.get(requested)
    if exact is not None:
        return Resolution(package=exact, requested=requested)

    latest = select_latest(entry)
    if latest is None:
        return None

    logger.warning(
        f"Version {requested} not found, falling back to latest version {latest.version}"
    )
    return Resolution(package=latest, requested=requested, fallback_from=requested)


def select_by_request(entry: PackageEntry, requested: Optional[str]) -> Optional[PackageVersion]:
    """Version chosen by resolve_request, without the fallback bookkeeping"""
    resolution = resolve_request(entry, requested)
    return resolution.package if resolution else None
