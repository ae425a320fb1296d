# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for the package installer.

All exceptions inherit from InstallerError for consistent error handling.
Per-package errors are caught by the orchestrator and recorded; only
ConfigurationError aborts a run.
"""

from pathlib import Path
from typing import Optional


class InstallerError(Exception):
    """Base exception for all installer errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize installer error.

        Args:
            message: Human-readable error message
            details: Additional error details
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for reports and transaction logs."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(InstallerError):
    """Configuration missing or invalid. Aborts the whole run."""

    def __init__(self, message: str, config_file: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.config_file = config_file


class NetworkError(InstallerError):
    """Registry or archive fetch failed at the transport or protocol level."""

    def __init__(self, message: str, url: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.url = url


class InvalidRegistryError(NetworkError):
    """Registry payload could not be deserialized."""


class NotFoundError(InstallerError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str, details: Optional[dict] = None):
        """
        Initialize not found error.

        Args:
            resource: Type of resource (e.g., "Package", "Archive")
            identifier: Resource identifier
            details: Additional error details
        """
        message = f"{resource} not found: {identifier}"
        super().__init__(message, details=details)
        self.resource = resource
        self.identifier = identifier


class PackageNotFoundError(NotFoundError):
    """Package name has no entry in the registry."""

    def __init__(self, package_name: str, details: Optional[dict] = None):
        super().__init__("Package", package_name, details=details)
        self.package_name = package_name


class ArchiveNotFoundError(NotFoundError):
    """Archive file handed to the installer does not exist."""

    def __init__(self, archive: Path, details: Optional[dict] = None):
        super().__init__("Archive", str(archive), details=details)
        self.archive = archive


class RetryExhaustedError(InstallerError):
    """A retried filesystem operation kept failing."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException] = None):
        message = f"{description} failed after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message, details={"attempts": attempts})
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class StageConflictError(InstallerError):
    """Stale staging content could not be cleared."""

    def __init__(self, message: str, path: Optional[Path] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.path = path


class SwapFailureError(InstallerError):
    """The current installation could not be moved aside.

    The destination is left exactly as it was.
    """

    def __init__(self, message: str, destination: Optional[Path] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.destination = destination


class ExtractFailureError(InstallerError):
    """Archive is corrupt or unsafe. Never retried."""

    def __init__(self, message: str, archive: Optional[Path] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.archive = archive


class PartialMoveError(InstallerError):
    """
    A cross-device move copied the tree but could neither delete the
    source nor put it back.

    The destination holds a complete, verified copy; the source is partial.
    Not an OSError, so a RetryPolicy does not retry it.
    """

    def __init__(self, source: Path, destination: Path, cause: Optional[BaseException] = None):
        message = f"Moved {source} to {destination} but could not remove or restore the source"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message,
            details={"source": str(source), "destination": str(destination)}
        )
        self.source = source
        self.destination = destination
        self.cause = cause


class DegradedStateError(InstallerError):
    """
    A swap left the destination unusable: swap-in failed after swap-out,
    or a cross-device swap-out could not clean up the destination.

    The destination is absent or incomplete and the previous version sits
    in quarantine.
    Requires manual recovery: move the quarantine directory back.
    """

    def __init__(self, destination: Path, quarantine: Path, cause: Optional[BaseException] = None):
        message = (
            f"Destination {destination} is absent or incomplete; previous version preserved at {quarantine}"
        )
        if cause is not None:
            message += f" (swap-in failed: {cause})"
        super().__init__(
            message,
            details={"destination": str(destination), "quarantine": str(quarantine)}
        )
        self.destination = destination
        self.quarantine = quarantine
        self.cause = cause


class ChecksumMismatchError(InstallerError):
    """Downloaded archive does not match its published SHA-256."""

    def __init__(self, archive: Path, expected: str, actual: str):
        super().__init__(
            f"Checksum mismatch for {archive.name}: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual}
        )
        self.archive = archive
        self.expected = expected
        self.actual = actual
