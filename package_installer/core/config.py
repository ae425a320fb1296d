# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package installer configuration.
YAML is king. The only environment variable is the config file location.

The configuration is an immutable object handed to the orchestrator;
there is no process-wide instance.
"""

import logging
import os
import yaml
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from package_installer.core.errors import ConfigurationError
from package_installer.core.logging import LOG_FORMATS, LOG_LEVELS
from package_installer.models.registry_models import InstallRequest

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PACKAGE_INSTALLER_CONFIG"
DEFAULT_CONFIG_PATH = "package-installer.yaml"

# camelCase key names accepted alongside the snake_case field names
_KEY_ALIASES = {
    "url": "registry_url",
    "installVPMPackages": "install_registry_packages",
    "installPackages": "packages",
    "installZipPackages": "install_zip_packages",
    "forceInstallZipPackages": "force_install_zip_packages",
    "deleteSelf": "delete_self",
    "deleteFolders": "delete_folders",
}

_BOOL_FIELDS = (
    "install_registry_packages",
    "install_zip_packages",
    "force_install_zip_packages",
    "delete_self",
    "verify_checksums",
)


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable installer configuration.
    Relative paths are resolved against base_dir.
    """

    base_dir: Path = Path(".")

    # -- Registry installs --
    registry_url: str = ""
    install_registry_packages: bool = True
    packages: Tuple[InstallRequest, ...] = ()
    verify_checksums: bool = False
    http_timeout: Optional[float] = None

    # -- Local zip installs --
    install_zip_packages: bool = True
    force_install_zip_packages: bool = False

    # -- Self cleanup --
    delete_self: bool = False
    delete_folders: Tuple[str, ...] = ()

    # -- Paths --
    packages_dir: str = "Packages"
    zip_packages_dir: str = "ZipPackages"
    cache_dir: str = "Temp/package-installer"
    managed_marker: str = "codespace.txt"
    transactions_log: Optional[str] = None
    language_dir: Optional[str] = None

    # -- Retry --
    retry_max_attempts: int = 20
    retry_delay: float = 0.1

    # -- Runtime --
    language: str = "English"
    log_level: str = "INFO"
    log_format: str = "text"

    def resolve(self, path: str) -> Path:
        """Resolve a configured path against base_dir"""
        p = Path(path)
        return p if p.is_absolute() else Path(self.base_dir) / p

    @property
    def packages_path(self) -> Path:
        return self.resolve(self.packages_dir)

    @property
    def zip_packages_path(self) -> Path:
        return self.resolve(self.zip_packages_dir)

    @property
    def cache_path(self) -> Path:
        return self.resolve(self.cache_dir)

    @property
    def managed_marker_path(self) -> Path:
        return self.resolve(self.managed_marker)

    @property
    def transactions_log_path(self) -> Optional[Path]:
        return self.resolve(self.transactions_log) if self.transactions_log else None

    @property
    def language_path(self) -> Optional[Path]:
        return self.resolve(self.language_dir) if self.language_dir else None

    def retry_policy(self):
        """Build the RetryPolicy used for every contended filesystem operation"""
        from package_installer.services.registry.retry import RetryPolicy
        return RetryPolicy(max_attempts=self.retry_max_attempts, delay=self.retry_delay)


# =============================================================================
# LOADER
# =============================================================================

def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"Invalid boolean for {key}: {value!r}")


def _parse_requests(value: Any) -> Tuple[InstallRequest, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigurationError("packages must be a list")

    requests = []
    for item in value:
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            raise ConfigurationError(f"Invalid package request: {item!r}")
        item = dict(item)
        version = item.get("version")
        if version is None:
            item["version"] = ""
        elif not isinstance(version, str):
            # YAML reads 1.10 as the float 1.1
            raise ConfigurationError(
                f"Version {version!r} of package {item.get('name')!r} must be a string, quote it in the config file"
            )
        try:
            requests.append(InstallRequest.model_validate(item))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid package request {item!r}: {e}") from e
    return tuple(requests)


def config_from_dict(data: Dict[str, Any], base_dir: Optional[Path] = None) -> Config:
    """
    Build a Config from a mapping (snake_case or camelCase keys).

    Raises:
        ConfigurationError: On invalid values
    """
    known = {f.name for f in fields(Config)}
    values: Dict[str, Any] = {}

    for key, value in data.items():
        name = _KEY_ALIASES.get(key, key)
        if name not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        values[name] = value

    for name in _BOOL_FIELDS:
        if name in values:
            values[name] = _to_bool(values[name], name)

    if "packages" in values:
        values["packages"] = _parse_requests(values["packages"])

    if "delete_folders" in values:
        folders = values["delete_folders"] or []
        if not isinstance(folders, list):
            raise ConfigurationError("delete_folders must be a list")
        values["delete_folders"] = tuple(str(f) for f in folders if f is not None)

    for name in ("registry_url", "packages_dir", "zip_packages_dir", "cache_dir", "managed_marker"):
        if name in values:
            values[name] = "" if values[name] is None else str(values[name])

    try:
        if "retry_max_attempts" in values:
            values["retry_max_attempts"] = int(values["retry_max_attempts"])
        if "retry_delay" in values:
            values["retry_delay"] = float(values["retry_delay"])
        if values.get("http_timeout") is not None:
            values["http_timeout"] = float(values["http_timeout"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric config value: {e}") from e

    if values.get("retry_max_attempts", 1) < 1:
        raise ConfigurationError("retry_max_attempts must be at least 1")
    if values.get("retry_delay", 0.0) < 0:
        raise ConfigurationError("retry_delay must not be negative")

    if "log_level" in values:
        values["log_level"] = str(values["log_level"]).upper()
        if values["log_level"] not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
    if "log_format" in values and values["log_format"] not in LOG_FORMATS:
        raise ConfigurationError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

    configured_base = Path(str(values.pop("base_dir", ".") or "."))
    if not configured_base.is_absolute() and base_dir is not None:
        configured_base = Path(base_dir) / configured_base

    return Config(base_dir=configured_base, **values)


def load_config(path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML.

    Args:
        path: Config file; defaults to $PACKAGE_INSTALLER_CONFIG, then
            package-installer.yaml in the working directory

    Raises:
        ConfigurationError: If the file is missing or invalid. This is the
            only error that aborts a run.
    """
    path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    config_file = Path(path)

    if not config_file.is_file():
        raise ConfigurationError(f"Config not found at {config_file}", config_file=str(config_file))

    try:
        with open(config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config {config_file}: {e}", config_file=str(config_file)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_file} must be a mapping", config_file=str(config_file))

    try:
        config = config_from_dict(data, base_dir=config_file.resolve().parent)
    except ConfigurationError as e:
        e.config_file = str(config_file)
        raise

    logger.debug(f"Loaded config from {config_file}")
    return config
