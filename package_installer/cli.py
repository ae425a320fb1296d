# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Command line entry point.

Exit codes:
    0  every package installed, up to date or skipped
    1  at least one package failed or was left degraded
    2  configuration missing or invalid
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from package_installer.core.config import load_config
from package_installer.core.errors import ConfigurationError
from package_installer.core.logging import LOG_FORMATS, LOG_LEVELS, configure_logging
from package_installer.models.registry_models import RunReport
from package_installer.services.registry.messages import MessageCatalog
from package_installer.services.registry.service import PackageInstallerService

logger = logging.getLogger("package_installer.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="package-installer",
        description="Install packages from a registry and from local zip archives",
    )
    parser.add_argument(
        "--config",
        help="Config file (default: $PACKAGE_INSTALLER_CONFIG or package-installer.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        help="Override the configured log level",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        help="Override the configured log format",
    )
    parser.add_argument(
        "--force-zip",
        action="store_true",
        help="Install local zip packages even when they are not newer",
    )
    parser.add_argument(
        "--no-zip",
        action="store_true",
        help="Skip local zip packages",
    )
    parser.add_argument(
        "--no-registry",
        action="store_true",
        help="Skip registry packages",
    )
    return parser


async def run_installer(service: PackageInstallerService) -> RunReport:
    async with service:
        return await service.run()


def print_summary(report: RunReport):
    for result in report.results:
        line = f"{result.outcome.value:<12} {result.package}"
        if result.installed_version:
            line += f" {result.installed_version}"
        if result.fallback_from:
            line += f" (requested {result.fallback_from}, used latest)"
        if result.error:
            line += f": {result.error}"
        print(line)
    print(
        f"{len(report.succeeded)} ok, {len(report.failed)} failed, "
        f"{len(report.degraded)} degraded"
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        configure_logging(args.log_level or "INFO", args.log_format or "text")
        logger.error(e.message)
        return 2

    overrides = {}
    if args.force_zip:
        overrides["force_install_zip_packages"] = True
    if args.no_zip:
        overrides["install_zip_packages"] = False
    if args.no_registry:
        overrides["install_registry_packages"] = False
    if overrides:
        config = dataclasses.replace(config, **overrides)

    configure_logging(args.log_level or config.log_level, args.log_format or config.log_format)
    messages = MessageCatalog.load(config.language_path, config.language)

    report = asyncio.run(run_installer(PackageInstallerService(config, messages=messages)))
    print_summary(report)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
