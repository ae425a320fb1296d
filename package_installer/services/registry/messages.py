# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Message Catalog

Single responsibility: Map canonical (English) log message templates to
localized text. Passed explicitly to the installer and orchestrator.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "English"
DEFAULT_LANGUAGE_DIR = Path(__file__).resolve().parents[2] / "data" / "languages"


class MessageCatalog:
    """Lookup table from message template to localized template"""

    def __init__(self, entries: Optional[Dict[str, str]] = None, language: str = DEFAULT_LANGUAGE):
        self.entries = dict(entries or {})
        self.language = language

    def get(self, key: str, **params) -> str:
        """
        Return the localized text for key, formatted with params.

        Missing keys and blank translations fall back to the key itself.
        """
        template = self.entries.get(key) or key
        if not params:
            return template
        try:
            return template.format(**params)
        except (KeyError, IndexError, ValueError):
            logger.debug(f"Translation for {key!r} does not match its parameters")
            return key.format(**params)

    __call__ = get

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def load(cls, language_dir: Optional[Path] = None, language: str = DEFAULT_LANGUAGE) -> "MessageCatalog":
        """
        Load <language_dir>/<language>.yaml.

        Falls back to English, then to an empty catalog (untranslated text).
        """
        language_dir = Path(language_dir) if language_dir else DEFAULT_LANGUAGE_DIR
        language = language or DEFAULT_LANGUAGE

        for candidate in dict.fromkeys([language, DEFAULT_LANGUAGE]):
            catalog_file = language_dir / f"{candidate}.yaml"
            if not catalog_file.is_file():
                logger.debug(f"Language file not found: {catalog_file}")
                continue
            try:
                with open(catalog_file, encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load language file {catalog_file}: {e}")
                continue
            if not isinstance(data, dict):
                logger.warning(f"Language file {catalog_file} is not a mapping")
                continue

            if candidate != language:
                logger.info(f"Language {language} not found, using {candidate}")
            entries = {str(k): str(v) for k, v in data.items() if v is not None}
            return cls(entries, language=candidate)

        logger.info(f"No language file for {language}, using untranslated messages")
        return cls(language=language)
