# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Registry Fetcher

Single responsibility: Download the registry document and package
archives over HTTP(S).
"""

import logging
import time
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import aiofiles
import httpx

from package_installer.core.errors import InvalidRegistryError, NetworkError
from package_installer.models.registry_models import RegistryDocument
from package_installer.services.registry.fsops import remove_path

logger = logging.getLogger(__name__)

CACHE_BUST_PARAM = "t"


def cache_bust_token() -> str:
    """Current time in 100ns ticks"""
    return str(time.time_ns() // 100)


def archive_filename(url: str) -> str:
    """Basename of the URL path, e.g. "pkg-1.0.0.zip" """
    return Path(unquote(urlparse(url).path)).name


class RegistryFetcher:
    """Fetches registry documents and archives with httpx"""

    def __init__(
        self,
        cache_dir: Path,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize fetcher.

        Args:
            cache_dir: Directory archives are downloaded into
            client: Optional HTTP client; the fetcher owns one if not given
            timeout: Request timeout in seconds, None for no timeout
        """
        self.cache_dir = Path(cache_dir)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True
        )

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _check_transport(self, url: str):
        if urlparse(url).scheme.lower() == "http":
            logger.warning(f"Using unencrypted HTTP for {url}")

    async def fetch_registry(self, url: str) -> RegistryDocument:
        """
        Fetch and deserialize the registry document.

        A cache-busting query parameter defeats intermediary caches.

        Raises:
            NetworkError: On transport errors or non-2xx responses
            InvalidRegistryError: If the body is not a registry document
        """
        url = url.strip()
        self._check_transport(url)
        logger.info(f"Fetching registry: {url}")

        try:
            response = await self.client.get(url, params={CACHE_BUST_PARAM: cache_bust_token()})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"Registry request failed with status {e.response.status_code}",
                url=url,
                details={"status_code": e.response.status_code}
            ) from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise NetworkError(f"Invalid registry URL {url}: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Registry request failed: {e}", url=url) from e

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidRegistryError(f"Registry response is not JSON: {e}", url=url) from e

        registry = RegistryDocument.from_payload(data)
        logger.info(f"Registry {registry.name or url} lists {len(registry.packages)} packages")
        return registry

    async def fetch_archive(self, url: str) -> Path:
        """
        Download an archive into the cache directory.

        Returns:
            Path of the downloaded file (cache_dir / URL basename)

        Raises:
            NetworkError: On transport errors, non-2xx responses, or a URL without a file name
        """
        url = url.strip()
        filename = archive_filename(url)
        if not filename:
            raise NetworkError(f"Archive URL has no file name: {url}", url=url)

        self._check_transport(url)
        logger.info(f"Downloading package: {url}")

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        target = self.cache_dir / filename

        try:
            async with self.client.stream("GET", url) as response:
                response.raise_for_status()
                async with aiofiles.open(target, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        await f.write(chunk)
        except httpx.HTTPStatusError as e:
            remove_path(target)
            raise NetworkError(
                f"Download failed with status {e.response.status_code}",
                url=url,
                details={"status_code": e.response.status_code}
            ) from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            remove_path(target)
            raise NetworkError(f"Invalid archive URL {url}: {e}", url=url) from e
        except httpx.HTTPError as e:
            remove_path(target)
            raise NetworkError(f"Download failed: {e}", url=url) from e

        logger.info(f"Downloaded {filename} ({target.stat().st_size} bytes)")
        return target
