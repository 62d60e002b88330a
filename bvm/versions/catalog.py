"""Remote version catalog and version token resolution."""

import asyncio
import logging
from typing import Optional

import aiohttp
from pydantic import ValidationError

from ..errors import CatalogUnavailable, VersionNotFound
from ..utils.async_http import AsyncHTTPClient
from .models import RemoteVersionList

logger = logging.getLogger(__name__)

LATEST = "latest"


def normalize_token(token: Optional[str]) -> str:
    """Map a user supplied version request to ``LATEST`` or a concrete version.

    ``None``, an empty string and any casing of "latest" all become ``LATEST``.
    """
    if token is None:
        return LATEST
    token = token.strip()
    if not token or token.lower() == LATEST:
        return LATEST
    return token


class CatalogResolver:
    """Turns version tokens into concrete, installable versions."""

    def __init__(self, catalog_url: str, timeout: float = 60.0):
        self.catalog_url = catalog_url
        self.timeout = timeout

    async def list_remote(self) -> RemoteVersionList:
        """Fetch the remote version listing."""
        logger.debug("Fetching version catalog from %s", self.catalog_url)
        try:
            async with AsyncHTTPClient(timeout=self.timeout) as client:
                data = await client.get(self.catalog_url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogUnavailable(f"could not retrieve version catalog from {self.catalog_url}", cause=e) from e
        except ValueError as e:
            raise CatalogUnavailable(f"version catalog at {self.catalog_url} is not valid JSON", cause=e) from e

        try:
            listing = RemoteVersionList.from_payload(data)
        except (ValidationError, ValueError) as e:
            raise CatalogUnavailable(f"malformed version catalog at {self.catalog_url}", cause=e) from e

        logger.debug("Catalog lists %d versions", len(listing))
        return listing

    async def resolve(self, token: Optional[str], listing: Optional[RemoteVersionList] = None) -> str:
        """Resolve a token against the catalog.

        ``listing`` may be passed to reuse a catalog already fetched by the caller.
        """
        token = normalize_token(token)
        if listing is None:
            listing = await self.list_remote()

        if token == LATEST:
            latest = listing.latest()
            if latest is None:
                raise VersionNotFound("the version catalog is empty", version=token)
            logger.debug("Resolved latest to %s", latest.version)
            return latest.version

        if token not in listing:
            raise VersionNotFound(f"version {token} does not exist in the catalog", version=token)
        return token
