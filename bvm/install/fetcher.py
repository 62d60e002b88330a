"""Release archive downloads."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import aiofiles
import aiofiles.os
import aiohttp

from ..errors import FetchError
from ..versions.store import rmtree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchOpts:
    destination: Path
    override_dir: bool = False


@dataclass(frozen=True)
class FetchResult:
    downloaded_file: Optional[Path]
    resolved_version: str


class Fetcher(Protocol):
    async def fetch(self, version: str, opts: FetchOpts) -> FetchResult:
        """Put the archive of ``version`` into ``opts.destination``.

        Returns ``downloaded_file=None`` when the destination already holds
        content and ``override_dir`` is false.
        """
        ...


class HttpFetcher:
    """Downloads release tarballs over HTTP."""

    def __init__(self, url_template: str, retries: int = 2, timeout: float = 60.0,
                 progress_callback: Optional[Callable] = None):
        self.url_template = url_template
        self.retries = retries
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.progress_callback = progress_callback

    def url_for(self, version: str) -> str:
        return self.url_template.format(version=version)

    @staticmethod
    def archive_name(version: str) -> str:
        return f"bit-{version}.tar.gz"

    async def fetch(self, version: str, opts: FetchOpts) -> FetchResult:
        dest_dir = opts.destination
        if await aiofiles.os.path.isdir(dest_dir):
            if not opts.override_dir and await aiofiles.os.listdir(dest_dir):
                logger.debug("%s already populated, skipping download", dest_dir)
                return FetchResult(downloaded_file=None, resolved_version=version)
            if opts.override_dir:
                await rmtree(dest_dir)
        await aiofiles.os.makedirs(dest_dir, exist_ok=True)

        url = self.url_for(version)
        dest = dest_dir / self.archive_name(version)
        attempt = 0
        while True:
            attempt += 1
            try:
                await self.download_file(url, dest)
                break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                await self._remove_partial(dest)
                # 4xx responses will not get better on retry
                if isinstance(e, aiohttp.ClientResponseError) and e.status < 500:
                    raise FetchError(f"download of {url} failed with HTTP {e.status}",
                                     version=version, cause=e) from e
                if attempt > self.retries:
                    raise FetchError(f"download of {url} failed after {attempt} attempts",
                                     version=version, cause=e) from e
                delay = 0.5 * 2 ** (attempt - 1)
                logger.warning("Download of %s failed (%s), retrying in %.1fs", url, e, delay)
                await asyncio.sleep(delay)
            except OSError as e:
                await self._remove_partial(dest)
                raise FetchError(f"cannot write {dest}", version=version, cause=e) from e

        logger.info("Downloaded %s to %s", url, dest)
        return FetchResult(downloaded_file=dest, resolved_version=version)

    async def download_file(self, url: str, dest: Path) -> None:
        """Stream ``url`` into ``dest``."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                total_size = int(resp.headers.get('Content-Length', 0))
                # Length of the encoded body, not comparable once decompressed
                expected_size = 0 if resp.headers.get('Content-Encoding') else total_size
                downloaded = 0

                async with aiofiles.open(dest, 'wb') as f:
                    async for chunk in resp.content.iter_chunked(64 * 1024):
                        await f.write(chunk)
                        downloaded += len(chunk)
                        if self.progress_callback:
                            await self.progress_callback(dest.name, downloaded, total_size)

        if expected_size and downloaded != expected_size:
            raise aiohttp.ClientPayloadError(
                f"expected {expected_size} bytes from {url}, received {downloaded}"
            )

    @staticmethod
    async def _remove_partial(dest: Path) -> None:
        if await aiofiles.os.path.exists(dest):
            await aiofiles.os.remove(dest)
