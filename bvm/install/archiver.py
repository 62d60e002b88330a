"""Release archive extraction."""

import asyncio
import gzip
import logging
import tarfile
import zlib
from pathlib import Path
from typing import Protocol

from ..errors import ArchiveCorruptError

logger = logging.getLogger(__name__)


class Archiver(Protocol):
    async def extract(self, archive_path: Path) -> None:
        """Extract ``archive_path`` into the directory that contains it."""
        ...


class TarArchiver:
    """Extracts (optionally compressed) tarballs in place."""

    async def extract(self, archive_path: Path) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self._extract, archive_path)

    @staticmethod
    def _extract(archive_path: Path) -> None:
        target_dir = archive_path.parent
        try:
            with tarfile.open(archive_path, "r:*") as tar:
                # The data filter rejects absolute paths, links out of the target and device files
                tar.extractall(path=target_dir, filter="data")
        except (tarfile.TarError, EOFError, gzip.BadGzipFile, zlib.error) as e:
            raise ArchiveCorruptError(f"failed to extract {archive_path.name}", cause=e) from e
        logger.debug("Extracted %s into %s", archive_path, target_dir)
