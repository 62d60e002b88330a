"""On-disk store of installed versions.

Layout under the root directory::

    versions/<version>/   one complete extraction per installed version
    links/<name>          symlinks into versions/
    .tmp/                 staging areas and directories being deleted

``.tmp`` lives next to ``versions`` so moving between them is a rename on
one filesystem, never a copy.
"""

import asyncio
import errno
import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import List

import aiofiles.os

from ..errors import CommitConflictError, StoreIOError
from .models import version_sort_key

logger = logging.getLogger(__name__)

_CONFLICT_ERRNOS = (errno.EEXIST, errno.ENOTEMPTY)


async def rmtree(path: Path) -> None:
    """Delete a directory tree without blocking the event loop."""
    await asyncio.get_running_loop().run_in_executor(None, shutil.rmtree, path)


async def _lexists(path: Path) -> bool:
    # Dangling symlinks count as existing
    return await aiofiles.os.path.islink(path) or await aiofiles.os.path.exists(path)


class VersionStore:
    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)
        self.versions_dir = self.root_dir / "versions"
        self.links_dir = self.root_dir / "links"
        self._temp_dir = self.root_dir / ".tmp"

    def path_for(self, version: str) -> Path:
        """Canonical directory of a version."""
        if not version or version in (".", "..") or "/" in version or "\\" in version:
            raise StoreIOError(f"invalid version identifier {version!r}", version=version)
        return self.versions_dir / version

    def link_path(self, name: str) -> Path:
        return self.links_dir / name

    async def exists(self, version: str) -> bool:
        """True if the version directory exists and is not empty."""
        path = self.path_for(version)
        if not await aiofiles.os.path.isdir(path):
            return False
        try:
            return len(await aiofiles.os.listdir(path)) > 0
        except OSError as e:
            raise StoreIOError(f"cannot read {path}", path=path, version=version, cause=e) from e

    async def temp_dir(self) -> Path:
        """Scratch root for staging, created if missing."""
        try:
            await aiofiles.os.makedirs(self._temp_dir, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"cannot create {self._temp_dir}", path=self._temp_dir, cause=e) from e
        return self._temp_dir

    async def create_staging(self, version: str) -> Path:
        """A fresh staging directory, unique to one install."""
        temp_dir = await self.temp_dir()
        try:
            staging = await asyncio.get_running_loop().run_in_executor(
                None, lambda: tempfile.mkdtemp(prefix=f"{version}-", dir=temp_dir)
            )
        except OSError as e:
            raise StoreIOError(f"cannot create staging area in {temp_dir}", path=temp_dir,
                               version=version, cause=e) from e
        return Path(staging)

    async def discard(self, path: Path) -> None:
        """Best effort removal of scratch content (staging areas, replaced versions)."""
        if not await _lexists(path):
            return
        try:
            await rmtree(path)
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)

    async def commit(self, staged: Path, version: str, overwrite: bool = False) -> Path:
        """Promote a fully prepared directory into the store by renaming it.

        Without ``overwrite`` an installed version is never touched and
        ``CommitConflictError`` is raised. An empty directory left at the
        destination is not an installation and is swapped out like an
        overwrite. With ``overwrite`` the new tree is put in place before the
        old one is deleted.
        """
        dest = self.path_for(version)
        try:
            await aiofiles.os.makedirs(self.versions_dir, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"cannot create {self.versions_dir}", path=self.versions_dir,
                               version=version, cause=e) from e

        if await _lexists(dest):
            if not overwrite and await self.exists(version):
                raise CommitConflictError(f"{dest} already exists", path=dest, version=version)
            await self._replace(staged, dest, version)
            return dest

        try:
            await aiofiles.os.rename(staged, dest)
        except OSError as e:
            if e.errno in _CONFLICT_ERRNOS or isinstance(e, FileExistsError):
                raise CommitConflictError(f"{dest} already exists", path=dest, version=version,
                                          cause=e) from e
            raise StoreIOError(f"cannot move {staged} to {dest}", path=dest, version=version,
                               cause=e) from e
        logger.debug("Committed %s to %s", version, dest)
        return dest

    async def _replace(self, staged: Path, dest: Path, version: str) -> None:
        aside = (await self.temp_dir()) / f"{version}.old-{uuid.uuid4().hex[:8]}"
        try:
            await aiofiles.os.rename(dest, aside)
        except OSError as e:
            raise StoreIOError(f"cannot move {dest} aside", path=dest, version=version, cause=e) from e

        try:
            await aiofiles.os.rename(staged, dest)
        except OSError as e:
            # Put the previous installation back
            try:
                await aiofiles.os.rename(aside, dest)
            except OSError as restore_error:
                raise StoreIOError(
                    f"cannot move {staged} to {dest}; previous copy left at {aside}",
                    path=aside, version=version, cause=restore_error,
                ) from e
            raise StoreIOError(f"cannot move {staged} to {dest}", path=dest, version=version,
                               cause=e) from e

        logger.debug("Replaced %s, deleting previous copy", dest)
        await self.discard(aside)

    async def remove(self, version: str) -> None:
        """Delete an installed version. The canonical path disappears in one rename."""
        dest = self.path_for(version)
        if not await _lexists(dest):
            return
        aside = (await self.temp_dir()) / f"{version}.removed-{uuid.uuid4().hex[:8]}"
        try:
            await aiofiles.os.rename(dest, aside)
            await rmtree(aside)
        except OSError as e:
            raise StoreIOError(f"cannot remove {dest}", path=dest, version=version, cause=e) from e
        logger.info("Removed version %s", version)

    async def installed(self) -> List[str]:
        """Installed versions in ascending version order."""
        if not await aiofiles.os.path.isdir(self.versions_dir):
            return []
        try:
            names = await aiofiles.os.listdir(self.versions_dir)
        except OSError as e:
            raise StoreIOError(f"cannot read {self.versions_dir}", path=self.versions_dir, cause=e) from e
        versions = [name for name in names if await self.exists(name)]
        return sorted(versions, key=version_sort_key)
