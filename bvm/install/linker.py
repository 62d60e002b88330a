"""Current version link."""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import aiofiles.os

from ..errors import StoreIOError
from ..versions.store import VersionStore

logger = logging.getLogger(__name__)


class Linker:
    """Manages the symlink that marks one installed version as current.

    The link is always swapped with a single rename, so readers see either
    the old target or the new one.
    """

    def __init__(self, store: VersionStore, link_name: str = "bit"):
        self.store = store
        self.link_name = link_name

    @property
    def link_path(self) -> Path:
        return self.store.link_path(self.link_name)

    async def current(self) -> Optional[str]:
        """Version the link points at, or None if there is no usable link."""
        link = self.link_path
        if not await aiofiles.os.path.islink(link):
            return None
        target = Path(await aiofiles.os.readlink(link))
        if not target.is_absolute():
            target = link.parent / target
        if not await aiofiles.os.path.isdir(target):
            logger.warning("Current link %s points at missing %s", link, target)
            return None
        return target.name

    async def link(self, version: str) -> Path:
        """Point the current link at an installed version."""
        version_dir = self.store.path_for(version)
        if not await self.store.exists(version):
            raise StoreIOError(f"version {version} is not installed", path=version_dir, version=version)

        link = self.link_path
        target = os.path.relpath(version_dir, link.parent)
        tmp_link = link.parent / f".{self.link_name}.{uuid.uuid4().hex[:8]}.tmp"
        try:
            await aiofiles.os.makedirs(link.parent, exist_ok=True)
            await aiofiles.os.symlink(target, tmp_link, target_is_directory=True)
            await aiofiles.os.replace(tmp_link, link)
        except OSError as e:
            if await aiofiles.os.path.islink(tmp_link):
                await aiofiles.os.unlink(tmp_link)
            raise StoreIOError(f"cannot link {link} to {version_dir}", path=link, version=version,
                               cause=e) from e
        logger.info("Linked %s to version %s", link, version)
        return link

    async def maybe_relink(self, force_replace: bool, version: str) -> bool:
        """Relink when forced or when there is no current version. Returns whether it relinked."""
        if force_replace or await self.current() is None:
            await self.link(version)
            return True
        return False
