"""Install pipeline: resolve, fetch, extract, commit, link."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional

import aiofiles.os

from ..errors import BvmError, CommitConflictError, StoreIOError
from ..utils.progress import NullProgress, ProgressReporter
from ..versions.catalog import CatalogResolver, normalize_token
from ..versions.store import VersionStore
from .archiver import Archiver
from .fetcher import Fetcher, FetchOpts
from .linker import Linker

logger = logging.getLogger(__name__)


class InstallStage(Enum):
    RESOLVING = "resolving"
    DECIDING = "deciding"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    COMMITTING = "committing"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class InstallOpts:
    override: bool = False
    replace: bool = False


@dataclass(frozen=True)
class InstallResult:
    """
    What one install call did.

    Attributes:
        installed_version: Concrete version that was installed
        download_required: Whether an archive was downloaded
        replaced_current: Whether the current link was repointed
        version_path: Directory of the installed version
    """
    installed_version: str
    download_required: bool
    replaced_current: bool
    version_path: Path

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "installed_version": self.installed_version,
            "download_required": self.download_required,
            "replaced_current": self.replaced_current,
            "version_path": str(self.version_path),
        }


@dataclass
class _InstallRun:
    """Stage and resolved version of one ``install`` call."""
    stage: InstallStage = InstallStage.RESOLVING
    version: Optional[str] = None


class InstallOrchestrator:
    """Installs versions into a VersionStore.

    A version directory only ever appears through ``VersionStore.commit``,
    and the staging area used to build it is removed on every exit path.
    Concurrent ``install`` calls on one orchestrator each track their own stage;
    ``stage`` holds the final stage of the most recently finished call.
    """

    def __init__(self, store: VersionStore, resolver: CatalogResolver, fetcher: Fetcher,
                 archiver: Archiver, linker: Linker, progress: Optional[ProgressReporter] = None):
        self.store = store
        self.resolver = resolver
        self.fetcher = fetcher
        self.archiver = archiver
        self.linker = linker
        self.progress = progress or NullProgress()
        self.stage: Optional[InstallStage] = None

    async def install(self, token: Optional[str], opts: Optional[InstallOpts] = None) -> InstallResult:
        opts = opts or InstallOpts()
        token = normalize_token(token)
        run = _InstallRun()
        try:
            version = await self._step(f"resolving version {token}", self.resolver.resolve(token))
            run.version = version

            run.stage = InstallStage.DECIDING
            exists = await self.store.exists(version)
            if exists and not opts.override:
                logger.info("Version %s already installed, skipping download", version)
                download_required = False
            else:
                download_required = await self._build_and_commit(run, opts.override)

            run.stage = InstallStage.LINKING
            replaced_current = await self.linker.maybe_relink(opts.replace, version)

            run.stage = InstallStage.DONE
            return InstallResult(
                installed_version=version,
                download_required=download_required,
                replaced_current=replaced_current,
                version_path=self.store.path_for(version),
            )
        except BvmError as e:
            self._fail(e, run)
            raise
        except OSError as e:
            error = StoreIOError(f"filesystem error while {run.stage.value}", path=e.filename,
                                 version=run.version, cause=e)
            self._fail(error, run)
            raise error from e
        except BaseException:
            # Cancellation included
            run.stage = InstallStage.FAILED
            raise
        finally:
            self.stage = run.stage
            self.progress.stop()

    async def _build_and_commit(self, run: _InstallRun, override: bool) -> bool:
        """Fetch and extract into a fresh staging area, then commit it. Returns whether a download happened."""
        version = run.version
        run.stage = InstallStage.FETCHING
        staging = await self.store.create_staging(version)
        try:
            destination = staging / version
            result = await self._step(
                f"fetching version {version}",
                self.fetcher.fetch(version, FetchOpts(destination=destination, override_dir=True)),
            )

            archive = result.downloaded_file
            if archive is not None:
                run.stage = InstallStage.EXTRACTING
                await self._step(f"extracting {archive.name}", self.archiver.extract(archive))
                await aiofiles.os.remove(archive)

            run.stage = InstallStage.COMMITTING
            try:
                await self._step(
                    "moving from temp folder to final location",
                    self.store.commit(destination, version, overwrite=override),
                )
            except CommitConflictError:
                # Another install of the same version committed first; its directory is complete
                if not await self.store.exists(version):
                    raise
                logger.warning("Version %s was installed concurrently, keeping that copy", version)

            return archive is not None
        finally:
            await self.store.discard(staging)

    async def _step(self, label: str, awaitable: Awaitable):
        self.progress.start(label)
        started = time.monotonic()
        result = await awaitable
        self.progress.succeed(label, time.monotonic() - started)
        return result

    def _fail(self, error: BvmError, run: _InstallRun) -> None:
        if error.stage is None:
            error.stage = run.stage
        if error.version is None:
            error.version = run.version
        run.stage = InstallStage.FAILED
        logger.error("Install failed: %s", error)
