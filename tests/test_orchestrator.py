"""Tests for the install pipeline."""

import asyncio
import os
from unittest.mock import AsyncMock, patch

import pytest

from bvm.errors import (
    ArchiveCorruptError,
    FetchError,
    StoreIOError,
    VersionNotFound,
)
from bvm.install import FetchResult, InstallOpts, InstallOrchestrator, InstallStage, TarArchiver

from conftest import TarballFetcher, staging_leftovers


@pytest.mark.asyncio
async def test_install_latest_on_empty_store(orchestrator, store, linker, fetcher):
    result = await orchestrator.install("latest")

    assert result.installed_version == "0.0.200"
    assert result.download_required is True
    assert result.replaced_current is True
    assert result.version_path == store.path_for("0.0.200")
    assert (result.version_path / "bin" / "bit").exists()
    assert (result.version_path / "VERSION").read_text() == "0.0.200"
    # the archive is not part of the installed payload
    assert not (result.version_path / "bit-0.0.200.tar.gz").exists()
    assert await linker.current() == "0.0.200"
    assert orchestrator.stage == InstallStage.DONE
    assert staging_leftovers(store) == []

    version, opts = fetcher.calls[0]
    assert version == "0.0.200"
    assert opts.override_dir is True


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "  ", "LATEST"])
async def test_missing_token_means_latest(orchestrator, resolver, token):
    result = await orchestrator.install(token)

    assert result.installed_version == "0.0.200"
    resolver.list_remote.assert_awaited_once()


@pytest.mark.asyncio
async def test_second_install_takes_fast_path(orchestrator, fetcher):
    first = await orchestrator.install("0.0.199")
    second = await orchestrator.install("0.0.199")

    assert first.download_required is True
    assert second.download_required is False
    assert second.version_path == first.version_path
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_installed_version_not_relinked_without_replace(orchestrator, linker, fetcher):
    await orchestrator.install("0.0.200")
    await orchestrator.install("0.0.199")
    assert await linker.current() == "0.0.199"

    result = await orchestrator.install("0.0.200", InstallOpts(replace=False))

    assert result.download_required is False
    assert result.replaced_current is False
    assert await linker.current() == "0.0.199"
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_new_version_without_replace_keeps_current(orchestrator, linker):
    await orchestrator.install("0.0.150")

    result = await orchestrator.install("0.0.200", InstallOpts(replace=False))

    assert result.download_required is True
    assert result.replaced_current is False
    assert await linker.current() == "0.0.150"


@pytest.mark.asyncio
async def test_replace_repoints_current(orchestrator, linker):
    await orchestrator.install("0.0.150")

    result = await orchestrator.install("0.0.200", InstallOpts(replace=True))

    assert result.replaced_current is True
    assert await linker.current() == "0.0.200"


@pytest.mark.asyncio
async def test_override_refetches_existing_version(orchestrator, store, fetcher):
    first = await orchestrator.install("0.0.200")
    marker = first.version_path / "local-change"
    marker.write_text("x")

    result = await orchestrator.install("0.0.200", InstallOpts(override=True))

    assert result.download_required is True
    assert len(fetcher.calls) == 2
    assert await store.exists("0.0.200")
    assert (result.version_path / "bin" / "bit").exists()
    assert not marker.exists()
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_failed_override_keeps_previous_copy(orchestrator, store, fetcher, linker):
    await orchestrator.install("0.0.200")
    fetcher.fetch = AsyncMock(side_effect=FetchError("connection reset", version="0.0.200"))

    with pytest.raises(FetchError):
        await orchestrator.install("0.0.200", InstallOpts(override=True))

    assert await store.exists("0.0.200")
    assert await linker.current() == "0.0.200"
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_resolution_failure_has_no_side_effects(orchestrator, store, fetcher):
    with pytest.raises(VersionNotFound) as excinfo:
        await orchestrator.install("9.9.9")

    assert excinfo.value.stage == InstallStage.RESOLVING
    assert fetcher.calls == []
    assert not store.versions_dir.exists()
    assert orchestrator.stage == InstallStage.FAILED


@pytest.mark.asyncio
async def test_fetch_failure_leaves_store_and_link_untouched(orchestrator, store, fetcher, linker):
    await orchestrator.install("0.0.150")
    fetcher.fetch = AsyncMock(side_effect=FetchError("timed out"))

    with pytest.raises(FetchError) as excinfo:
        await orchestrator.install("0.0.200")

    assert excinfo.value.stage == InstallStage.FETCHING
    assert excinfo.value.version == "0.0.200"
    assert not store.path_for("0.0.200").exists()
    assert await linker.current() == "0.0.150"
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_corrupt_archive_is_discarded(store, resolver, linker):
    class GarbageFetcher(TarballFetcher):
        async def fetch(self, version, opts):
            opts.destination.mkdir(parents=True, exist_ok=True)
            archive = opts.destination / "bit.tar.gz"
            archive.write_bytes(b"this is not a tarball")
            return FetchResult(downloaded_file=archive, resolved_version=version)

    orchestrator = InstallOrchestrator(store, resolver, GarbageFetcher(), TarArchiver(), linker)

    with pytest.raises(ArchiveCorruptError) as excinfo:
        await orchestrator.install("0.0.200")

    assert excinfo.value.stage == InstallStage.EXTRACTING
    assert not await store.exists("0.0.200")
    assert not store.path_for("0.0.200").exists()
    assert await linker.current() is None
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_crash_before_commit_leaves_nothing_visible(orchestrator, store, linker):
    with patch.object(store, "commit", AsyncMock(side_effect=StoreIOError("disk full"))):
        with pytest.raises(StoreIOError) as excinfo:
            await orchestrator.install("0.0.200")

    assert excinfo.value.stage == InstallStage.COMMITTING
    assert not await store.exists("0.0.200")
    assert not store.path_for("0.0.200").exists()
    assert await linker.current() is None
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_raw_filesystem_errors_become_store_errors(orchestrator, store):
    with patch.object(store, "commit", AsyncMock(side_effect=PermissionError(13, "denied", "/x"))):
        with pytest.raises(StoreIOError) as excinfo:
            await orchestrator.install("0.0.200")

    assert isinstance(excinfo.value.cause, PermissionError)
    assert excinfo.value.stage == InstallStage.COMMITTING


@pytest.mark.asyncio
async def test_fetcher_without_download_commits_staged_layout(store, resolver, linker):
    class PreparedFetcher:
        async def fetch(self, version, opts):
            (opts.destination / "bin").mkdir(parents=True)
            (opts.destination / "bin" / "bit").write_text("ready")
            return FetchResult(downloaded_file=None, resolved_version=version)

    archiver = AsyncMock()
    orchestrator = InstallOrchestrator(store, resolver, PreparedFetcher(), archiver, linker)

    result = await orchestrator.install("0.0.199")

    assert result.download_required is False
    assert (result.version_path / "bin" / "bit").read_text() == "ready"
    archiver.extract.assert_not_awaited()


@pytest.mark.asyncio
async def test_losing_a_concurrent_commit_keeps_winner(store, resolver, linker):
    class RacingFetcher(TarballFetcher):
        async def fetch(self, version, opts):
            result = await super().fetch(version, opts)
            # the other install finishes while this one is still extracting
            winner = store.path_for(version)
            winner.mkdir(parents=True)
            (winner / "winner").write_text("first")
            return result

    orchestrator = InstallOrchestrator(store, resolver, RacingFetcher(), TarArchiver(), linker)

    result = await orchestrator.install("0.0.200")

    assert result.installed_version == "0.0.200"
    assert (result.version_path / "winner").read_text() == "first"
    assert not (result.version_path / "VERSION").exists()
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_concurrent_installs_of_different_versions(orchestrator, store):
    results = await asyncio.gather(
        orchestrator.install("0.0.150", InstallOpts(replace=False)),
        orchestrator.install("0.0.199", InstallOpts(replace=False)),
    )

    assert [r.installed_version for r in results] == ["0.0.150", "0.0.199"]
    assert await store.installed() == ["0.0.150", "0.0.199"]


@pytest.mark.asyncio
async def test_concurrent_failure_reports_its_own_stage(store, resolver, linker):
    class SlowFailingFetcher(TarballFetcher):
        async def fetch(self, version, opts):
            if version == "0.0.199":
                await asyncio.sleep(0.05)
                raise FetchError("connection reset")
            return await super().fetch(version, opts)

    orchestrator = InstallOrchestrator(store, resolver, SlowFailingFetcher(), TarArchiver(), linker)

    failed, succeeded = await asyncio.gather(
        orchestrator.install("0.0.199", InstallOpts(replace=False)),
        orchestrator.install("0.0.200", InstallOpts(replace=False)),
        return_exceptions=True,
    )

    assert isinstance(failed, FetchError)
    assert failed.stage == InstallStage.FETCHING
    assert failed.version == "0.0.199"
    assert succeeded.installed_version == "0.0.200"
    assert await store.installed() == ["0.0.200"]
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_empty_version_directory_is_not_installed(orchestrator, store, fetcher):
    store.path_for("0.0.200").mkdir(parents=True)

    result = await orchestrator.install("0.0.200")

    assert result.download_required is True
    assert len(fetcher.calls) == 1
    assert (store.path_for("0.0.200") / "VERSION").read_text() == "0.0.200"
    assert staging_leftovers(store) == []


@pytest.mark.asyncio
async def test_cancellation_cleans_staging(store, resolver, linker):
    class HangingFetcher(TarballFetcher):
        async def fetch(self, version, opts):
            opts.destination.mkdir(parents=True, exist_ok=True)
            (opts.destination / "partial").write_text("half")
            await asyncio.sleep(3600)

    orchestrator = InstallOrchestrator(store, resolver, HangingFetcher(), TarArchiver(), linker)
    task = asyncio.ensure_future(orchestrator.install("0.0.200"))
    while not staging_leftovers(store):
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert orchestrator.stage == InstallStage.FAILED
    assert staging_leftovers(store) == []
    assert not store.path_for("0.0.200").exists()


@pytest.mark.asyncio
async def test_progress_reporter_sees_each_step(store, resolver, fetcher, linker):
    class Recorder:
        def __init__(self):
            self.events = []

        def start(self, label):
            self.events.append(("start", label))

        def succeed(self, label, duration):
            self.events.append(("succeed", label))

        def stop(self):
            self.events.append(("stop", None))

    progress = Recorder()
    orchestrator = InstallOrchestrator(store, resolver, fetcher, TarArchiver(), linker, progress=progress)

    await orchestrator.install("0.0.200")

    succeeded = [label for kind, label in progress.events if kind == "succeed"]
    assert succeeded == [
        "resolving version 0.0.200",
        "fetching version 0.0.200",
        "extracting bit-0.0.200.tar.gz",
        "moving from temp folder to final location",
    ]
    assert progress.events[-1] == ("stop", None)


@pytest.mark.asyncio
async def test_result_serializes(orchestrator):
    result = await orchestrator.install("0.0.200")

    data = result.to_dict()
    assert data["installed_version"] == "0.0.200"
    assert data["version_path"] == os.fspath(result.version_path)
