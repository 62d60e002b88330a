"""Shared fixtures: a real store on tmp_path, a canned catalog and a tarball-producing fetcher."""

import io
import shutil
import tarfile
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import AsyncMock

import pytest

from bvm.install import FetchOpts, FetchResult, InstallOrchestrator, Linker, TarArchiver
from bvm.versions import CatalogResolver, RemoteVersionList, VersionStore

CATALOG_VERSIONS = ["0.0.199", "0.0.200", "0.0.150"]

DEFAULT_FILES = {
    "bin/bit": "#!/bin/sh\necho bit\n",
    "package.json": '{"name": "bit"}\n',
}


def make_tarball(path: Path, files: Dict[str, str]) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


class TarballFetcher:
    """Fetcher that "downloads" a freshly built tarball into the destination."""

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self.files = files or DEFAULT_FILES
        self.calls = []

    async def fetch(self, version: str, opts: FetchOpts) -> FetchResult:
        self.calls.append((version, opts))
        if opts.override_dir and opts.destination.exists():
            shutil.rmtree(opts.destination)
        opts.destination.mkdir(parents=True, exist_ok=True)
        archive = opts.destination / f"bit-{version}.tar.gz"
        make_tarball(archive, {**self.files, "VERSION": version})
        return FetchResult(downloaded_file=archive, resolved_version=version)


@pytest.fixture
def listing():
    return RemoteVersionList.from_payload({"versions": [{"version": v} for v in CATALOG_VERSIONS]})


@pytest.fixture
def store(tmp_path):
    return VersionStore(tmp_path / "bvm")


@pytest.fixture
def resolver(listing):
    resolver = CatalogResolver("https://example.test/versions.json")
    resolver.list_remote = AsyncMock(return_value=listing)
    return resolver


@pytest.fixture
def fetcher():
    return TarballFetcher()


@pytest.fixture
def linker(store):
    return Linker(store, "bit")


@pytest.fixture
def orchestrator(store, resolver, fetcher, linker):
    return InstallOrchestrator(store, resolver, fetcher, TarArchiver(), linker)


def staging_leftovers(store: VersionStore):
    temp_dir = store.root_dir / ".tmp"
    if not temp_dir.exists():
        return []
    return list(temp_dir.iterdir())
