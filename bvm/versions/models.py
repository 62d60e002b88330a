"""Data models for the remote version catalog."""

from pydantic import BaseModel
from typing import List, Optional, Tuple
from packaging.version import InvalidVersion, Version


def version_sort_key(version: str) -> Tuple[int, object]:
    """Semver ordering key. Unparseable versions sort first, among themselves lexically."""
    try:
        return (1, Version(version))
    except InvalidVersion:
        return (0, version)


class RemoteVersion(BaseModel):
    version: str
    url: Optional[str] = None


class RemoteVersionList(BaseModel):
    versions: List[RemoteVersion] = []

    def sorted(self) -> List[RemoteVersion]:
        """Versions in ascending version order."""
        return sorted(self.versions, key=lambda v: version_sort_key(v.version))

    def latest(self) -> Optional[RemoteVersion]:
        """Highest version by version ordering, not by position in the listing."""
        if not self.versions:
            return None
        return max(self.versions, key=lambda v: version_sort_key(v.version))

    def get(self, version: str) -> Optional[RemoteVersion]:
        for entry in self.versions:
            if entry.version == version:
                return entry
        return None

    def __contains__(self, version: str) -> bool:
        return self.get(version) is not None

    def __len__(self) -> int:
        return len(self.versions)

    @classmethod
    def from_payload(cls, data) -> "RemoteVersionList":
        """Accept ``{"versions": [...]}`` or a bare list of entries or version strings."""
        if isinstance(data, dict):
            entries = data.get("versions", [])
        else:
            entries = data
        if not isinstance(entries, list):
            raise ValueError("catalog versions must be a list")
        versions = [
            {"version": entry} if isinstance(entry, str) else entry
            for entry in entries
        ]
        return cls(versions=versions)
