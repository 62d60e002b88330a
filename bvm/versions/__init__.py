"""Version catalog and on-disk version store."""

from .catalog import LATEST, CatalogResolver, normalize_token
from .models import RemoteVersion, RemoteVersionList, version_sort_key
from .store import VersionStore

__all__ = [
    "LATEST",
    "CatalogResolver",
    "normalize_token",
    "RemoteVersion",
    "RemoteVersionList",
    "version_sort_key",
    "VersionStore",
]
