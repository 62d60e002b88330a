"""Version installation."""

from .archiver import Archiver, TarArchiver
from .fetcher import Fetcher, FetchOpts, FetchResult, HttpFetcher
from .linker import Linker
from .orchestrator import InstallOpts, InstallOrchestrator, InstallResult, InstallStage

__all__ = [
    "Archiver",
    "TarArchiver",
    "Fetcher",
    "FetchOpts",
    "FetchResult",
    "HttpFetcher",
    "Linker",
    "InstallOpts",
    "InstallOrchestrator",
    "InstallResult",
    "InstallStage",
]
