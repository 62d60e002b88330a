"""Error types raised while resolving, fetching and installing versions."""

from typing import Optional


class BvmError(Exception):
    """Base error. Carries the install stage and version it failed on, when known."""

    def __init__(self, message: str, version: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.version = version
        self.cause = cause
        self.stage = None

    def __str__(self) -> str:
        context = []
        if self.stage is not None:
            context.append(f"stage={self.stage.value}")
        if self.version:
            context.append(f"version={self.version}")
        if self.cause is not None:
            context.append(f"cause={self.cause!r}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class VersionResolutionError(BvmError):
    pass


class CatalogUnavailable(VersionResolutionError):
    """The remote version listing could not be retrieved or parsed."""


class VersionNotFound(VersionResolutionError):
    """The requested version is not in the remote catalog."""


class FetchError(BvmError):
    """Network or transport failure. Retrying the whole install is safe."""


class ArchiveCorruptError(BvmError):
    pass


class StoreIOError(BvmError):
    """Filesystem failure while changing the version store or the current link."""

    def __init__(self, message: str, path=None, version: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, version=version, cause=cause)
        self.path = path


class CommitConflictError(StoreIOError):
    """The version directory already exists and overwriting was not requested."""
