from __future__ import annotations

from typing import Optional


class ArcstreamError(Exception):
    """Base class for arcstream-specific errors."""


class PathError(ArcstreamError, ValueError):
    """A path argument is malformed or outside the expected root."""


class EntryError(ArcstreamError):
    """A FileEntry violates the file/directory/symlink invariant."""


class Cancelled(ArcstreamError):
    """The caller asked the operation to stop."""

    def __init__(self, message: str = "operation cancelled"):
        super().__init__(message)


# Symlink resolution
class SymlinkError(ArcstreamError):
    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class SymlinkLoopError(SymlinkError):
    pass


class SymlinkDepthError(SymlinkError):
    def __init__(self, message: str, path: str, hops: int, limit: int):
        super().__init__(message, path)
        self.hops = hops
        self.limit = limit


class DereferenceStatError(SymlinkError):
    pass


# Callback control flow; raised by extraction callbacks, never errors
class SkipDir(Exception):
    """Skip the remaining entries of the current entry's directory."""


class SkipAll(Exception):
    """Stop extraction early without reporting an error."""


def describe(exc: BaseException, path: Optional[str] = None) -> str:
    if path:
        return f"{path}: {exc}"
    return str(exc)
