"""
arcstream: streaming archive packing and unpacking.

Features:

- Disk traversal that maps on-disk roots to archive names, with per-root
  renames, subtree exclusion, and symlinks either preserved or followed.
- Bounded symlink resolution (loop detection, 40-hop limit).
- Hierarchical include/exclude path matching with a minimal skip list.
- Zip driver: write an ordered sequence of entries into a stream, and read a
  stream back as entries handed to a callback, with symlinks kept intact.
- Cooperative cancellation checked between entries.
"""

from .context import CancelToken
from .disk import FromDiskOptions, files_from_disk
from .entry import EntryKind, FileEntry, FileInfo
from .errors import (
    ArcstreamError,
    Cancelled,
    DereferenceStatError,
    EntryError,
    PathError,
    SkipAll,
    SkipDir,
    SymlinkDepthError,
    SymlinkError,
    SymlinkLoopError,
)
from .namemap import name_on_disk_to_name_in_archive
from .pathutil import SkipList, file_is_included, path_matches, top_dir, trim_top_dir
from .symlinks import MAX_SYMLINK_DEPTH, follow_symlink
from .zip import Zip

__version__ = "0.1"

__all__ = [
    "CancelToken",
    "FromDiskOptions",
    "files_from_disk",
    "EntryKind",
    "FileEntry",
    "FileInfo",
    "ArcstreamError",
    "Cancelled",
    "DereferenceStatError",
    "EntryError",
    "PathError",
    "SkipAll",
    "SkipDir",
    "SymlinkDepthError",
    "SymlinkError",
    "SymlinkLoopError",
    "name_on_disk_to_name_in_archive",
    "SkipList",
    "file_is_included",
    "path_matches",
    "top_dir",
    "trim_top_dir",
    "MAX_SYMLINK_DEPTH",
    "follow_symlink",
    "Zip",
]
