from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO, Callable, Optional

from .errors import EntryError


class EntryKind(IntEnum):
    FILE = 0
    DIR = 1
    SYMLINK = 2


@dataclass(frozen=True)
class FileInfo:
    """Metadata snapshot taken when an entry is discovered.

    ``mode`` carries both type and permission bits, as in ``st_mode``.
    """
    name: str
    size: int
    mode: int
    mtime: float = 0.0

    @classmethod
    def from_stat(cls, name: str, st: os.stat_result) -> "FileInfo":
        size = st.st_size if stat.S_ISREG(st.st_mode) else 0
        return cls(name=name, size=size, mode=st.st_mode, mtime=st.st_mtime)

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    @property
    def is_regular(self) -> bool:
        return stat.S_ISREG(self.mode)

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)

    @property
    def kind(self) -> EntryKind:
        if self.is_dir:
            return EntryKind.DIR
        if self.is_symlink:
            return EntryKind.SYMLINK
        if self.is_regular:
            return EntryKind.FILE
        raise EntryError(f"{self.name}: unsupported file type {stat.S_IFMT(self.mode):o}")


@dataclass(frozen=True)
class FileEntry:
    """One file, directory or symlink exchanged between traversal and drivers.

    Exactly one kind applies, decided by ``info.mode``. ``link_target`` is set
    iff the entry is a symlink, and ``opener`` iff it is a regular file.
    """
    name_in_archive: str
    info: FileInfo
    link_target: str = ""
    opener: Optional[Callable[[], BinaryIO]] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        kind = self.info.kind
        if kind == EntryKind.SYMLINK and not self.link_target:
            raise EntryError(f"{self.name_in_archive}: symlink entry without a link target")
        if kind != EntryKind.SYMLINK and self.link_target:
            raise EntryError(f"{self.name_in_archive}: only symlinks carry a link target")
        if kind == EntryKind.FILE and self.opener is None:
            raise EntryError(f"{self.name_in_archive}: regular file entry without content")
        if kind != EntryKind.FILE and self.opener is not None:
            raise EntryError(f"{self.name_in_archive}: only regular files have content")

    @classmethod
    def file(cls, name_in_archive: str, info: FileInfo, opener: Callable[[], BinaryIO]) -> "FileEntry":
        return cls(name_in_archive=name_in_archive, info=info, opener=opener)

    @classmethod
    def directory(cls, name_in_archive: str, info: FileInfo) -> "FileEntry":
        return cls(name_in_archive=name_in_archive, info=info)

    @classmethod
    def symlink(cls, name_in_archive: str, info: FileInfo, link_target: str) -> "FileEntry":
        return cls(name_in_archive=name_in_archive, info=info, link_target=link_target)

    @property
    def kind(self) -> EntryKind:
        return self.info.kind

    @property
    def is_dir(self) -> bool:
        return self.info.is_dir

    @property
    def is_symlink(self) -> bool:
        return self.info.is_symlink

    def open(self) -> BinaryIO:
        if self.opener is None:
            raise EntryError(f"{self.name_in_archive}: {self.kind.name.lower()} entries have no content")
        return self.opener()
