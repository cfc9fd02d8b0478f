from __future__ import annotations

import functools
import logging
import os
import stat
from dataclasses import dataclass
from typing import FrozenSet, Iterator, List, Mapping, Optional, Sequence, Tuple

from .context import CancelToken, check
from .entry import FileEntry, FileInfo
from .errors import SymlinkLoopError
from .namemap import name_on_disk_to_name_in_archive
from .pathutil import SkipList
from .symlinks import follow_symlink


log = logging.getLogger(__name__)

_DEFAULT_PERMS = {
    stat.S_IFREG: 0o644,
    stat.S_IFDIR: 0o755,
    stat.S_IFLNK: 0o777,
}


@dataclass
class FromDiskOptions:
    """How files_from_disk treats what it finds.

    follow_symlinks: store link targets' content instead of the links.
    clear_attributes: drop timestamps and permissions for reproducible output.
    exclude: on-disk paths whose subtrees are left out; matched against the
        path as discovered, before any symlink is resolved.
    cancel: polled between entries.
    """
    follow_symlinks: bool = False
    clear_attributes: bool = False
    exclude: Sequence[str] = ()
    cancel: Optional[CancelToken] = None


@dataclass
class _Pending:
    logical: str                    # path as discovered; used for naming and exclusion
    real: str                       # path used for I/O
    st: os.stat_result
    link_target: str
    chain: FrozenSet[Tuple[int, int]]


def _disk_key(p: str) -> str:
    return os.path.normpath(p).replace(os.sep, "/")


def _snapshot(name: str, st: os.stat_result, clear: bool) -> FileInfo:
    info = FileInfo.from_stat(name, st)
    if not clear:
        return info
    fmt = stat.S_IFMT(info.mode)
    return FileInfo(name=name, size=info.size, mode=fmt | _DEFAULT_PERMS.get(fmt, 0o644), mtime=0.0)


def files_from_disk(filenames: Mapping[str, str], options: Optional[FromDiskOptions] = None) -> Iterator[FileEntry]:
    """Walk each root in ``filenames`` and yield its entries in pre-order.

    ``filenames`` maps a root on disk to its name in the archive ("" keeps
    the root's own base name; see name_on_disk_to_name_in_archive). A root's
    own entry always precedes its descendants, siblings come in name order.
    The walk is lazy and starts over on every call.
    """
    opts = options or FromDiskOptions()
    skip = SkipList(_disk_key(p) for p in opts.exclude)
    for root_on_disk, root_in_archive in filenames.items():
        yield from _walk_root(root_on_disk, root_in_archive or "", opts, skip)


def _resolve(logical: str, real: str, st: os.stat_result, opts: FromDiskOptions) -> Tuple[str, os.stat_result, str]:
    if not stat.S_ISLNK(st.st_mode):
        return real, st, ""
    if not opts.follow_symlinks:
        return real, st, os.readlink(real)
    final, final_st = follow_symlink(real)
    log.debug("following symlink %s -> %s", logical, final)
    return final, final_st, ""


def _walk_root(root_on_disk: str, root_in_archive: str, opts: FromDiskOptions, skip: SkipList) -> Iterator[FileEntry]:
    if skip and skip.skips(_disk_key(root_on_disk)):
        log.debug("excluded: %s", root_on_disk)
        return
    st = os.lstat(root_on_disk)
    real, st, target = _resolve(root_on_disk, root_on_disk, st, opts)
    stack: List[_Pending] = [_Pending(root_on_disk, real, st, target, frozenset())]

    while stack:
        check(opts.cancel)
        item = stack.pop()
        if skip and skip.skips(_disk_key(item.logical)):
            log.debug("excluded: %s", item.logical)
            continue

        mode = item.st.st_mode
        if not (stat.S_ISREG(mode) or stat.S_ISDIR(mode) or stat.S_ISLNK(mode)):
            log.debug("skipping special file %s (mode %o)", item.logical, stat.S_IFMT(mode))
            continue

        name = name_on_disk_to_name_in_archive(item.logical, root_on_disk, root_in_archive)
        base = os.path.basename(os.path.normpath(item.logical))
        info = _snapshot(base, item.st, opts.clear_attributes)
        if name:
            if stat.S_ISLNK(mode):
                yield FileEntry.symlink(name, info, item.link_target)
            elif stat.S_ISDIR(mode):
                yield FileEntry.directory(name, info)
            else:
                yield FileEntry.file(name, info, functools.partial(open, item.real, "rb"))

        if not stat.S_ISDIR(mode):
            continue

        ident = (item.st.st_dev, item.st.st_ino)
        if ident in item.chain:
            raise SymlinkLoopError(f"symlink loop detected: {item.logical} re-enters {item.real}", item.logical)
        chain = item.chain | {ident}

        with os.scandir(item.real) as it:
            names = sorted(e.name for e in it)
        children: List[_Pending] = []
        for child in names:
            logical = os.path.join(item.logical, child)
            child_real = os.path.join(item.real, child)
            cst = os.lstat(child_real)
            if stat.S_ISLNK(cst.st_mode) and skip and skip.skips(_disk_key(logical)):
                # excluded links are never resolved
                log.debug("excluded: %s", logical)
                continue
            r, cst, target = _resolve(logical, child_real, cst, opts)
            children.append(_Pending(logical, r, cst, target, chain))
        stack.extend(reversed(children))
