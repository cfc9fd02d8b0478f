from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from .context import CancelToken
from .entry import EntryKind, FileEntry
from .errors import PathError
from .pathutil import norm_path
from .zip import Zip


log = logging.getLogger(__name__)

EXISTS_POLICIES = ("overwrite", "skip", "fail")


@dataclass
class UnpackStats:
    files: int = 0
    dirs: int = 0
    symlinks: int = 0
    skipped: int = 0
    bytes: int = 0


def _safe_chmod(path: str, mode: Optional[int]) -> None:
    """Best-effort chmod that never raises.

    Args:
        path: Destination filesystem path to update.
        mode: POSIX permission bits to apply (e.g., 0o755). If None, no change is made.
    """
    if mode is None:
        return
    try:
        os.chmod(path, mode)
    except OSError as exc:
        log.warning("failed to set mode on %s: %s", path, exc)


def _safe_utime(path: str, mtime: Optional[float]) -> None:
    """Best-effort utime that never raises; atime is set to mtime."""
    if not mtime:
        return
    try:
        os.utime(path, (mtime, mtime), follow_symlinks=False)
    except (OSError, NotImplementedError) as exc:
        log.warning("failed to set timestamps on %s: %s", path, exc)


def _check_inside(root_real: str, path: str, rel: str) -> None:
    """Refuse ``path`` when it resolves outside ``root_real``, e.g. through an extracted symlink."""
    real = os.path.realpath(path)
    if real != root_real and not real.startswith(root_real.rstrip(os.sep) + os.sep):
        raise PathError(f"entry {rel!r} resolves outside the destination: {real}")


def _clear_destination(dst: str, exists: str, what: str) -> bool:
    """Apply the exists policy; return False when the entry should be skipped."""
    if not os.path.lexists(dst):
        return True
    if exists == "skip":
        return False
    if exists == "overwrite":
        if os.path.isdir(dst) and not os.path.islink(dst):
            raise IsADirectoryError(f"Cannot overwrite directory with {what}: {dst}")
        os.remove(dst)
        return True
    raise FileExistsError(f"Destination exists: {dst}")


def unpack_to_directory(
    ctx: Optional[CancelToken],
    fmt: Zip,
    source: BinaryIO,
    outdir: str,
    *,
    paths: Optional[Sequence[str]] = None,
    exists: str = "fail",
) -> UnpackStats:
    """Extract every entry of ``source`` beneath ``outdir``.

    Entry names containing "..", and entries whose parent directory resolves
    outside ``outdir`` (through a symlink extracted earlier or already on
    disk), are refused with PathError before anything is written for them.
    Directory permissions are applied after all entries so read-only
    directories do not block their own contents.
    """
    if exists not in EXISTS_POLICIES:
        raise ValueError(f"exists must be one of {EXISTS_POLICIES}, got {exists!r}")
    stats = UnpackStats()
    os.makedirs(outdir, exist_ok=True)
    root_real = os.path.realpath(outdir)
    deferred_dirs = []

    def _handle(_ctx: Optional[CancelToken], entry: FileEntry) -> None:
        rel = norm_path(entry.name_in_archive)
        if not rel:
            return
        dst = os.path.join(outdir, *rel.split("/"))
        _check_inside(root_real, os.path.dirname(dst), rel)
        info = entry.info

        if entry.kind == EntryKind.DIR:
            _check_inside(root_real, dst, rel)
            os.makedirs(dst, exist_ok=True)
            deferred_dirs.append((dst, info.permissions, info.mtime))
            stats.dirs += 1
            log.debug("creating: %s/", rel)
            return

        os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
        if not _clear_destination(dst, exists, entry.kind.name.lower()):
            log.info("skipping: %s (exists)", rel)
            stats.skipped += 1
            return

        if entry.kind == EntryKind.SYMLINK:
            os.symlink(entry.link_target, dst)
            stats.symlinks += 1
            log.debug("symlinking: %s -> %s", rel, entry.link_target)
            return

        with entry.open() as src, open(dst, "wb") as out:
            shutil.copyfileobj(src, out)
        stats.files += 1
        stats.bytes += info.size
        _safe_chmod(dst, info.permissions)
        _safe_utime(dst, info.mtime)
        log.debug("unpacking: %s", rel)

    fmt.extract(ctx, source, _handle, paths_in_archive=paths)

    # deepest first so parents are still writable while children are touched
    for dst, perms, mtime in reversed(deferred_dirs):
        _safe_chmod(dst, perms)
        _safe_utime(dst, mtime)
    return stats
