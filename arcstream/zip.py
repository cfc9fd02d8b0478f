from __future__ import annotations

import functools
import logging
import posixpath
import shutil
import stat
import sys
import tempfile
import time
import zipfile
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterable, Optional, Sequence, Tuple

from .context import CancelToken, check
from .entry import EntryKind, FileEntry, FileInfo
from .errors import EntryError, SkipAll, SkipDir, describe
from .pathutil import SkipList, file_is_included


log = logging.getLogger(__name__)

# Unix creator in the "version made by" field; mode lives in external_attr's high word
_CREATE_SYSTEM_UNIX = 3
_MSDOS_DIR_ATTR = 0x10

_SPOOL_MAX = 16 * 1024 * 1024
_COPY_BUFSIZE = 1024 * 1024

# Already-compressed content; storing it is faster and rarely larger
COMPRESSED_EXTENSIONS = frozenset({
    ".7z", ".avi", ".br", ".bz2", ".cab", ".docx", ".flac", ".gif", ".gz",
    ".heic", ".jar", ".jpeg", ".jpg", ".lz", ".lz4", ".lzma", ".m4a", ".m4v",
    ".mkv", ".mov", ".mp3", ".mp4", ".mpeg", ".mpg", ".ogg", ".png", ".pptx",
    ".rar", ".sz", ".tbz2", ".tgz", ".tsz", ".txz", ".webm", ".webp", ".whl",
    ".xlsx", ".xz", ".zip", ".zipx", ".zst",
})

OnEntry = Callable[[Optional[CancelToken], FileEntry], None]


def _date_time(mtime: float) -> Tuple[int, int, int, int, int, int]:
    # DOS timestamps cover 1980..2107 at two-second resolution
    dt = time.localtime(mtime)[:6]
    if dt[0] < 1980:
        return (1980, 1, 1, 0, 0, 0)
    if dt[0] > 2107:
        return (2107, 12, 31, 23, 59, 58)
    return dt


def _mtime(zinfo: zipfile.ZipInfo) -> float:
    try:
        return time.mktime(zinfo.date_time + (0, 0, -1))
    except (OverflowError, ValueError):
        return 0.0


def _set_compress_level(zinfo: zipfile.ZipInfo, level: Optional[int]) -> None:
    if level is None:
        return
    if sys.version_info >= (3, 13):
        zinfo.compress_level = level
    else:
        # ZipFile.open(zinfo, "w") only reads the private field before 3.13
        zinfo._compresslevel = level


def _mode_of(zinfo: zipfile.ZipInfo) -> int:
    """Recover st_mode-style bits from a zip record, defaulting by kind."""
    mode = 0
    if zinfo.create_system == _CREATE_SYSTEM_UNIX:
        mode = (zinfo.external_attr >> 16) & 0xFFFF
    is_dir = zinfo.is_dir() or bool(zinfo.external_attr & _MSDOS_DIR_ATTR)
    fmt = stat.S_IFMT(mode)
    if fmt not in (stat.S_IFDIR, stat.S_IFREG, stat.S_IFLNK):
        # devices, fifos and sockets have no archive form; their bytes are file content
        mode = stat.S_IMODE(mode) | (stat.S_IFDIR if is_dir else stat.S_IFREG)
    if stat.S_IMODE(mode) == 0:
        mode |= 0o755 if stat.S_ISDIR(mode) else 0o644
    return mode


def _seekable_source(source: BinaryIO) -> BinaryIO:
    try:
        if source.seekable():
            return source
    except (AttributeError, ValueError):
        pass
    spool = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX)
    shutil.copyfileobj(source, spool, _COPY_BUFSIZE)
    spool.seek(0)
    return spool


@dataclass
class Zip:
    """Zip format driver.

    compression: zipfile method used for regular files (ZIP_STORED,
        ZIP_DEFLATED, ZIP_BZIP2 or ZIP_LZMA).
    compression_level: codec level, or None for the codec default.
    selective_compression: store files whose extension marks them as
        already compressed.
    continue_on_error: when archiving, log and skip a file whose content
        cannot be opened instead of aborting.
    text_encoding: encoding of entry names in archives that do not flag
        them as UTF-8 (e.g. "cp866"); None uses zipfile's cp437 default.
    """
    compression: int = zipfile.ZIP_DEFLATED
    compression_level: Optional[int] = None
    selective_compression: bool = False
    continue_on_error: bool = False
    text_encoding: Optional[str] = None

    @property
    def name(self) -> str:
        return ".zip"

    @property
    def media_type(self) -> str:
        return "application/zip"

    # -------- writing --------

    def archive(self, ctx: Optional[CancelToken], output: BinaryIO, entries: Iterable[FileEntry]) -> None:
        """Write ``entries`` in order into a zip container on ``output``.

        Cancellation is checked between entries; a cancelled or failed
        archive leaves ``output`` incomplete and must be discarded.
        """
        with zipfile.ZipFile(output, "w", compression=self.compression, compresslevel=self.compression_level) as zf:
            for entry in entries:
                check(ctx)
                self._archive_one(zf, entry)

    def _method_for(self, name: str) -> int:
        if self.selective_compression and posixpath.splitext(name)[1].lower() in COMPRESSED_EXTENSIONS:
            return zipfile.ZIP_STORED
        return self.compression

    def _archive_one(self, zf: zipfile.ZipFile, entry: FileEntry) -> None:
        name = entry.name_in_archive.strip("/")
        if not name:
            raise EntryError("entry has an empty name in archive")
        info = entry.info
        kind = entry.kind

        if kind == EntryKind.DIR:
            zinfo = zipfile.ZipInfo(name + "/", date_time=_date_time(info.mtime))
        else:
            zinfo = zipfile.ZipInfo(name, date_time=_date_time(info.mtime))
        zinfo.create_system = _CREATE_SYSTEM_UNIX
        zinfo.external_attr = (info.mode & 0xFFFF) << 16

        if kind == EntryKind.DIR:
            zinfo.external_attr |= _MSDOS_DIR_ATTR
            zinfo.compress_type = zipfile.ZIP_STORED
            zf.writestr(zinfo, b"")
            return
        if kind == EntryKind.SYMLINK:
            zinfo.compress_type = zipfile.ZIP_STORED
            zf.writestr(zinfo, entry.link_target.encode("utf-8"))
            return

        zinfo.compress_type = self._method_for(name)
        if zinfo.compress_type != zipfile.ZIP_STORED:
            _set_compress_level(zinfo, self.compression_level)
        zinfo.file_size = info.size
        try:
            src = entry.open()
        except OSError as exc:
            if not self.continue_on_error:
                raise
            log.warning("skipping %s: %s", name, describe(exc))
            return
        with src:
            with zf.open(zinfo, "w") as dst:
                shutil.copyfileobj(src, dst, _COPY_BUFSIZE)

    # -------- reading --------

    def extract(
        self,
        ctx: Optional[CancelToken],
        source: BinaryIO,
        on_entry: OnEntry,
        paths_in_archive: Optional[Sequence[str]] = None,
    ) -> None:
        """Call ``on_entry(ctx, entry)`` for each entry of the zip in ``source``.

        Entries arrive in container order. An entry's opener is only valid
        during its callback. Exceptions raised by ``on_entry`` propagate
        unchanged, except ``SkipDir`` (skip the rest of that directory) and
        ``SkipAll`` (stop quietly). When ``paths_in_archive`` is given, only
        entries at or below one of those paths are surfaced.
        """
        src = _seekable_source(source)
        try:
            self._extract(ctx, src, on_entry, paths_in_archive)
        finally:
            if src is not source:
                src.close()

    def _extract(self, ctx, src, on_entry, paths_in_archive) -> None:
        kwargs = {"metadata_encoding": self.text_encoding} if self.text_encoding else {}
        skip = SkipList()
        with zipfile.ZipFile(src, "r", **kwargs) as zf:
            for zinfo in zf.infolist():
                check(ctx)
                name = zinfo.filename
                if paths_in_archive is not None and not file_is_included(paths_in_archive, name):
                    continue
                if skip and skip.skips(name):
                    continue

                entry = self._entry_from(zf, zinfo)
                try:
                    on_entry(ctx, entry)
                except SkipDir:
                    skip_root = name if entry.is_dir else posixpath.dirname(name)
                    if not skip_root:
                        # skipping the top-level directory skips everything left
                        return
                    skip.add(skip_root)
                except SkipAll:
                    return

    def _entry_from(self, zf: zipfile.ZipFile, zinfo: zipfile.ZipInfo) -> FileEntry:
        name = zinfo.filename.rstrip("/")
        mode = _mode_of(zinfo)
        mtime = _mtime(zinfo)
        base = posixpath.basename(name)
        if stat.S_ISLNK(mode):
            # undecodable bytes survive as surrogates, like os.readlink on POSIX
            target = zf.read(zinfo).decode("utf-8", "surrogateescape")
            if target:
                return FileEntry.symlink(name, FileInfo(name=base, size=0, mode=mode, mtime=mtime), target)
            log.debug("symlink record %s has no target; surfacing it as an empty file", name)
            mode = stat.S_IFREG | stat.S_IMODE(mode)
        if stat.S_ISDIR(mode):
            return FileEntry.directory(name, FileInfo(name=base, size=0, mode=mode, mtime=mtime))
        info = FileInfo(name=base, size=zinfo.file_size, mode=mode, mtime=mtime)
        return FileEntry.file(name, info, functools.partial(zf.open, zinfo))
