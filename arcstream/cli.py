from __future__ import annotations

import argparse
import contextlib
import logging
import os
import sys
import time
import zipfile
from typing import Dict, List, Optional

from arcstream.disk import FromDiskOptions, files_from_disk
from arcstream.entry import EntryKind, FileEntry
from arcstream.errors import ArcstreamError
from arcstream.unpack import EXISTS_POLICIES, unpack_to_directory
from arcstream.zip import Zip


def _parse_input(arg: str) -> tuple[str, str]:
    """Split "DISK=NAME" into a root and its rename; plain paths keep their name."""
    if "=" in arg and not os.path.lexists(arg):
        disk, _, name = arg.partition("=")
        return disk, name
    return arg, ""


def cmd_pack(
    output: str,
    inputs: List[str],
    *,
    follow_symlinks: bool = False,
    exclude: Optional[List[str]] = None,
    store: bool = False,
    clear_attributes: bool = False,
    quiet: bool = False,
) -> bool:
    """Pack filesystem paths into a new zip archive.

    Args:
        output: Path of the .zip file to write.
        inputs: Files or directories to store; "DISK=NAME" renames a root
            inside the archive ("NAME/" places it under NAME).
        follow_symlinks: Store what links point to instead of the links.
        exclude: On-disk paths to leave out, with everything below them.
        store: Disable compression.
        clear_attributes: Drop timestamps and permissions.
    """
    roots: Dict[str, str] = dict(_parse_input(p) for p in inputs)
    opts = FromDiskOptions(
        follow_symlinks=follow_symlinks,
        clear_attributes=clear_attributes,
        exclude=list(exclude or []),
    )
    fmt = Zip(compression=zipfile.ZIP_STORED if store else zipfile.ZIP_DEFLATED, selective_compression=True)
    counts = {EntryKind.FILE: 0, EntryKind.DIR: 0, EntryKind.SYMLINK: 0}
    total_bytes = 0

    def _progress():
        nonlocal total_bytes
        for entry in files_from_disk(roots, opts):
            counts[entry.kind] += 1
            total_bytes += entry.info.size
            if not quiet:
                suffix = "/" if entry.is_dir else ""
                print(f"   adding: {entry.name_in_archive}{suffix}")
            yield entry

    t0 = time.time()
    try:
        with open(output, "wb") as out:
            fmt.archive(None, out, _progress())
    except BaseException:
        # a closed zip looks complete even when entries are missing
        with contextlib.suppress(OSError):
            os.remove(output)
        raise
    dt = max(0.000001, time.time() - t0)
    mib = total_bytes / (1024.0 * 1024.0)
    print(
        f"Done: {counts[EntryKind.FILE]} files, {counts[EntryKind.DIR]} dirs, "
        f"{counts[EntryKind.SYMLINK]} links; {mib:.2f} MiB in {dt:.1f}s"
    )
    return True


def cmd_list(archive: str) -> bool:
    """List archive entries.

    Args:
        archive: Path to a .zip file.
    """
    def _show(_ctx, e: FileEntry) -> None:
        k = e.kind.name.lower()
        if e.kind == EntryKind.FILE:
            print(f"{k}\t{e.info.size}\t{e.name_in_archive}")
        elif e.kind == EntryKind.SYMLINK:
            print(f"{k}\t-> {e.link_target}\t{e.name_in_archive}")
        else:
            print(f"{k}\t{e.name_in_archive}")

    with open(archive, "rb") as fh:
        Zip().extract(None, fh, _show)
    return True


def cmd_unpack(archive: str, *, outdir: str = ".", paths: Optional[List[str]] = None, exists: str = "fail") -> bool:
    """Unpack entries from an archive into a directory."""
    t0 = time.time()
    with open(archive, "rb") as fh:
        stats = unpack_to_directory(None, Zip(), fh, outdir or ".", paths=paths or None, exists=exists)
    dt = max(0.000001, time.time() - t0)
    mib = stats.bytes / (1024.0 * 1024.0)
    print(
        f"Done: extracted {stats.files} files ({mib:.2f} MiB) in {dt:.1f}s; "
        f"dirs={stats.dirs} symlinks={stats.symlinks} skipped={stats.skipped}"
    )
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(prog="arcstream", description="Pack and unpack zip archives")
    ap.add_argument("--verbose", "-v", action="store_true", help="Log debug details to stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Create an archive")
    ap_pack.add_argument("output", help="Output .zip path")
    ap_pack.add_argument("inputs", nargs="+", help="Input files/directories (DISK=NAME renames a root)")
    ap_pack.add_argument("--follow-symlinks", action="store_true", help="Store link targets instead of links")
    ap_pack.add_argument("--exclude", action="append", default=[], help="Path to leave out (repeatable)")
    ap_pack.add_argument("--store", action="store_true", help="Do not compress")
    ap_pack.add_argument("--clear-attributes", action="store_true", help="Drop timestamps and permissions")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_unpack = sub.add_parser("unpack", help="Extract an archive")
    ap_unpack.add_argument("archive", help="Archive path")
    ap_unpack.add_argument("--outdir", default=".", help="Output directory")
    ap_unpack.add_argument("paths", nargs="*", help="Specific archive paths to extract (files or directories)")
    ap_unpack.add_argument(
        "--exists",
        choices=list(EXISTS_POLICIES),
        default="fail",
        help="What to do if a destination exists: overwrite, skip, or fail (abort). Default: fail",
    )

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    try:
        if args.cmd == "pack":
            cmd_pack(
                args.output,
                args.inputs,
                follow_symlinks=args.follow_symlinks,
                exclude=args.exclude,
                store=args.store,
                clear_attributes=args.clear_attributes,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "unpack":
            cmd_unpack(args.archive, outdir=args.outdir, paths=args.paths, exists=args.exists)
        else:
            raise RuntimeError("Unknown command")
    except zipfile.BadZipFile as e:
        print(f"Error: not a valid zip archive: {e}", file=sys.stderr)
        sys.exit(2)
    except (ArcstreamError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
