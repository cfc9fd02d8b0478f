from __future__ import annotations

import os
import stat
from typing import Set, Tuple

from .errors import DereferenceStatError, SymlinkDepthError, SymlinkLoopError


# Same bound as Linux's MAXSYMLINKS
MAX_SYMLINK_DEPTH = 40


def follow_symlink(path: str) -> Tuple[str, os.stat_result]:
    """Follow a chain of symlinks starting at ``path`` to its final target.

    Relative link targets are resolved against the directory holding the
    link. Returns the final path and its metadata, which never carries the
    symlink mode bit.

    Raises:
        SymlinkLoopError: a path repeats within the chain.
        SymlinkDepthError: more than MAX_SYMLINK_DEPTH hops are needed.
        DereferenceStatError: the final target cannot be stat'd.
        OSError: a link in the chain cannot be read.
    """
    visited: Set[str] = {os.path.abspath(path)}
    current = path
    hops = 0
    while True:
        target = os.readlink(current)
        if not os.path.isabs(target):
            target = os.path.join(os.path.dirname(current), target)
        target = os.path.normpath(target)
        hops += 1

        canonical = os.path.abspath(target)
        if canonical in visited:
            raise SymlinkLoopError(f"symlink loop detected: {path} revisits {target}", path)
        visited.add(canonical)

        try:
            st = os.lstat(target)
        except OSError as exc:
            raise DereferenceStatError(f"statting dereferenced symlink {path} -> {target}: {exc}", path) from exc
        if not stat.S_ISLNK(st.st_mode):
            return target, st
        if hops >= MAX_SYMLINK_DEPTH:
            raise SymlinkDepthError(
                f"maximum symlink depth ({MAX_SYMLINK_DEPTH}) exceeded while resolving {path}",
                path,
                hops,
                MAX_SYMLINK_DEPTH,
            )
        current = target
