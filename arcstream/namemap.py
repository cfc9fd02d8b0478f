from __future__ import annotations

import os

from .errors import PathError


_SEPS = tuple({"/", os.sep} | ({os.altsep} if os.altsep else set()))


def _to_slash(p: str) -> str:
    for sep in _SEPS:
        if sep != "/":
            p = p.replace(sep, "/")
    return p


def _join(*parts: str) -> str:
    segs = []
    for part in parts:
        segs.extend(q for q in _to_slash(part).split("/") if q not in ("", "."))
    return "/".join(segs)


def name_on_disk_to_name_in_archive(name_on_disk: str, root_on_disk: str, root_in_archive: str = "") -> str:
    """Compute the archive name of a file found while walking ``root_on_disk``.

    ``root_in_archive`` controls placement:

    - "" or ".": keep the root's own base name ("a/b" -> "b/..."), unless the
      root ends with a separator, in which case its contents land at the top.
    - "foo": the root itself is renamed to "foo".
    - "foo/": the root is placed inside "foo" under its own base name.
    """
    if not name_on_disk.startswith(root_on_disk):
        raise PathError(f"{name_on_disk!r} is not inside root {root_on_disk!r}")
    beyond = name_on_disk[len(root_on_disk):].lstrip("".join(_SEPS))
    own_name = "" if root_on_disk.endswith(_SEPS) else os.path.basename(root_on_disk)

    if root_in_archive in ("", "."):
        return _join(own_name, beyond)
    if not root_in_archive.endswith(_SEPS):
        return _join(root_in_archive, beyond)
    return _join(root_in_archive, own_name, beyond)
