from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence, Union, overload

from .errors import PathError


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise PathError(f"Path may not contain '..': {p}")
    return "/".join(parts)


def top_dir(path: str) -> str:
    """Return the first segment of ``path``.

    A leading slash stays attached to the segment ("/abc/def" -> "/abc").
    """
    start = 1 if path.startswith("/") else 0
    pos = path.find("/", start)
    if pos < 0:
        return path
    return path[:pos]


def trim_top_dir(path: str) -> str:
    """Return ``path`` without its first segment ("/abc/def" -> "def")."""
    start = 1 if path.startswith("/") else 0
    pos = path.find("/", start)
    if pos < 0:
        return path
    return path[pos + 1:]


def _strip_one(p: str) -> str:
    return p[:-1] if p.endswith("/") else p


def path_matches(prefix: str, candidate: str) -> bool:
    """Hierarchical prefix test.

    "a" matches "a", "a/" and everything below "a/". A prefix that ends
    with a slash ("a/") matches itself and its descendants but not the
    bare name "a".
    """
    if candidate == prefix:
        return True
    effective = prefix if prefix.endswith("/") else prefix + "/"
    return candidate.startswith(effective)


def file_is_included(includes: Iterable[str], candidate: str) -> bool:
    return any(path_matches(p, candidate) for p in includes)


class SkipList(Sequence[str]):
    """Ordered exclusion roots with no redundant ancestor/descendant pairs."""

    def __init__(self, paths: Iterable[str] = ()):
        self._paths: List[str] = []
        for p in paths:
            self.add(p)

    def add(self, path: str) -> None:
        if not path:
            raise PathError("cannot skip an empty path")
        new = _strip_one(path)
        for q in self._paths:
            existing = _strip_one(q)
            if existing == new or new.startswith(existing + "/"):
                return
        self._paths = [q for q in self._paths if not _strip_one(q).startswith(new + "/")]
        self._paths.append(path)

    def skips(self, candidate: str) -> bool:
        return file_is_included(self._paths, candidate)

    @overload
    def __getitem__(self, i: int) -> str: ...

    @overload
    def __getitem__(self, i: slice) -> List[str]: ...

    def __getitem__(self, i: Union[int, slice]) -> Union[str, List[str]]:
        return self._paths[i]

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SkipList):
            return self._paths == other._paths
        if isinstance(other, (list, tuple)):
            return self._paths == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"SkipList({self._paths!r})"
