"""Version tables: tag -> description, iterated in ascending SemVer order.

A descriptor lists every tag the project knows about in one raw table. Some tags are
marked with a format-specific sigil (`B` in the TOML descriptor, `?` in the legacy one)
meaning "build from the current working tree, no git checkout". `split_versions()`
partitions the raw table into a checkout table and an in-place table, stripping the
sigil and validating each key. A tag that lands in both partitions is an error.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from .errors import ParseError
from .semver import semver_key, validate


class VersionTable(Mapping[str, str]):
    def __init__(self, entries: Iterable[tuple[str, str]] = ()) -> None:
        self._data: dict[str, str] = {}
        for tag, desc in entries:
            self._data[tag] = desc
        self._order = sorted(self._data, key=semver_key)

    def __getitem__(self, tag: str) -> str:
        return self._data[tag]

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"VersionTable({[(t, self._data[t]) for t in self._order]!r})"

    def latest(self) -> str | None:
        return self._order[-1] if self._order else None


def split_versions(raw: Iterable[tuple[str, str]], *, sigil: str) -> tuple[VersionTable, VersionTable]:
    """Return `(checkout, inplace)` tables built from raw `(key, description)` pairs."""
    checkout: dict[str, str] = {}
    inplace: dict[str, str] = {}

    for key, desc in raw:
        key = key.strip()
        is_inplace = key.startswith(sigil)
        tag = key[len(sigil):] if is_inplace else key
        if not validate(tag):
            raise ParseError(f"Invalid version key {key!r}: expected MAJOR.MINOR.PATCH")

        target, other = (inplace, checkout) if is_inplace else (checkout, inplace)
        if tag in other:
            raise ParseError(
                f"Tag {tag} is declared both as checkout and in-place: {other[tag]!r} vs {desc!r}"
            )
        if tag in target:
            raise ParseError(f"Tag {tag} is declared twice: {target[tag]!r} vs {desc!r}")
        target[tag] = desc

    return VersionTable(checkout.items()), VersionTable(inplace.items())
