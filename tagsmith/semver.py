"""Semantic version ordering for tag keys.

Tags used as table keys are strict `MAJOR.MINOR.PATCH` (no leading zeros, no suffixes);
`validate()` enforces that. `compare()` is more permissive so that versions given on the
command line (schema versions such as `2.0.3-rc1`) can still be ordered:

1. core components are compared numerically, one by one, over the shared length;
2. a version without a prerelease sorts after one with a prerelease;
3. prereleases compare lexicographically;
4. build metadata compares lexicographically;
5. finally the version with more core components is greater.

Core components that are not decimal integers are ignored.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable

_STRICT_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

_PARTS_RE = re.compile(r"^([^-+]*)(?:-([^+]*))?(?:\+(.*))?$")


def validate(s: str) -> bool:
    """True when `s` is a strict `x.y.z` key."""
    return _STRICT_RE.match(s) is not None


def is_semver(s: str) -> bool:
    return _SEMVER_RE.match(s) is not None


def _split(s: str) -> tuple[list[int], str | None, str | None]:
    m = _PARTS_RE.match(s.strip())
    if m is None:
        return [], None, None
    core, pre, build = m.groups()
    nums = [int(c) for c in core.split(".") if c.isdecimal()]
    return nums, pre, build


def _cmp(a: int | str, b: int | str) -> int:
    return (a > b) - (a < b)


def compare(a: str, b: str) -> int:
    a_core, a_pre, a_build = _split(a)
    b_core, b_pre, b_build = _split(b)

    for x, y in zip(a_core, b_core):
        if x != y:
            return _cmp(x, y)

    if a_pre is None and b_pre is not None:
        return 1
    if a_pre is not None and b_pre is None:
        return -1
    if a_pre is not None and b_pre is not None and a_pre != b_pre:
        return _cmp(a_pre, b_pre)

    if a_build != b_build:
        return _cmp(a_build or "", b_build or "")

    return _cmp(len(a_core), len(b_core))


semver_key = functools.cmp_to_key(compare)


def sort_versions(tags: Iterable[str]) -> list[str]:
    return sorted(tags, key=semver_key)


def latest(tags: Iterable[str]) -> str | None:
    ordered = sort_versions(tags)
    return ordered[-1] if ordered else None
