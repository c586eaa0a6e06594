from __future__ import annotations

import pytest

from tagsmith import semver


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("1.2.0", "1.20.9", -1),
        ("1.10.0", "1.1.10", 1),
        ("0.1.0", "0.1.0", 0),
        ("1.0.0-alpha", "1.0.0-beta", -1),
        ("1.0.0", "1.0.0-pr1+build456", 1),
        ("1.0.0-rc1", "1.0.0", -1),
        ("1.0.0+b1", "1.0.0+b2", -1),
        ("2.0", "2.0.0", -1),
    ],
)
def test_compare_orders_versions(a: str, b: str, expected: int) -> None:
    assert semver.compare(a, b) == expected
    assert semver.compare(b, a) == -expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1.2.3", True),
        ("0.0.0", True),
        ("10.20.30", True),
        ("01.2.3", False),
        ("1.02.3", False),
        ("1.2.3-pr2", False),
        ("1.2.3+build", False),
        ("1.2", False),
        ("v1.2.3", False),
    ],
)
def test_validate_accepts_only_strict_keys(value: str, expected: bool) -> None:
    assert semver.validate(value) is expected


def test_is_semver_accepts_prerelease_and_build() -> None:
    assert semver.is_semver("2.0.3-rc.1+build.5")
    assert not semver.is_semver("2.0")
    assert not semver.is_semver("2.0.03")


def test_sort_and_latest_use_numeric_ordering() -> None:
    tags = ["1.10.0", "1.2.0", "1.9.9", "0.1.0"]

    assert semver.sort_versions(tags) == ["0.1.0", "1.2.0", "1.9.9", "1.10.0"]
    assert semver.latest(tags) == "1.10.0"
    assert semver.latest([]) is None
