"""Project descriptor resolution.

A project is described by one file, by default `bin/tagsmith.lock`, in one of two formats.

Structured format (schema >= 2.0.0), TOML:

    [tagsmith]
    version = "2.1.0"          # schema revision; defaults to the latest supported
    kernel = "native"          # native | pypackage | custom
    custom_builder = "./build.sh"
    configure = "--enable-foo"
    cflags = "-O2"

    [build]
    source = "main.c"
    bin = "hello"              # required
    buildtool_tag = "0.1.0"
    bootstrap_tag = "0.2.0"
    tests = "tests"

    [tests]
    pass_dir = "ok"
    fail_dir = "errors"

    [versions]
    "0.1.0" = "first"
    "B0.2.0" = "in-place"      # leading B: build in place, no checkout

Legacy format (schema < 2.0.0), fixed line positions:

    line 0  source file
    line 1  binary name
    line 2  build-tool minimum tag (blank for none)
    line 3  bootstrap minimum tag (blank for none)
    line 4  tests directory (blank for none)
    line 5  configure arguments
    line 6  compiler flags
    line 7+ `tag#description` records, `?tag#description` for in-place tags

The legacy tests directory carries its own index, `tests.lock`, whose first two lines name
the pass and fail subdirectories.

`resolve()` picks the schema revision (explicit argument first, then the TOML
`[tagsmith].version` key, then `LATEST_SCHEMA`), dispatches to the matching decoder,
applies command-line overrides, discovers tests and returns an immutable
`ProjectDescriptor`. Test discovery problems never fail resolution: they turn test
support off for the run and print a warning.
"""

from __future__ import annotations

import os
import sys
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .errors import FilesystemError, ParseError, ValidationError
from .schema import LATEST_SCHEMA, KernelKind, check_kernel, uses_structured_format
from .semver import compare, is_semver, validate
from .versions import VersionTable, split_versions

DEFAULT_DESCRIPTOR = Path("bin") / "tagsmith.lock"
STRUCTURED_SIGIL = "B"
LEGACY_SIGIL = "?"
LEGACY_HEADER_LINES = 7
LEGACY_TESTS_INDEX = "tests.lock"
RECORD_SUFFIXES = (".stdout", ".stderr")


@dataclass(frozen=True)
class DescriptorOverrides:
    source: str | None = None
    bin: str | None = None
    buildtool_tag: str | None = None
    tests_dir: str | None = None
    configure: str | None = None
    cflags: str | None = None


@dataclass
class _Decoded:
    source: str | None = None
    bin: str | None = None
    buildtool_tag: str | None = None
    bootstrap_tag: str | None = None
    tests_dir: str | None = None
    pass_dir: str | None = None
    fail_dir: str | None = None
    configure: str = ""
    cflags: str = ""
    custom_builder: str | None = None
    kernel: KernelKind = KernelKind.NATIVE
    raw_versions: list[tuple[str, str]] = field(default_factory=list)
    sigil: str = STRUCTURED_SIGIL
    legacy: bool = False


@dataclass(frozen=True)
class ProjectDescriptor:
    schema_version: str
    kernel: KernelKind
    extensions_enabled: bool
    descriptor_path: Path
    backend_dir: Path
    builds_dir: Path
    bin: str
    source: str | None = None
    buildtool_tag: str | None = None
    bootstrap_tag: str | None = None
    configure: str = ""
    cflags: str = ""
    custom_builder: str | None = None
    tests_dir: Path | None = None
    pass_dir: str | None = None
    fail_dir: str | None = None
    tests_enabled: bool = False
    pass_tests: dict[str, Path] = field(default_factory=dict)
    fail_tests: dict[str, Path] = field(default_factory=dict)
    sigil: str = STRUCTURED_SIGIL
    raw_versions: tuple[tuple[str, str], ...] = ()
    checkout_versions: VersionTable = field(default_factory=VersionTable)
    inplace_versions: VersionTable = field(default_factory=VersionTable)

    @property
    def descriptor_dir(self) -> Path:
        return self.descriptor_path.parent

    def tag_dir(self, tag: str) -> Path:
        return self.builds_dir / f"v{tag}"

    def artifact_path(self, tag: str) -> Path:
        return self.tag_dir(tag) / self.bin

    def all_tests(self) -> list[tuple[str, Path]]:
        """Union of pass and fail tests in ascending file-name order."""
        tests = list(self.pass_tests.items()) + list(self.fail_tests.items())
        return sorted(tests, key=lambda item: (item[0], str(item[1])))

    def find_test(self, name: str) -> Path:
        matches = [path for test, path in self.all_tests() if test == name]
        if not matches:
            raise ValidationError(f"Unknown test {name!r}")
        if len(matches) > 1:
            raise ValidationError(f"Test {name!r} exists in both pass and fail directories")
        return matches[0]


def resolve(
    descriptor_path: Path,
    *,
    backend_dir: Path,
    builds_dir: Path | None = None,
    schema_version: str | None = None,
    strict: bool = False,
    overrides: DescriptorOverrides | None = None,
) -> ProjectDescriptor:
    try:
        text = descriptor_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FilesystemError(f"Cannot read descriptor {descriptor_path}: {exc}") from exc

    version, doc = detect_schema_version(text, requested=schema_version)

    if uses_structured_format(version):
        if doc is None:
            doc = _load_toml(text, descriptor_path)
        decoded = decode_structured(doc, schema_version=version, strict=strict)
    else:
        decoded = decode_legacy(text)

    if overrides is not None:
        decoded = _apply_overrides(decoded, overrides)

    if not decoded.bin:
        raise ParseError(f"{descriptor_path}: missing binary name")
    for name in ("buildtool_tag", "bootstrap_tag"):
        value = getattr(decoded, name)
        if value is not None and not validate(value):
            raise ParseError(f"{descriptor_path}: {name} {value!r} is not MAJOR.MINOR.PATCH")

    checkout, inplace = split_versions(decoded.raw_versions, sigil=decoded.sigil)

    tests_root: Path | None = None
    if decoded.tests_dir:
        tests_root = (backend_dir / decoded.tests_dir).resolve()
        if decoded.legacy:
            decoded.pass_dir, decoded.fail_dir = _read_tests_index(tests_root)

    tests_enabled, pass_tests, fail_tests = discover_tests(tests_root, decoded.pass_dir, decoded.fail_dir)

    return ProjectDescriptor(
        schema_version=version,
        kernel=decoded.kernel,
        extensions_enabled=not strict,
        descriptor_path=descriptor_path,
        backend_dir=backend_dir,
        builds_dir=builds_dir if builds_dir is not None else descriptor_path.parent,
        bin=decoded.bin,
        source=decoded.source,
        buildtool_tag=decoded.buildtool_tag,
        bootstrap_tag=decoded.bootstrap_tag,
        configure=decoded.configure,
        cflags=decoded.cflags,
        custom_builder=decoded.custom_builder,
        tests_dir=tests_root,
        pass_dir=decoded.pass_dir,
        fail_dir=decoded.fail_dir,
        tests_enabled=tests_enabled,
        pass_tests=pass_tests,
        fail_tests=fail_tests,
        sigil=decoded.sigil,
        raw_versions=tuple(decoded.raw_versions),
        checkout_versions=checkout,
        inplace_versions=inplace,
    )


def detect_schema_version(text: str, *, requested: str | None) -> tuple[str, dict[str, Any] | None]:
    """Return the schema revision to decode with, plus the parsed TOML when it was needed."""
    doc: dict[str, Any] | None = None
    if requested is not None:
        if not is_semver(requested):
            raise ValidationError(f"Invalid schema version {requested!r}")
        version = requested
    else:
        try:
            doc = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ParseError(f"Could not detect descriptor format: {exc}") from exc
        header = doc.get("tagsmith", {})
        if not isinstance(header, dict):
            raise ParseError("[tagsmith] must be a table")
        version = header.get("version", LATEST_SCHEMA)
        if not isinstance(version, str) or not is_semver(version):
            raise ParseError(f"Invalid schema version {version!r}")

    if compare(version, LATEST_SCHEMA) > 0:
        raise ValidationError(f"Schema version {version} is newer than supported {LATEST_SCHEMA}")
    return version, doc


def _load_toml(text: str, path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ParseError(f"{path}: invalid TOML: {exc}") from exc


def _table(doc: dict[str, Any], name: str) -> dict[str, Any]:
    value = doc.get(name, {})
    if not isinstance(value, dict):
        raise ParseError(f"[{name}] must be a table")
    return value


def _opt_str(table: dict[str, Any], key: str, *, section: str) -> str | None:
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"[{section}].{key} must be a string")
    return value


def decode_structured(doc: dict[str, Any], *, schema_version: str, strict: bool) -> _Decoded:
    header = _table(doc, "tagsmith")
    build = _table(doc, "build")
    tests = _table(doc, "tests")
    versions = _table(doc, "versions")

    bin_name = _opt_str(build, "bin", section="build")
    if not bin_name:
        raise ParseError("[build].bin is required")

    raw: list[tuple[str, str]] = []
    for key, desc in versions.items():
        if not isinstance(desc, str):
            raise ParseError(f"[versions].{key!r} must be a string description")
        raw.append((key, desc))

    kind = check_kernel(_opt_str(header, "kernel", section="tagsmith"), schema_version=schema_version, strict=strict)
    custom_builder = _opt_str(header, "custom_builder", section="tagsmith")
    if kind is KernelKind.CUSTOM and not custom_builder:
        raise ParseError("[tagsmith].custom_builder is required for the custom kernel")

    return _Decoded(
        source=_opt_str(build, "source", section="build"),
        bin=bin_name,
        buildtool_tag=_opt_str(build, "buildtool_tag", section="build") or None,
        bootstrap_tag=_opt_str(build, "bootstrap_tag", section="build") or None,
        tests_dir=_opt_str(build, "tests", section="build") or None,
        pass_dir=_opt_str(tests, "pass_dir", section="tests") or None,
        fail_dir=_opt_str(tests, "fail_dir", section="tests") or None,
        configure=_opt_str(header, "configure", section="tagsmith") or "",
        cflags=_opt_str(header, "cflags", section="tagsmith") or "",
        custom_builder=custom_builder,
        kernel=kind,
        raw_versions=raw,
        sigil=STRUCTURED_SIGIL,
    )


def decode_legacy(text: str) -> _Decoded:
    lines = text.splitlines()
    if len(lines) < LEGACY_HEADER_LINES:
        raise ParseError(
            f"Legacy descriptor needs {LEGACY_HEADER_LINES} header lines, found {len(lines)}"
        )
    header = [line.strip() for line in lines[:LEGACY_HEADER_LINES]]
    source, bin_name, buildtool_tag, bootstrap_tag, tests_dir, configure, cflags = header

    raw: list[tuple[str, str]] = []
    for lineno, line in enumerate(lines[LEGACY_HEADER_LINES:], start=LEGACY_HEADER_LINES + 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        tag, sep, desc = line.partition("#")
        if not sep:
            raise ParseError(f"Line {lineno}: expected 'tag#description', got {line!r}")
        raw.append((tag.strip(), desc.strip()))

    return _Decoded(
        source=source or None,
        bin=bin_name,
        buildtool_tag=buildtool_tag or None,
        bootstrap_tag=bootstrap_tag or None,
        tests_dir=tests_dir or None,
        configure=configure,
        cflags=cflags,
        kernel=KernelKind.NATIVE,
        raw_versions=raw,
        sigil=LEGACY_SIGIL,
        legacy=True,
    )


def _apply_overrides(decoded: _Decoded, overrides: DescriptorOverrides) -> _Decoded:
    changes = {
        name: value
        for name, value in (
            ("source", overrides.source),
            ("bin", overrides.bin),
            ("buildtool_tag", overrides.buildtool_tag),
            ("tests_dir", overrides.tests_dir),
            ("configure", overrides.configure),
            ("cflags", overrides.cflags),
        )
        if value is not None
    }
    return replace(decoded, **changes)


def _read_tests_index(tests_root: Path) -> tuple[str | None, str | None]:
    index = tests_root / LEGACY_TESTS_INDEX
    try:
        lines = index.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        print(f"[tagsmith] warning: cannot read {index} ({exc}); tests disabled", file=sys.stderr)
        return None, None
    if len(lines) < 2 or not lines[0].strip() or not lines[1].strip():
        print(f"[tagsmith] warning: {index} must name pass and fail directories; tests disabled", file=sys.stderr)
        return None, None
    return lines[0].strip(), lines[1].strip()


def _scan_test_dir(path: Path) -> dict[str, Path]:
    found: dict[str, Path] = {}
    for entry in sorted(path.iterdir()):
        if entry.name.endswith(RECORD_SUFFIXES):
            continue
        if entry.is_file() and os.access(entry, os.X_OK):
            found[entry.name] = entry
    return found


def discover_tests(
    tests_root: Path | None, pass_dir: str | None, fail_dir: str | None
) -> tuple[bool, dict[str, Path], dict[str, Path]]:
    """Return `(enabled, pass_tests, fail_tests)`; any read failure disables tests."""
    if tests_root is None or not pass_dir or not fail_dir:
        return False, {}, {}
    if not tests_root.is_dir():
        print(f"[tagsmith] warning: tests directory {tests_root} not found; tests disabled", file=sys.stderr)
        return False, {}, {}
    try:
        pass_tests = _scan_test_dir(tests_root / pass_dir)
        fail_tests = _scan_test_dir(tests_root / fail_dir)
    except OSError as exc:
        print(f"[tagsmith] warning: cannot read tests ({exc}); tests disabled", file=sys.stderr)
        return False, {}, {}
    return True, pass_tests, fail_tests
