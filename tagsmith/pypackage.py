"""Python package support for the `pypackage` kernel.

The kernel builds the project with `python -m build`, which leaves a source distribution
(`<name>-<version>.tar.gz`) under `dist/`. This module turns that sdist into something
runnable from the tag directory:

1. the sdist is unpacked into `<tag_dir>/unpack/`;
2. `unpack/__init__.py` is written as a version stub so `unpack` is importable;
3. for every `[project.scripts]` entry `name = "pkg.module:func"` an executable shim
   `<tag_dir>/<name>` is generated that imports `func` from `unpack.pkg.module` and exits
   with its return value.

Metadata comes from the project's `pyproject.toml` (`[project]` name, version, scripts and
a few descriptive keys). Only `name` is required.
"""

from __future__ import annotations

import re
import shutil
import stat
import sys
import tarfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ParseError, RelocationError

UNPACK_DIR_NAME = "unpack"

_SHIM_TEMPLATE = """#!/usr/bin/env python3
# Generated by tagsmith for {tag}

import re
import sys

from {unpack}.{module} import {func}

if __name__ == "__main__":
    sys.argv[0] = re.sub(r"(-script\\.pyw|\\.exe)?$", "", sys.argv[0])
    sys.exit({func}())
"""


@dataclass(frozen=True)
class ScriptEntry:
    name: str
    module: str
    func: str


@dataclass(frozen=True)
class PyProject:
    name: str
    version: str | None = None
    description: str | None = None
    requires_python: str | None = None
    scripts: list[ScriptEntry] = field(default_factory=list)
    build_requires: list[str] = field(default_factory=list)
    build_backend: str | None = None

    @property
    def sdist_name(self) -> str | None:
        if self.version is None:
            return None
        normalized = re.sub(r"[-_.]+", "_", self.name).lower()
        return f"{normalized}-{self.version}.tar.gz"


def load_pyproject(path: Path) -> PyProject:
    try:
        doc = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ParseError(f"Cannot read {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ParseError(f"{path}: invalid TOML: {exc}") from exc

    project = doc.get("project")
    if not isinstance(project, dict) or not isinstance(project.get("name"), str):
        raise ParseError(f"{path}: [project].name is required")

    scripts: list[ScriptEntry] = []
    for name, target in (project.get("scripts") or {}).items():
        module, sep, func = str(target).partition(":")
        if not sep or not module.strip() or not func.strip():
            raise ParseError(f"{path}: script {name!r} must look like 'module:function', got {target!r}")
        scripts.append(ScriptEntry(name=name, module=module.strip(), func=func.strip()))

    build_system = doc.get("build-system") or {}
    version = project.get("version")
    return PyProject(
        name=project["name"],
        version=version if isinstance(version, str) else None,
        description=project.get("description"),
        requires_python=project.get("requires-python"),
        scripts=scripts,
        build_requires=list(build_system.get("requires") or []),
        build_backend=build_system.get("build-backend"),
    )


def find_sdist(dist_dir: Path, project: PyProject | None) -> Path:
    if project is not None and project.sdist_name is not None:
        candidate = dist_dir / project.sdist_name
        if candidate.is_file():
            return candidate
    found = sorted(dist_dir.glob("*.tar.gz")) if dist_dir.is_dir() else []
    if len(found) != 1:
        raise RelocationError(f"Expected exactly one sdist in {dist_dir}, found {len(found)}")
    return found[0]


def unpack_sdist(sdist: Path, tag_dir: Path) -> Path:
    """Extract `sdist` into `tag_dir` and rename its top-level directory to `unpack/`."""
    target = tag_dir / UNPACK_DIR_NAME
    try:
        with tarfile.open(sdist, "r:gz") as tar:
            roots = {Path(m.name).parts[0] for m in tar.getmembers() if m.name and Path(m.name).parts}
            if len(roots) != 1:
                raise RelocationError(f"{sdist.name}: expected one top-level directory, found {sorted(roots)}")
            tar.extractall(tag_dir, filter="data")
        if target.exists():
            shutil.rmtree(target)
        (tag_dir / roots.pop()).rename(target)
    except (OSError, tarfile.TarError) as exc:
        raise RelocationError(f"Failed unpacking {sdist}: {exc}") from exc
    return target


def write_version_stub(unpack_dir: Path, tag: str) -> Path:
    init = unpack_dir / "__init__.py"
    init.write_text(f'__version__ = "{tag}"\n', encoding="utf-8")
    return init


def write_shim(tag_dir: Path, entry: ScriptEntry, *, tag: str) -> Path:
    shim = tag_dir / entry.name
    shim.write_text(
        _SHIM_TEMPLATE.format(tag=tag, unpack=UNPACK_DIR_NAME, module=entry.module, func=entry.func),
        encoding="utf-8",
    )
    shim.chmod(shim.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return shim


def install_sdist(sdist: Path, tag_dir: Path, *, tag: str, project: PyProject | None) -> list[Path]:
    """Unpack, stub and shim; returns the generated shim paths."""
    unpack_dir = unpack_sdist(sdist, tag_dir)
    try:
        write_version_stub(unpack_dir, tag)
        shims = [write_shim(tag_dir, entry, tag=tag) for entry in (project.scripts if project else [])]
    except OSError as exc:
        raise RelocationError(f"Failed preparing {unpack_dir}: {exc}") from exc
    print(f"[tagsmith] unpacked {sdist.name} -> {unpack_dir} (shims: {len(shims)})", file=sys.stderr)
    return shims
