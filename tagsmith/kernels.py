"""Per-kernel build steps.

A kernel knows how to invoke one kind of backend for one tag. The set is closed and chosen
once per run from the descriptor (`kernel_for(descriptor.kernel)`):

- `NativeKernel`: C toolchain. Tags at or above the descriptor's build-tool tag run
  `make rebuild` (plain `make` with `--no-rebuild`); older tags, or projects without a
  build-tool tag, compile the single source file directly with `gcc`. Tags at or above the
  bootstrap tag first run the autotools sequence (`aclocal`, `autoconf`,
  `automake --add-missing`, `./configure <args>`).
- `PyPackageKernel`: `python -m build --sdist --wheel`, then reports the sdist so the
  orchestrator can unpack it and generate shims (see `tagsmith.pypackage`).
- `CustomKernel`: runs the descriptor's `custom_builder` command with
  `<tag_dir> <bin> <tag> <descriptor_dir>` appended.

`build_step()` returns a `StepResult` listing artifacts to relocate into the tag directory.
A non-zero exit surfaces as `ProcessError` with the captured output attached.
`default_argv()` is the backend's own default invocation, used by a bare query.
"""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .descriptor import ProjectDescriptor
from .errors import ValidationError
from .procs import Runner, check_command, run_command
from .pypackage import PyProject, find_sdist, load_pyproject
from .schema import KernelKind
from .semver import compare


@dataclass(frozen=True)
class BuildContext:
    descriptor: ProjectDescriptor
    tag: str
    tag_dir: Path
    cwd: Path
    no_rebuild: bool = False
    runner: Runner = run_command


@dataclass(frozen=True)
class StepResult:
    artifacts: list[Path] = field(default_factory=list)
    sdist: Path | None = None
    project: PyProject | None = None


class Kernel(Protocol):
    kind: KernelKind

    def build_step(self, ctx: BuildContext) -> StepResult: ...

    def default_argv(self, descriptor: ProjectDescriptor) -> list[str]: ...


def _python() -> str:
    return os.environ.get("TAGSMITH_PYTHON") or sys.executable


class NativeKernel:
    kind = KernelKind.NATIVE

    def needs_bootstrap(self, descriptor: ProjectDescriptor, tag: str) -> bool:
        return descriptor.bootstrap_tag is not None and compare(tag, descriptor.bootstrap_tag) >= 0

    def bootstrap_argvs(self, descriptor: ProjectDescriptor) -> list[list[str]]:
        return [
            ["aclocal"],
            ["autoconf"],
            ["automake", "--add-missing"],
            ["./configure", *shlex.split(descriptor.configure)],
        ]

    def bootstrap(self, ctx: BuildContext) -> None:
        for argv in self.bootstrap_argvs(ctx.descriptor):
            check_command(argv, cwd=ctx.cwd, runner=ctx.runner)

    def uses_make(self, descriptor: ProjectDescriptor, tag: str) -> bool:
        return descriptor.buildtool_tag is not None and compare(tag, descriptor.buildtool_tag) >= 0

    def build_step(self, ctx: BuildContext) -> StepResult:
        d = ctx.descriptor
        if self.uses_make(d, ctx.tag):
            argv = ["make"] if ctx.no_rebuild else ["make", "rebuild"]
            env = {"CFLAGS": d.cflags} if d.cflags else None
        else:
            if not d.source:
                raise ValidationError(f"Tag {ctx.tag} compiles directly but the descriptor has no source file")
            argv = ["gcc", d.source, "-o", d.bin, *shlex.split(d.cflags), "-lm"]
            env = None
        check_command(argv, cwd=ctx.cwd, env=env, runner=ctx.runner)
        return StepResult(artifacts=[ctx.cwd / d.bin])

    def default_argv(self, descriptor: ProjectDescriptor) -> list[str]:
        return ["make"]


class PyPackageKernel:
    kind = KernelKind.PYPACKAGE

    def build_step(self, ctx: BuildContext) -> StepResult:
        dist = ctx.cwd / "dist"
        check_command(
            [_python(), "-m", "build", "--sdist", "--wheel", "--outdir", str(dist)],
            cwd=ctx.cwd,
            runner=ctx.runner,
        )
        pyproject = ctx.cwd / "pyproject.toml"
        project = load_pyproject(pyproject) if pyproject.is_file() else None
        sdist = find_sdist(dist, project)
        return StepResult(artifacts=[sdist], sdist=sdist, project=project)

    def default_argv(self, descriptor: ProjectDescriptor) -> list[str]:
        return [_python(), "-m", "build"]


class CustomKernel:
    kind = KernelKind.CUSTOM

    def _command(self, descriptor: ProjectDescriptor) -> list[str]:
        if not descriptor.custom_builder:
            raise ValidationError("The custom kernel needs a custom_builder command")
        return shlex.split(descriptor.custom_builder)

    def build_step(self, ctx: BuildContext) -> StepResult:
        d = ctx.descriptor
        argv = [*self._command(d), str(ctx.tag_dir), d.bin, ctx.tag, str(d.descriptor_dir)]
        check_command(argv, cwd=ctx.cwd, runner=ctx.runner)
        if (ctx.tag_dir / d.bin).exists():
            return StepResult()
        return StepResult(artifacts=[ctx.cwd / d.bin])

    def default_argv(self, descriptor: ProjectDescriptor) -> list[str]:
        return self._command(descriptor)


KERNELS: dict[KernelKind, Kernel] = {
    KernelKind.NATIVE: NativeKernel(),
    KernelKind.PYPACKAGE: PyPackageKernel(),
    KernelKind.CUSTOM: CustomKernel(),
}


def kernel_for(kind: KernelKind) -> Kernel:
    return KERNELS[kind]
