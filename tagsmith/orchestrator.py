"""Build orchestration: build, run, delete, query, init and purge over a version table.

`BuildOrchestrator` is constructed once per invocation with an immutable
`ProjectDescriptor`, the mutable `RunState` chosen at startup, a git client and a command
runner. `execute()` validates the state and performs the pending operations in a fixed
order: listing, build, run, delete, init, purge, query.

Results
Every operation returns an `OpResult(ok, message, error)` instead of raising, so the CLI
can report and continue. The exception is `SwitchBackError`: once a tag has been checked
out, failing to return to the starting ref leaves the tree on the wrong commit, and the
error propagates out of every operation, bulk ones included.

Build protocol (one tag)
1. The tag must be in the active table; `<builds_dir>/v<tag>/` is created if needed.
2. An existing artifact short-circuits the build unless `force` is set.
3. Native tags at or above the bootstrap tag run the autotools sequence first.
4. Checkout mode records whether HEAD is detached (schema-gated), checks out the tag and
   syncs submodules. A failed checkout needs no switch-back.
5. The kernel build step runs from the tag directory (in-place) or the backend root
   (checkout).
6. Reported artifacts are relocated into the tag directory; an sdist is unpacked and
   shimmed. Relocation failures are reported as `RelocationError`.
7. After a successful checkout, the switch-back and submodule resync run on every exit
   path.

Init and purge walk the active table in ascending order, downgrading per-tag failures to
warnings and returning a `BulkResult` with the failure count.
"""

from __future__ import annotations

import os
import shutil
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .descriptor import ProjectDescriptor
from .errors import (
    FilesystemError,
    ProcessError,
    RelocationError,
    SwitchBackError,
    TagsmithError,
    ValidationError,
)
from .kernels import BuildContext, NativeKernel, StepResult, kernel_for
from .modes import RunMode, RunState, active_table, validate_state
from .procs import Runner, check_command, echo_output, run_command
from .pypackage import install_sdist
from .schema import supports
from .semver import semver_key
from .testrunner import run_suite, run_test
from .versions import VersionTable


class GitBackend(Protocol):
    def is_clean(self) -> bool: ...

    def is_detached(self) -> bool: ...

    def checkout(self, tag: str) -> None: ...

    def update_submodules(self) -> None: ...

    def switch_back(self, *, detached: bool) -> None: ...


@dataclass(frozen=True)
class OpResult:
    ok: bool
    message: str = ""
    error: TagsmithError | None = None


@dataclass(frozen=True)
class BulkResult:
    results: list[OpResult] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def ok(self) -> bool:
        return self.failures == 0

    @property
    def message(self) -> str:
        return f"{len(self.results) - self.failures}/{len(self.results)} succeeded"


class BuildOrchestrator:
    def __init__(
        self,
        descriptor: ProjectDescriptor,
        state: RunState,
        *,
        git: GitBackend,
        runner: Runner = run_command,
    ) -> None:
        self.descriptor = descriptor
        self.state = state
        self.git = git
        self.runner = runner
        self.kernel = kernel_for(descriptor.kernel)

    @property
    def table(self) -> VersionTable:
        return active_table(self.descriptor, self.state.mode)

    @property
    def checkout_mode(self) -> bool:
        return self.state.mode is RunMode.CHECKOUT

    def execute(self) -> list[OpResult | BulkResult]:
        state = self.state
        validate_state(state, self.descriptor)

        if self.checkout_mode and (state.build or state.init) and not state.ignore_gitcheck:
            if not self.git.is_clean():
                raise ValidationError("Working tree has uncommitted changes; commit them or pass --ignore-gitcheck")

        results: list[OpResult | BulkResult] = []
        if state.list_active or state.list_all:
            results.append(self.list_tags(show_all=state.list_all))
        if not state.mode.is_test:
            if state.build:
                results.append(self._with_tag(self.build))
            if state.run:
                results.append(self._with_tag(self.run_binary))
            if state.delete:
                results.append(self._with_tag(self.delete))
            if state.init:
                results.append(self.init())
            if state.purge:
                results.append(self.purge())
        if state.mode.is_test or not any((state.build, state.run, state.delete, state.init, state.purge)):
            results.append(self.query(state.tag))
        return results

    def _with_tag(self, op: Callable[[str], OpResult]) -> OpResult:
        if not self.state.tag:
            return OpResult(False, "No tag given", ValidationError("No tag given"))
        return op(self.state.tag)

    def _fail(self, exc: TagsmithError, prefix: str = "") -> OpResult:
        if isinstance(exc, ProcessError):
            echo_output(exc.stdout, exc.stderr)
        message = f"{prefix}: {exc}" if prefix else str(exc)
        return OpResult(False, message, exc)

    def _check_tag(self, tag: str) -> None:
        if tag not in self.table:
            raise ValidationError(f"Unknown tag {tag} for {self.state.mode.value} mode")

    def build(self, tag: str) -> OpResult:
        d = self.descriptor
        try:
            self._check_tag(tag)
            tag_dir = d.tag_dir(tag)
            try:
                tag_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FilesystemError(f"Cannot create {tag_dir}: {exc}") from exc
        except TagsmithError as exc:
            return self._fail(exc, tag)

        if d.artifact_path(tag).exists() and not self.state.force:
            return OpResult(True, f"{tag}: already built")

        ctx = BuildContext(
            descriptor=d,
            tag=tag,
            tag_dir=tag_dir,
            cwd=d.backend_dir if self.checkout_mode else tag_dir,
            no_rebuild=self.state.no_rebuild,
            runner=self.runner,
        )
        print(f"[tagsmith] building {tag} ({self.state.mode.value}, {d.kernel.value})", file=sys.stderr)

        checked_out = False
        detached = False
        try:
            if isinstance(self.kernel, NativeKernel) and self.kernel.needs_bootstrap(d, tag):
                self.kernel.bootstrap(ctx)
            if self.checkout_mode:
                if supports(d.schema_version, "detached_head_check"):
                    detached = self.git.is_detached()
                self.git.checkout(tag)
                checked_out = True
                self.git.update_submodules()
            step = self.kernel.build_step(ctx)
            self._relocate(step, tag=tag, tag_dir=tag_dir)
        except TagsmithError as exc:
            result = self._fail(exc, tag)
        else:
            result = OpResult(True, f"{tag}: built")
        finally:
            if checked_out:
                self._switch_back(detached=detached)
        return result

    def _relocate(self, step: StepResult, *, tag: str, tag_dir: Path) -> None:
        for artifact in step.artifacts:
            dest = tag_dir / artifact.name
            if not artifact.exists():
                raise RelocationError(f"Build step reported {artifact} but it does not exist")
            if artifact.resolve() == dest.resolve():
                continue
            try:
                if dest.is_dir() and not dest.is_symlink():
                    shutil.rmtree(dest)
                shutil.move(str(artifact), str(dest))
            except OSError as exc:
                raise RelocationError(f"Failed moving {artifact} to {dest}: {exc}") from exc
        if step.sdist is not None:
            install_sdist(tag_dir / step.sdist.name, tag_dir, tag=tag, project=step.project)

    def _switch_back(self, *, detached: bool) -> None:
        try:
            self.git.switch_back(detached=detached)
            self.git.update_submodules()
        except ProcessError as exc:
            raise SwitchBackError(
                f"Failed to return to the starting ref: {exc}",
                argv=exc.argv,
                exit_code=exc.exit_code,
                stdout=exc.stdout,
                stderr=exc.stderr,
            ) from exc

    def run_binary(self, tag: str) -> OpResult:
        try:
            self._check_tag(tag)
            artifact = self.descriptor.artifact_path(tag)
            if not artifact.is_file():
                raise FilesystemError(f"{artifact} not found; build {tag} first")
            result = self.runner([str(artifact)], cwd=artifact.parent)
        except TagsmithError as exc:
            return self._fail(exc, tag)
        echo_output(result.stdout, result.stderr)
        if not result.ok:
            print(f"[tagsmith] warning: {tag} exited with status {result.exit_code}", file=sys.stderr)
        return OpResult(True, f"{tag}: exited with status {result.exit_code}")

    def delete(self, tag: str) -> OpResult:
        try:
            self._check_tag(tag)
            artifact = self.descriptor.artifact_path(tag)
            if not (artifact.exists() or artifact.is_symlink()):
                raise FilesystemError(f"{artifact} does not exist")
            try:
                if artifact.is_dir() and not artifact.is_symlink():
                    shutil.rmtree(artifact)
                else:
                    artifact.unlink()
            except OSError as exc:
                raise FilesystemError(f"Cannot remove {artifact}: {exc}") from exc
        except TagsmithError as exc:
            return self._fail(exc, tag)
        return OpResult(True, f"{tag}: deleted {artifact.name}")

    def query(self, tag: str | None) -> OpResult:
        d = self.descriptor
        mode = self.state.mode
        try:
            if mode is RunMode.TEST_SUITE:
                suite = run_suite(d.all_tests(), record=self.state.record, runner=self.runner)
                total = len(suite.outcomes)
                for outcome in suite.outcomes:
                    if not outcome.passed:
                        self._report_mismatch(outcome.expected, outcome.actual)
                return OpResult(suite.passed, f"{total - suite.failures}/{total} tests passed")

            if mode is RunMode.SINGLE_TEST:
                if tag is None:
                    raise ValidationError("Single-test mode needs a test name")
                outcome = run_test(tag, d.find_test(tag), record=self.state.record, runner=self.runner)
                if not outcome.passed:
                    self._report_mismatch(outcome.expected, outcome.actual)
                return OpResult(outcome.passed, outcome.message)

            if tag is None:
                return self._query_backend()

            self._check_tag(tag)
            artifact = d.artifact_path(tag)
            if not artifact.exists():
                raise FilesystemError(f"{artifact} does not exist")
        except TagsmithError as exc:
            return self._fail(exc, tag or "")

        if artifact.is_file() and os.access(artifact, os.X_OK):
            return OpResult(True, f"{tag}: {artifact} is executable")
        return OpResult(False, f"{tag}: {artifact} is not executable")

    def _query_backend(self) -> OpResult:
        s = self.state
        if any((s.build, s.run, s.delete, s.init, s.purge, s.list_active, s.list_all)):
            return OpResult(True, "nothing to query")
        argv = self.kernel.default_argv(self.descriptor)
        result = check_command(argv, cwd=self.descriptor.backend_dir, runner=self.runner)
        echo_output(result.stdout, result.stderr)
        return OpResult(True, f"{' '.join(argv)}: ok")

    def _report_mismatch(self, expected: dict[str, str], actual: dict[str, str]) -> None:
        for stream in sorted(expected):
            print(f"[tagsmith] expected {stream}:\n{expected[stream]}", file=sys.stderr)
            print(f"[tagsmith] actual {stream}:\n{actual.get(stream, '')}", file=sys.stderr)

    def init(self) -> BulkResult:
        results = []
        for tag in self.table:
            r = self.build(tag)
            if not r.ok:
                print(f"[tagsmith] warning: {r.message}", file=sys.stderr)
            results.append(r)
        return BulkResult(results=results)

    def purge(self) -> BulkResult:
        results = []
        for tag in self.table:
            if not self.descriptor.artifact_path(tag).exists():
                continue
            r = self.delete(tag)
            if not r.ok:
                print(f"[tagsmith] warning: {r.message}", file=sys.stderr)
            results.append(r)
        return BulkResult(results=results)

    def list_tags(self, *, show_all: bool = False) -> OpResult:
        if show_all:
            sigil = self.descriptor.sigil
            entries = sorted(
                self.descriptor.raw_versions,
                key=lambda item: semver_key(item[0].removeprefix(sigil)),
            )
        else:
            entries = list(self.table.items())
        for key, desc in entries:
            print(f"{key}\t{desc}")
        return OpResult(True, f"{len(entries)} tags")
