"""Golden-output test runner.

A test is an executable inside the pass or fail test directory. It runs with no
arguments; its stdout and stderr are compared byte-for-byte against the sibling record
files `<test>.stdout` and `<test>.stderr`.

- Record missing: in record mode the record is created; otherwise the stream is skipped
  with a warning and counts as matching.
- Record differs: in record mode it is overwritten; otherwise the test fails and the
  outcome carries both the expected and actual text.
- Test cannot start: the outcome fails with the spawn error and the suite moves on.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

from .errors import FilesystemError, ProcessError
from .procs import Runner, run_command


@dataclass(frozen=True)
class TestOutcome:
    __test__ = False

    name: str
    passed: bool
    stdout_match: bool
    stderr_match: bool
    message: str = ""
    expected: dict[str, str] = field(default_factory=dict)
    actual: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SuiteOutcome:
    outcomes: list[TestOutcome]

    @property
    def failures(self) -> int:
        return sum(1 for o in self.outcomes if not o.passed)

    @property
    def passed(self) -> bool:
        return self.failures == 0


def record_path(test: Path, stream: str) -> Path:
    return test.with_name(f"{test.name}.{stream}")


def _write_record(path: Path, output: bytes) -> None:
    try:
        path.write_bytes(output)
    except OSError as exc:
        raise FilesystemError(f"Cannot write {path}: {exc}") from exc


def _check_stream(test: Path, stream: str, output: bytes, *, record: bool) -> tuple[bool, str | None, str | None]:
    """Return `(matched, expected_text, actual_text)`; texts are set only on mismatch."""
    path = record_path(test, stream)
    if not path.exists():
        if record:
            _write_record(path, output)
            print(f"[tagsmith] recorded {path.name}", file=sys.stderr)
        else:
            print(f"[tagsmith] warning: no {stream} record for {test.name}; skipping", file=sys.stderr)
        return True, None, None

    try:
        expected = path.read_bytes()
    except OSError as exc:
        raise FilesystemError(f"Cannot read {path}: {exc}") from exc
    if expected == output:
        return True, None, None
    if record:
        _write_record(path, output)
        print(f"[tagsmith] re-recorded {path.name}", file=sys.stderr)
        return True, None, None
    return False, expected.decode(errors="replace"), output.decode(errors="replace")


def run_test(name: str, test: Path, *, record: bool = False, runner: Runner = run_command) -> TestOutcome:
    try:
        result = runner([str(test)], cwd=test.parent)
    except ProcessError as exc:
        return TestOutcome(name=name, passed=False, stdout_match=False, stderr_match=False, message=f"{name}: {exc}")

    stdout_ok, exp_out, act_out = _check_stream(test, "stdout", result.stdout, record=record)
    stderr_ok, exp_err, act_err = _check_stream(test, "stderr", result.stderr, record=record)

    expected: dict[str, str] = {}
    actual: dict[str, str] = {}
    if exp_out is not None:
        expected["stdout"], actual["stdout"] = exp_out, act_out or ""
    if exp_err is not None:
        expected["stderr"], actual["stderr"] = exp_err, act_err or ""

    passed = stdout_ok and stderr_ok
    if passed:
        message = f"{name}: ok"
    else:
        mismatched = ", ".join(sorted(expected))
        message = f"{name}: {mismatched} mismatch"
    return TestOutcome(
        name=name,
        passed=passed,
        stdout_match=stdout_ok,
        stderr_match=stderr_ok,
        message=message,
        expected=expected,
        actual=actual,
    )


def run_suite(tests: list[tuple[str, Path]], *, record: bool = False, runner: Runner = run_command) -> SuiteOutcome:
    outcomes = []
    for name, path in tests:
        outcome = run_test(name, path, record=record, runner=runner)
        print(f"[tagsmith] test {outcome.message}", file=sys.stderr)
        outcomes.append(outcome)
    return SuiteOutcome(outcomes=outcomes)
