"""Process spawning.

Every external tool runs through `run_command()`: one process at a time, with an explicit
`cwd` (the process-wide working directory is never changed) and fully captured output as
bytes. A process that cannot be spawned raises `ProcessError`; a non-zero exit is
returned to the caller, and `check_command()` turns it into a `ProcessError`.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import ProcessError


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    exit_code: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


Runner = Callable[..., CommandResult]


def run_command(argv: list[str], *, cwd: Path, env: Mapping[str, str] | None = None) -> CommandResult:
    full_env = None
    if env:
        full_env = {**os.environ, **env}
    try:
        p = subprocess.run(argv, cwd=cwd, env=full_env, capture_output=True, check=False)
    except OSError as exc:
        raise ProcessError(f"Failed to spawn {argv[0]!r}: {exc}", argv=argv) from exc
    return CommandResult(argv=list(argv), exit_code=p.returncode, stdout=p.stdout, stderr=p.stderr)


def check_command(
    argv: list[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    runner: Runner = run_command,
) -> CommandResult:
    print(f"[tagsmith] $ {' '.join(argv)}", file=sys.stderr)
    result = runner(argv, cwd=cwd, env=env)
    if not result.ok:
        raise ProcessError(
            f"{argv[0]} exited with status {result.exit_code}",
            argv=argv,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result


def echo_output(stdout: bytes, stderr: bytes) -> None:
    if stdout:
        sys.stdout.buffer.write(stdout)
        sys.stdout.flush()
    if stderr:
        sys.stderr.buffer.write(stderr)
        sys.stderr.flush()
