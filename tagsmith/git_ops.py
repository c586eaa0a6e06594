"""Git operations used by checkout-mode builds.

`GitClient` shells out to `git` in `control_root` (the backend/project root). Each method
maps to a single git command so callers can reason about side effects:

- `is_clean() -> bool`
  `git status --porcelain --untracked-files=no` is empty. Modified or staged tracked files
  make the tree dirty; untracked files do not.
- `is_detached() -> bool`
  `git rev-parse --abbrev-ref HEAD` prints `HEAD`.
- `checkout(tag)`
  `git checkout <tag>`.
- `update_submodules()`
  `git submodule update --init --recursive`.
- `switch_back(detached=...)`
  `git switch -`, or `git switch --detach -` when the starting ref was detached.

All invocations go through `_git(...)`, which raises `ProcessError` (carrying the captured
output) on a non-zero exit or when git cannot be spawned. The orchestrator decides which
of those failures are fatal.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from .errors import ProcessError


class GitClient:
    def __init__(self, *, control_root: Path) -> None:
        self.control_root = control_root

    def is_clean(self) -> bool:
        out = self._git(["status", "--porcelain", "--untracked-files=no"])
        return not out.strip()

    def is_detached(self) -> bool:
        return self._git(["rev-parse", "--abbrev-ref", "HEAD"]).strip() == "HEAD"

    def checkout(self, tag: str) -> None:
        print(f"[tagsmith] git checkout {tag}", file=sys.stderr)
        self._git(["checkout", tag])

    def update_submodules(self) -> None:
        self._git(["submodule", "update", "--init", "--recursive"])

    def switch_back(self, *, detached: bool) -> None:
        args = ["switch", "--detach", "-"] if detached else ["switch", "-"]
        print(f"[tagsmith] git {' '.join(args)}", file=sys.stderr)
        self._git(args)

    def _git(self, args: list[str]) -> str:
        argv = ["git", *args]
        try:
            p = subprocess.run(
                argv,
                cwd=self.control_root,
                text=True,
                check=True,
                capture_output=True,
            )
        except subprocess.CalledProcessError as exc:
            raise ProcessError(
                f"git {args[0]} failed with status {exc.returncode}",
                argv=argv,
                exit_code=exc.returncode,
                stdout=(exc.stdout or "").encode(),
                stderr=(exc.stderr or "").encode(),
            ) from exc
        except OSError as exc:
            raise ProcessError(f"Failed to spawn git: {exc}", argv=argv) from exc
        return p.stdout
