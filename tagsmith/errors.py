"""Error types raised by tagsmith.

Every error derives from `TagsmithError` so the CLI can catch a single base class and
turn it into a non-zero exit status.

- `ParseError`: the descriptor could not be decoded (bad TOML, bad legacy header, an
  invalid tag key, a tag present in both partitions, or format detection failure).
- `ValidationError`: the input decoded fine but is not acceptable for this run (unknown
  tag, conflicting mode flags, a kernel the schema version does not allow, a dirty
  working tree).
- `ProcessError`: an external tool exited non-zero or could not be spawned. Carries the
  argv, exit code and captured output so callers can echo it.
- `FilesystemError`: an artifact or directory the operation needs is missing or
  unreadable.
- `RelocationError`: the build step succeeded but its artifacts could not be moved or
  unpacked into the tag directory.
- `SwitchBackError`: git could not return to the ref that was checked out before a build.
  This is the one error bulk operations never downgrade to a warning.
"""

from __future__ import annotations


class TagsmithError(RuntimeError):
    pass


class ParseError(TagsmithError):
    pass


class ValidationError(TagsmithError):
    pass


class FilesystemError(TagsmithError):
    pass


class ProcessError(TagsmithError):
    def __init__(
        self,
        message: str,
        *,
        argv: list[str] | None = None,
        exit_code: int | None = None,
        stdout: bytes = b"",
        stderr: bytes = b"",
    ) -> None:
        super().__init__(message)
        self.argv = list(argv or [])
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class RelocationError(ProcessError):
    pass


class SwitchBackError(ProcessError):
    pass
