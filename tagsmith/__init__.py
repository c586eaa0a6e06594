"""tagsmith: a tag-indexed build orchestrator.

tagsmith sits above an existing build backend (a C toolchain driven by `gcc`/`make`, the
Python `build` frontend, or any user-supplied command) and drives per-version build, run,
delete and query operations, optionally synchronized to git tags.

What tagsmith provides
- A CLI entrypoint (`tagsmith.cli:main`, runnable via `python -m tagsmith`).
- A descriptor resolver (`tagsmith.descriptor.resolve`) that reads either the TOML
  descriptor or the legacy fixed-line one into an immutable `ProjectDescriptor`.
- Semantic-version ordering (`tagsmith.semver`) and version tables split into checkout
  and in-place tags (`tagsmith.versions`).
- A build orchestrator (`tagsmith.orchestrator.BuildOrchestrator`) implementing the git
  checkout, build, switch-back protocol with per-tag failure containment.
- Build kernels (`tagsmith.kernels`) for native, Python-package and custom backends.
- A golden-output test runner (`tagsmith.testrunner`).

What tagsmith intentionally does not do
- Decide what to rebuild inside a tag: that belongs to the backend.
- Run anything in parallel: one external process at a time.

Key exports from this module
- `__version__`: the package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
