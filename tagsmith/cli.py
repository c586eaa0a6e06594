"""tagsmith.cli

Command-line entrypoint for tagsmith, a tag-indexed build orchestrator that:
1) resolves a project descriptor (`bin/tagsmith.lock` by default) into version tables,
2) builds, runs, deletes or queries the artifact for one tag, or every tag at once,
3) checks out git tags for checkout-mode builds and always switches back afterwards,
4) runs golden-output tests against recorded stdout/stderr.

Entry points
- `tagsmith.cli:main`
- `python3 -m tagsmith ...` (delegates to this module)

Usage (conceptual)
- `tagsmith -b 0.2.0`         build tag 0.2.0 from a git checkout
- `tagsmith -B -b 0.3.0`      build in-place tag 0.3.0
- `tagsmith -r 0.2.0`         run the built binary for 0.2.0
- `tagsmith -i`               build every checkout tag
- `tagsmith -T`               run the test suite
- `tagsmith -t hello -b`      record the outputs of test `hello`

Control root
The backend/project root is `Path($TAGSMITH_CONTROL_ROOT).resolve()` when the variable is
set, otherwise `Path.cwd().resolve()`. `--descriptor`, `--builds-dir` and `--tests-dir`
are resolved relative to it; git commands run in it.

Exit status
- 0: every operation succeeded.
- 1: an operation failed, or the descriptor could not be resolved.
- 2: argument errors, or git could not switch back to the starting ref.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from . import __version__
from .descriptor import DEFAULT_DESCRIPTOR, DescriptorOverrides, resolve
from .errors import SwitchBackError, TagsmithError
from .git_ops import GitClient
from .modes import RunState, select_mode
from .orchestrator import BuildOrchestrator


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tagsmith", description="Tag-indexed build orchestrator.")
    p.add_argument(
        "tag",
        nargs="?",
        default=None,
        help="Version tag to operate on (or the test name in single-test mode).",
    )

    mode_group = p.add_mutually_exclusive_group()
    mode_group.add_argument("-g", "--git", action="store_true", help="Checkout mode: build tags from git (default).")
    mode_group.add_argument("-B", "--base", action="store_true", help="In-place mode: build tags without git.")
    mode_group.add_argument("-t", "--test", action="store_true", help="Single-test mode: TAG names the test.")
    mode_group.add_argument("-T", "--testsuite", action="store_true", help="Run every test.")

    p.add_argument("-b", "--build", action="store_true", help="Build TAG (record outputs in test modes).")
    p.add_argument("-r", "--run", action="store_true", help="Run the built binary for TAG.")
    p.add_argument("-d", "--delete", action="store_true", help="Delete the built binary for TAG.")
    p.add_argument("-i", "--init", action="store_true", help="Build every tag of the active table.")
    p.add_argument("-p", "--purge", action="store_true", help="Delete every built tag of the active table.")
    p.add_argument("-l", "--list", action="store_true", help="List tags of the active table.")
    p.add_argument("-L", "--list-all", action="store_true", help="List every declared tag, sigils included.")
    p.add_argument("--latest", action="store_true", help="Use the latest tag of the active table as TAG.")

    p.add_argument(
        "-f",
        "--descriptor",
        default=str(DEFAULT_DESCRIPTOR),
        help="Path to the project descriptor (default: ./bin/tagsmith.lock).",
    )
    p.add_argument(
        "-D",
        "--builds-dir",
        default=None,
        help="Directory holding v<tag>/ build directories (default: the descriptor's directory).",
    )
    p.add_argument("-a", "--schema-version", default=None, help="Decode the descriptor as this schema version.")
    p.add_argument("-e", "--strict", action="store_true", help="Refuse kernels that are still extensions.")
    p.add_argument("-X", "--ignore-gitcheck", action="store_true", help="Skip the clean working tree check.")
    p.add_argument("-F", "--force", action="store_true", help="Rebuild even when the artifact exists.")
    p.add_argument("-R", "--no-rebuild", action="store_true", help="Run plain 'make' instead of 'make rebuild'.")

    p.add_argument("-S", "--source", default=None, help="Override the source file name.")
    p.add_argument("-E", "--execname", default=None, help="Override the binary name.")
    p.add_argument("-M", "--maketag", default=None, help="Override the first tag built with make.")
    p.add_argument("-K", "--tests-dir", default=None, help="Override the tests directory.")
    p.add_argument("-C", "--configure", default=None, help="Override the ./configure arguments.")
    p.add_argument("-Z", "--cflags", default=None, help="Override the compiler flags.")
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: list[str] | None = None) -> int:
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(raw_argv)

    control_root_env = os.environ.get("TAGSMITH_CONTROL_ROOT")
    control_root = (Path(control_root_env) if control_root_env else Path.cwd()).resolve()
    descriptor_path = (control_root / args.descriptor).resolve()
    builds_dir = (control_root / args.builds_dir).resolve() if args.builds_dir else None

    overrides = DescriptorOverrides(
        source=args.source,
        bin=args.execname,
        buildtool_tag=args.maketag,
        tests_dir=args.tests_dir,
        configure=args.configure,
        cflags=args.cflags,
    )

    try:
        descriptor = resolve(
            descriptor_path,
            backend_dir=control_root,
            builds_dir=builds_dir,
            schema_version=args.schema_version,
            strict=bool(args.strict),
            overrides=overrides,
        )
        mode = select_mode(checkout=args.git, inplace=args.base, single_test=args.test, test_suite=args.testsuite)
        state = RunState(
            mode=mode,
            tag=args.tag,
            build=args.build,
            run=args.run,
            delete=args.delete,
            init=args.init,
            purge=args.purge,
            list_active=args.list,
            list_all=args.list_all,
            latest=args.latest,
            force=args.force,
            no_rebuild=args.no_rebuild,
            ignore_gitcheck=args.ignore_gitcheck,
        )
        orch = BuildOrchestrator(descriptor, state, git=GitClient(control_root=control_root))
        results = orch.execute()
    except SwitchBackError as exc:
        print(f"[tagsmith] fatal: {exc}", file=sys.stderr)
        return 2
    except TagsmithError as exc:
        print(f"[tagsmith] error: {exc}", file=sys.stderr)
        return 1

    status = 0
    for result in results:
        if result.ok:
            print(f"[tagsmith] {result.message}", file=sys.stderr)
        else:
            print(f"[tagsmith] error: {result.message}", file=sys.stderr)
            status = 1
    return status
