"""Run modes and the per-invocation mutable state.

Exactly one mode is active for a run; it is chosen once at startup and never changes:

- `CHECKOUT` (default): tags come from the checkout table and each build checks the tag
  out in git, builds, then switches back.
- `INPLACE`: tags come from the in-place table and are built from the current tree.
- `SINGLE_TEST`: the tag slot names one test; `build` means "record".
- `TEST_SUITE`: every discovered test runs; `build` means "record".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .descriptor import ProjectDescriptor
from .errors import ValidationError
from .versions import VersionTable


class RunMode(str, Enum):
    CHECKOUT = "checkout"
    INPLACE = "inplace"
    SINGLE_TEST = "single_test"
    TEST_SUITE = "test_suite"

    @property
    def is_test(self) -> bool:
        return self in (RunMode.SINGLE_TEST, RunMode.TEST_SUITE)


@dataclass
class RunState:
    mode: RunMode = RunMode.CHECKOUT
    tag: str | None = None
    build: bool = False
    run: bool = False
    delete: bool = False
    init: bool = False
    purge: bool = False
    list_active: bool = False
    list_all: bool = False
    latest: bool = False
    force: bool = False
    no_rebuild: bool = False
    ignore_gitcheck: bool = False

    @property
    def record(self) -> bool:
        return self.mode.is_test and self.build


def select_mode(*, checkout: bool = False, inplace: bool = False, single_test: bool = False, test_suite: bool = False) -> RunMode:
    chosen = [
        mode
        for mode, flag in (
            (RunMode.CHECKOUT, checkout),
            (RunMode.INPLACE, inplace),
            (RunMode.SINGLE_TEST, single_test),
            (RunMode.TEST_SUITE, test_suite),
        )
        if flag
    ]
    if len(chosen) > 1:
        raise ValidationError(f"Conflicting modes: {', '.join(m.value for m in chosen)}")
    return chosen[0] if chosen else RunMode.CHECKOUT


def active_table(descriptor: ProjectDescriptor, mode: RunMode) -> VersionTable:
    if mode is RunMode.INPLACE:
        return descriptor.inplace_versions
    return descriptor.checkout_versions


def validate_state(state: RunState, descriptor: ProjectDescriptor) -> None:
    """Enforce per-mode rules and resolve `--latest`; mutates `state.tag` only."""
    if state.mode.is_test:
        forbidden = [name for name in ("run", "delete", "init", "purge") if getattr(state, name)]
        if forbidden:
            raise ValidationError(f"Not allowed in {state.mode.value} mode: {', '.join(forbidden)}")
        if state.latest:
            raise ValidationError(f"--latest is not allowed in {state.mode.value} mode")
        if not descriptor.tests_enabled:
            raise ValidationError("Test support is disabled for this project")
        if state.mode is RunMode.SINGLE_TEST and not state.tag:
            raise ValidationError("Single-test mode needs a test name")
        if state.mode is RunMode.TEST_SUITE and state.tag:
            raise ValidationError("Test-suite mode takes no test name")
        return

    if state.latest:
        latest = active_table(descriptor, state.mode).latest()
        if latest is None:
            raise ValidationError(f"No tags in the {state.mode.value} table")
        state.tag = latest
