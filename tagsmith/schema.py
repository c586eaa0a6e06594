"""Descriptor schema versions and the features they gate.

The descriptor declares which schema revision it was written against. Newer revisions
add capabilities; older descriptors must keep resolving the way they always did.

Feature thresholds
- `STRUCTURED_FORMAT_SCHEMA`: first revision using the TOML descriptor. Anything older
  is decoded with the fixed-line legacy decoder.
- `DETACHED_HEAD_CHECK_SCHEMA`: first revision that records whether HEAD was detached
  before a checkout, so the switch-back can return to a detached ref.

Kernels
Each kernel has two thresholds. Below `introduced` it does not exist for that descriptor.
Between `introduced` and `unconditional` it is an extension: allowed with a warning, and
refused in strict mode.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum

from .errors import ParseError, ValidationError
from .semver import compare

LATEST_SCHEMA = "2.1.0"
STRUCTURED_FORMAT_SCHEMA = "2.0.0"
DETACHED_HEAD_CHECK_SCHEMA = "2.0.2"


class KernelKind(str, Enum):
    NATIVE = "native"
    PYPACKAGE = "pypackage"
    CUSTOM = "custom"


@dataclass(frozen=True)
class KernelWindow:
    introduced: str
    unconditional: str


KERNEL_WINDOWS: dict[KernelKind, KernelWindow] = {
    KernelKind.NATIVE: KernelWindow(introduced="2.0.0", unconditional="2.0.0"),
    KernelKind.PYPACKAGE: KernelWindow(introduced="2.0.3", unconditional="2.1.0"),
    KernelKind.CUSTOM: KernelWindow(introduced="2.0.4", unconditional="2.1.0"),
}

FEATURES: dict[str, str] = {
    "structured_format": STRUCTURED_FORMAT_SCHEMA,
    "detached_head_check": DETACHED_HEAD_CHECK_SCHEMA,
}


def supports(schema_version: str, feature: str) -> bool:
    return compare(schema_version, FEATURES[feature]) >= 0


def uses_structured_format(schema_version: str) -> bool:
    return supports(schema_version, "structured_format")


def check_kernel(keyword: str | None, *, schema_version: str, strict: bool) -> KernelKind:
    if keyword is None:
        return KernelKind.NATIVE
    try:
        kind = KernelKind(keyword.strip().lower())
    except ValueError:
        raise ParseError(f"Unknown kernel {keyword!r}") from None

    window = KERNEL_WINDOWS[kind]
    if compare(schema_version, window.introduced) < 0:
        raise ValidationError(
            f"Kernel {kind.value!r} needs schema >= {window.introduced}, descriptor is {schema_version}"
        )
    if compare(schema_version, window.unconditional) < 0:
        if strict:
            raise ValidationError(
                f"Kernel {kind.value!r} is an extension before schema {window.unconditional}; refused in strict mode"
            )
        print(f"[tagsmith] warning: kernel {kind.value!r} is an extension at schema {schema_version}", file=sys.stderr)
    return kind
