"""Module entrypoint for ``python -m tagsmith``.

Running ``python -m tagsmith ...`` executes this module, a thin wrapper around
:func:`tagsmith.cli.main`. It raises ``SystemExit(main())`` so the CLI return code becomes
the process exit status. This is equivalent to the ``tagsmith`` console script.

Environment variables
- ``TAGSMITH_CONTROL_ROOT``: backend/project root; defaults to the current directory.
- ``TAGSMITH_PYTHON``: interpreter used by the ``pypackage`` kernel; defaults to the
  running interpreter.
"""

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
