from __future__ import annotations

import runpy

import pytest


def test_init_exports_version() -> None:
    import tagsmith

    assert tagsmith.__all__ == ["__version__"]
    assert isinstance(tagsmith.__version__, str)
    assert tagsmith.__version__


def test_main_module_import_exposes_cli_main() -> None:
    import tagsmith.__main__ as main_mod
    import tagsmith.cli as cli

    assert main_mod.main is cli.main


def test_main_module_exec_uses_cli_return_code(monkeypatch: pytest.MonkeyPatch) -> None:
    import tagsmith.cli as cli

    monkeypatch.setattr(cli, "main", lambda: 17)

    with pytest.raises(SystemExit) as exc:
        runpy.run_module("tagsmith.__main__", run_name="__main__")

    assert exc.value.code == 17


def test_version_flag_prints_package_version(capsys: pytest.CaptureFixture[str]) -> None:
    import tagsmith
    import tagsmith.cli as cli

    with pytest.raises(SystemExit) as exc:
        cli.main(["-v"])

    assert exc.value.code == 0
    assert capsys.readouterr().out.strip() == f"tagsmith {tagsmith.__version__}"


def test_main_module_documents_environment_variables() -> None:
    import tagsmith.__main__ as main_mod

    assert main_mod.__doc__ is not None
    assert "TAGSMITH_CONTROL_ROOT" in main_mod.__doc__
    assert "TAGSMITH_PYTHON" in main_mod.__doc__
