from __future__ import annotations

from pathlib import Path

import pytest

import tagsmith.cli as cli
from tagsmith.errors import SwitchBackError, ValidationError
from tagsmith.modes import RunMode
from tagsmith.orchestrator import BulkResult, OpResult

DESCRIPTOR = """\
[tagsmith]
version = "2.1.0"

[build]
source = "main.c"
bin = "hello"

[versions]
"0.1.0" = "first"
"B0.2.0" = "second"
"""


def _write_descriptor(root: Path) -> Path:
    lock = root / "bin" / "tagsmith.lock"
    lock.parent.mkdir(parents=True)
    lock.write_text(DESCRIPTOR, encoding="utf-8")
    return lock


def test_build_parser_flags_and_defaults() -> None:
    args = cli.build_parser().parse_args(["0.1.0", "-b", "-F", "-R", "-B"])

    assert args.tag == "0.1.0"
    assert args.build is True
    assert args.force is True
    assert args.no_rebuild is True
    assert args.base is True
    assert args.git is False
    assert args.descriptor == str(Path("bin") / "tagsmith.lock")
    assert args.builds_dir is None
    assert args.schema_version is None


def test_build_parser_rejects_two_modes() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["-g", "-T"])


class FakeOrchestrator:
    instances: list["FakeOrchestrator"] = []
    results: list[OpResult | BulkResult] = []
    raises: Exception | None = None

    def __init__(self, descriptor: object, state: object, *, git: object) -> None:
        self.descriptor = descriptor
        self.state = state
        self.git = git
        FakeOrchestrator.instances.append(self)

    def execute(self) -> list[OpResult | BulkResult]:
        if FakeOrchestrator.raises is not None:
            raise FakeOrchestrator.raises
        return FakeOrchestrator.results


@pytest.fixture
def fake_orch(monkeypatch: pytest.MonkeyPatch) -> type[FakeOrchestrator]:
    FakeOrchestrator.instances = []
    FakeOrchestrator.results = [OpResult(True, "ok")]
    FakeOrchestrator.raises = None
    monkeypatch.setattr(cli, "BuildOrchestrator", FakeOrchestrator)
    return FakeOrchestrator


def test_main_wires_descriptor_and_state_from_control_root(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, fake_orch: type[FakeOrchestrator]
) -> None:
    monkeypatch.setenv("TAGSMITH_CONTROL_ROOT", str(tmp_path))
    _write_descriptor(tmp_path)

    rc = cli.main(["0.2.0", "-B", "-b", "-E", "other", "-D", "out"])

    assert rc == 0
    orch = fake_orch.instances[0]
    d = orch.descriptor
    assert d.backend_dir == tmp_path.resolve()
    assert d.builds_dir == (tmp_path / "out").resolve()
    assert d.bin == "other"
    assert dict(d.inplace_versions) == {"0.2.0": "second"}
    assert orch.state.mode is RunMode.INPLACE
    assert orch.state.tag == "0.2.0"
    assert orch.state.build is True
    assert orch.git.control_root == tmp_path.resolve()


def test_main_returns_one_when_an_operation_fails(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, fake_orch: type[FakeOrchestrator], capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("TAGSMITH_CONTROL_ROOT", str(tmp_path))
    _write_descriptor(tmp_path)
    fake_orch.results = [OpResult(True, "fine"), BulkResult(results=[OpResult(False, "0.1.0: broke")])]

    assert cli.main(["-i"]) == 1
    assert "error: 0/1 succeeded" in capsys.readouterr().err


def test_main_reports_resolution_errors(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("TAGSMITH_CONTROL_ROOT", str(tmp_path))

    assert cli.main(["-l"]) == 1
    assert "[tagsmith] error: Cannot read descriptor" in capsys.readouterr().err


@pytest.mark.parametrize(("exc", "code"), [(ValidationError("dirty"), 1), (SwitchBackError("stuck"), 2)])
def test_main_maps_raised_errors_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    fake_orch: type[FakeOrchestrator],
    exc: Exception,
    code: int,
) -> None:
    monkeypatch.setenv("TAGSMITH_CONTROL_ROOT", str(tmp_path))
    _write_descriptor(tmp_path)
    fake_orch.raises = exc

    assert cli.main(["0.1.0", "-b"]) == code


def test_main_wires_list_flag_to_list_active(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, fake_orch: type[FakeOrchestrator]
) -> None:
    monkeypatch.setenv("TAGSMITH_CONTROL_ROOT", str(tmp_path))
    _write_descriptor(tmp_path)

    assert cli.main(["-l"]) == 0
    assert fake_orch.instances[0].state.list_active is True
    assert fake_orch.instances[0].state.list_all is False


def test_main_delete_succeeds_and_exits_zero(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("TAGSMITH_CONTROL_ROOT", str(tmp_path))
    lock = tmp_path / "bin" / "tagsmith.lock"
    lock.parent.mkdir(parents=True)
    lock.write_text(DESCRIPTOR.replace('"0.1.0" = "first"\n', "").replace('"B0.2.0"', '"B0.1.0"'), encoding="utf-8")
    artifact = tmp_path / "bin" / "v0.1.0" / "hello"
    artifact.parent.mkdir()
    artifact.write_text("#!/bin/sh\n", encoding="utf-8")

    rc = cli.main(["-B", "-d", "0.1.0"])

    assert rc == 0
    assert not artifact.exists()
    err = capsys.readouterr().err
    assert "0.1.0: deleted hello" in err
    assert "error" not in err
