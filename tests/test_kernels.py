from __future__ import annotations

from pathlib import Path

import pytest

from tagsmith import kernels
from tagsmith.descriptor import ProjectDescriptor
from tagsmith.errors import ProcessError, ValidationError
from tagsmith.procs import CommandResult
from tagsmith.schema import KernelKind


class FakeRunner:
    def __init__(self, *, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self.calls: list[dict[str, object]] = []

    def __call__(self, argv: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> CommandResult:
        self.calls.append({"argv": list(argv), "cwd": cwd, "env": env})
        return CommandResult(argv=list(argv), exit_code=self.exit_code, stdout=b"", stderr=b"boom")


def _descriptor(tmp_path: Path, **overrides: object) -> ProjectDescriptor:
    fields: dict[str, object] = {
        "schema_version": "2.1.0",
        "kernel": KernelKind.NATIVE,
        "extensions_enabled": True,
        "descriptor_path": tmp_path / "bin" / "tagsmith.lock",
        "backend_dir": tmp_path,
        "builds_dir": tmp_path / "bin",
        "bin": "hello",
        "source": "main.c",
        "buildtool_tag": "0.2.0",
        "bootstrap_tag": "0.3.0",
        "configure": "--enable-x --prefix=/opt",
        "cflags": "-O2 -Wall",
    }
    fields.update(overrides)
    return ProjectDescriptor(**fields)  # type: ignore[arg-type]


def _ctx(tmp_path: Path, d: ProjectDescriptor, tag: str, runner: FakeRunner, **kw: object) -> kernels.BuildContext:
    return kernels.BuildContext(
        descriptor=d,
        tag=tag,
        tag_dir=d.tag_dir(tag),
        cwd=tmp_path,
        runner=runner,
        **kw,  # type: ignore[arg-type]
    )


def test_kernel_for_covers_every_kind() -> None:
    for kind in KernelKind:
        assert kernels.kernel_for(kind).kind is kind


def test_native_compiles_directly_below_buildtool_tag(tmp_path: Path) -> None:
    runner = FakeRunner()
    d = _descriptor(tmp_path)

    step = kernels.NativeKernel().build_step(_ctx(tmp_path, d, "0.1.0", runner))

    assert runner.calls == [
        {"argv": ["gcc", "main.c", "-o", "hello", "-O2", "-Wall", "-lm"], "cwd": tmp_path, "env": None}
    ]
    assert step.artifacts == [tmp_path / "hello"]


@pytest.mark.parametrize(("no_rebuild", "argv"), [(False, ["make", "rebuild"]), (True, ["make"])])
def test_native_uses_make_from_buildtool_tag(tmp_path: Path, no_rebuild: bool, argv: list[str]) -> None:
    runner = FakeRunner()
    d = _descriptor(tmp_path)

    kernels.NativeKernel().build_step(_ctx(tmp_path, d, "0.2.0", runner, no_rebuild=no_rebuild))

    assert runner.calls == [{"argv": argv, "cwd": tmp_path, "env": {"CFLAGS": "-O2 -Wall"}}]


def test_native_without_buildtool_tag_always_compiles(tmp_path: Path) -> None:
    runner = FakeRunner()
    d = _descriptor(tmp_path, buildtool_tag=None)

    kernels.NativeKernel().build_step(_ctx(tmp_path, d, "9.0.0", runner))

    assert runner.calls[0]["argv"][0] == "gcc"  # type: ignore[index]


def test_native_direct_compile_needs_source(tmp_path: Path) -> None:
    d = _descriptor(tmp_path, source=None)

    with pytest.raises(ValidationError, match="no source"):
        kernels.NativeKernel().build_step(_ctx(tmp_path, d, "0.1.0", FakeRunner()))


def test_native_bootstrap_sequence(tmp_path: Path) -> None:
    runner = FakeRunner()
    d = _descriptor(tmp_path)
    native = kernels.NativeKernel()

    assert native.needs_bootstrap(d, "0.2.0") is False
    assert native.needs_bootstrap(d, "0.3.0") is True

    native.bootstrap(_ctx(tmp_path, d, "0.3.0", runner))

    assert [c["argv"] for c in runner.calls] == [
        ["aclocal"],
        ["autoconf"],
        ["automake", "--add-missing"],
        ["./configure", "--enable-x", "--prefix=/opt"],
    ]


def test_bootstrap_stops_at_first_failure(tmp_path: Path) -> None:
    runner = FakeRunner(exit_code=1)
    d = _descriptor(tmp_path)

    with pytest.raises(ProcessError) as exc:
        kernels.NativeKernel().bootstrap(_ctx(tmp_path, d, "0.3.0", runner))

    assert len(runner.calls) == 1
    assert exc.value.stderr == b"boom"


def test_pypackage_builds_and_reports_sdist(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSMITH_PYTHON", "/usr/bin/python3")
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\nversion = "1.0.0"\n', encoding="utf-8")
    sdist = tmp_path / "dist" / "demo-1.0.0.tar.gz"
    sdist.parent.mkdir()
    sdist.write_bytes(b"")
    runner = FakeRunner()
    d = _descriptor(tmp_path, kernel=KernelKind.PYPACKAGE, bin="demo")

    step = kernels.PyPackageKernel().build_step(_ctx(tmp_path, d, "1.0.0", runner))

    assert runner.calls[0]["argv"] == [
        "/usr/bin/python3", "-m", "build", "--sdist", "--wheel", "--outdir", str(tmp_path / "dist"),
    ]
    assert step.sdist == sdist
    assert step.artifacts == [sdist]
    assert step.project is not None and step.project.name == "demo"


def test_custom_kernel_appends_build_arguments(tmp_path: Path) -> None:
    runner = FakeRunner()
    d = _descriptor(tmp_path, kernel=KernelKind.CUSTOM, custom_builder="./scripts/build.sh --fast")
    ctx = _ctx(tmp_path, d, "0.1.0", runner)

    step = kernels.CustomKernel().build_step(ctx)

    assert runner.calls[0]["argv"] == [
        "./scripts/build.sh", "--fast", str(ctx.tag_dir), "hello", "0.1.0", str(tmp_path / "bin"),
    ]
    assert step.artifacts == [tmp_path / "hello"]


def test_custom_kernel_skips_relocation_when_builder_wrote_artifact(tmp_path: Path) -> None:
    d = _descriptor(tmp_path, kernel=KernelKind.CUSTOM, custom_builder="build")
    ctx = _ctx(tmp_path, d, "0.1.0", FakeRunner())
    ctx.tag_dir.mkdir(parents=True)
    (ctx.tag_dir / "hello").write_text("", encoding="utf-8")

    assert kernels.CustomKernel().build_step(ctx).artifacts == []


def test_default_argv_per_kernel(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSMITH_PYTHON", "py")

    assert kernels.NativeKernel().default_argv(_descriptor(tmp_path)) == ["make"]
    assert kernels.PyPackageKernel().default_argv(_descriptor(tmp_path)) == ["py", "-m", "build"]
    custom = _descriptor(tmp_path, kernel=KernelKind.CUSTOM, custom_builder="sh build.sh")
    assert kernels.CustomKernel().default_argv(custom) == ["sh", "build.sh"]
