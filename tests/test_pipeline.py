from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from conftest import BRANCH_SHA, HEAD_SHA, CallLog
from rtcbuild.errors import AcquisitionError, CompileError, DependencyError, PackagingError
from rtcbuild.models import BuildRequest
from rtcbuild.pipeline import BuildPipeline, Collaborators, Stage
from rtcbuild.toolchain import FilesystemPackager

REPO = "https://example.com/src.git"
PACKAGING_CALLS = {"prepare", "archive", "manifest", "debian"}


def _run(collaborators: Collaborators, tmp_path: Path, **overrides):
    request = BuildRequest(outdir=tmp_path / "out", **overrides)
    return BuildPipeline(request, collaborators, REPO, system="linux").run()


def test_full_run_calls_collaborators_in_order(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path)
    assert report.succeeded
    assert call_log.names() == [
        "check_host",
        "latest_revision",
        "revision_number",
        "checkout",
        "check_project",
        "patch",
        "compile",
        "prepare",
        "archive",
        "manifest",
    ]
    assert [result.name for result in report.results] == [stage.label for stage in Stage.ordered()]
    assert report.descriptor is not None
    assert report.descriptor.filename == f"webrtc-12345-{HEAD_SHA[:7]}-linux-x64"


def test_default_configs_compiled_together(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    _run(collaborators, tmp_path)
    assert [name for name in call_log.names() if name == "compile"] == ["compile"]
    _, outdir, target_os, target_cpu, configs, blacklist = call_log.args("compile")
    assert configs == ["Debug", "Release"]
    assert blacklist == []
    assert (target_os, target_cpu) == ("linux", "x64")


def test_blacklist_and_configs_passed_whole(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    _run(collaborators, tmp_path, configs=("Release", "Release"), blacklist=("foo.o", "bar.o"))
    configs, blacklist = call_log.args("compile")[4:]
    assert configs == ["Release"]
    assert blacklist == ["foo.o", "bar.o"]


def test_branch_overrides_revision(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path, branch="branch-heads/72", revision="1111111")
    assert report.revision is not None
    assert report.revision.sha == BRANCH_SHA
    assert call_log.args("checkout")[2] == BRANCH_SHA


def test_express_skips_environment_and_acquisition(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path, express=True)
    assert report.succeeded
    assert call_log.names() == ["latest_revision", "revision_number", "compile", "prepare", "archive", "manifest"]
    skipped = [result.name for result in report.results if result.status == "skipped"]
    assert skipped == ["environment", "checkout", "project_deps", "patch"]


def test_express_runs_give_identical_descriptor(collaborators: Collaborators, tmp_path: Path) -> None:
    first = _run(collaborators, tmp_path, express=True)
    second = _run(collaborators, tmp_path, express=True)
    assert first.descriptor == second.descriptor


def test_rtti_flag_reaches_patcher(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    _run(collaborators, tmp_path, enable_rtti=False)
    assert call_log.args("patch")[2] is False


def test_debian_packaging_excludes_archive(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path, debian=True, target_cpu="arm")
    assert report.succeeded
    packaging = [name for name in call_log.names() if name in PACKAGING_CALLS]
    assert packaging == ["prepare", "debian"]
    _, filename, name, version, arch = call_log.args("debian")
    assert (name, version, arch) == ("webrtc", "12345", "armhf")
    assert filename.endswith("-linux-arm")


def test_archive_packaging_excludes_debian(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    _run(collaborators, tmp_path)
    packaging = [name for name in call_log.names() if name in PACKAGING_CALLS]
    assert packaging == ["prepare", "archive", "manifest"]
    assert call_log.args("prepare")[3:] == (["Debug", "Release"], 12345)


def test_compile_failure_prevents_packaging(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    call_log.failures["compile"] = CompileError("Release build failed")
    report = _run(collaborators, tmp_path)
    assert not report.succeeded
    assert report.failed_stage is not None
    assert report.failed_stage.name == "compile"
    assert report.failed_stage.details == {"error": "CompileError", "message": "Release build failed"}
    assert not PACKAGING_CALLS.intersection(call_log.names())
    assert report.stage("package") is None


@pytest.mark.parametrize(
    "failing_call, error, stage",
    [
        ("check_host", DependencyError("git missing"), "environment"),
        ("checkout", AcquisitionError("sync failed"), "checkout"),
        ("check_project", DependencyError("no src"), "project_deps"),
        ("patch", AcquisitionError("patch rejected"), "patch"),
    ],
)
def test_first_failure_stops_pipeline(
    collaborators: Collaborators, call_log: CallLog, tmp_path: Path, failing_call, error, stage
) -> None:
    call_log.failures[failing_call] = error
    report = _run(collaborators, tmp_path)
    assert report.failed_stage is not None
    assert report.failed_stage.name == stage
    assert report.results[-1].name == stage
    assert call_log.names()[-1] == failing_call
    assert "compile" not in call_log.names()


def test_resolution_failure_aborts_before_checkout(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path, branch="branch-heads/missing")
    assert report.failed_stage is not None
    assert report.failed_stage.name == "revision"
    assert report.failed_stage.details["error"] == "ResolutionError"
    assert "checkout" not in call_log.names()


def test_unmapped_debian_cpu_fails_closed(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path, debian=True, target_cpu="mips")
    assert report.failed_stage is not None
    assert report.failed_stage.name == "package"
    assert report.failed_stage.details["error"] == "PackagingError"
    assert "debian" not in call_log.names()


def test_packaging_error_from_collaborator(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    call_log.failures["archive"] = PackagingError("disk full")
    report = _run(collaborators, tmp_path)
    assert report.failed_stage is not None
    assert report.failed_stage.details["message"] == "disk full"
    assert "manifest" not in call_log.names()


def test_report_to_dict(collaborators: Collaborators, tmp_path: Path) -> None:
    payload = _run(collaborators, tmp_path).to_dict()
    assert payload["succeeded"] is True
    assert payload["revision"] == {"sha": HEAD_SHA, "number": 12345}
    assert payload["package"]["name"] == "webrtc"
    assert payload["stages"][-1]["details"]["strategy"] == "archive"


def test_empty_package_filename_keeps_output_dir(
    collaborators: Collaborators, call_log: CallLog, tmp_path: Path
) -> None:
    outdir = tmp_path / "out"
    library = outdir / "src" / "out" / "Debug" / "libwebrtc_full.a"
    library.parent.mkdir(parents=True)
    library.write_bytes(b"lib")
    (outdir / ".gclient").write_text("solutions = []\n")
    packager = FilesystemPackager(tmp_path / "resource")

    # %b% resolves to nothing when no branch is given
    report = _run(
        replace(collaborators, packager=packager),
        tmp_path,
        express=True,
        configs=("Debug",),
        filename_pattern="%b%",
    )

    assert report.descriptor is not None
    assert report.descriptor.filename == ""
    assert report.failed_stage is not None
    assert report.failed_stage.name == "package"
    assert report.failed_stage.details["error"] == "PackagingError"
    assert library.read_bytes() == b"lib"
    assert (outdir / ".gclient").exists()


def test_package_filename_naming_source_tree_fails(collaborators: Collaborators, call_log: CallLog, tmp_path: Path) -> None:
    report = _run(collaborators, tmp_path, filename_pattern="src")
    assert report.failed_stage is not None
    assert report.failed_stage.name == "package"
    assert not PACKAGING_CALLS.intersection(call_log.names())
