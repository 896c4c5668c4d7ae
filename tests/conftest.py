from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from rtcbuild.errors import BuildError
from rtcbuild.pipeline import Collaborators

HEAD_SHA = "0123456789abcdef0123456789abcdef01234567"
BRANCH_SHA = "fedcba9876543210fedcba9876543210fedcba98"


class CallLog:
    """Shared, ordered record of every collaborator call."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, BuildError] = {}

    def record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def args(self, name: str) -> tuple:
        for call_name, args in self.calls:
            if call_name == name:
                return args
        raise AssertionError(f"{name} was not called")


class FakeVcs:
    def __init__(self, log: CallLog, heads: Optional[Dict[str, str]] = None, numbers: Optional[Dict[str, int]] = None):
        self.log = log
        self.heads = heads if heads is not None else {"branch-heads/72": BRANCH_SHA}
        self.numbers = numbers if numbers is not None else {HEAD_SHA: 12345, BRANCH_SHA: 23456}

    def branch_head(self, repo_url: str, branch: str) -> str:
        self.log.record("branch_head", repo_url, branch)
        return self.heads.get(branch, "")

    def latest_revision(self, repo_url: str) -> str:
        self.log.record("latest_revision", repo_url)
        return HEAD_SHA

    def revision_number(self, repo_url: str, sha: str) -> int:
        self.log.record("revision_number", repo_url, sha)
        return self.numbers.get(sha, 77)

    def checkout(self, target_os: str, outdir: Path, sha: str) -> None:
        self.log.record("checkout", target_os, outdir, sha)


class FakeChecker:
    def __init__(self, log: CallLog):
        self.log = log

    def check_host(self, platform: str, target_cpu: str) -> None:
        self.log.record("check_host", platform, target_cpu)

    def check_project(self, platform: str, outdir: Path, target_os: str) -> None:
        self.log.record("check_project", platform, outdir, target_os)


class FakePatcher:
    def __init__(self, log: CallLog):
        self.log = log

    def apply(self, platform: str, outdir: Path, enable_rtti: bool) -> None:
        self.log.record("patch", platform, outdir, enable_rtti)


class FakeCompiler:
    def __init__(self, log: CallLog):
        self.log = log

    def compile(self, platform, outdir, target_os, target_cpu, configs: Sequence[str], blacklist: Sequence[str]) -> None:
        self.log.record("compile", platform, outdir, target_os, target_cpu, list(configs), list(blacklist))


class FakePackager:
    def __init__(self, log: CallLog):
        self.log = log

    def prepare(self, platform, outdir, filename, configs, revision_number):
        self.log.record("prepare", platform, outdir, filename, list(configs), revision_number)
        return Path(outdir) / filename

    def debian(self, outdir, filename, name, version, arch):
        self.log.record("debian", outdir, filename, name, version, arch)
        return Path(outdir) / f"{filename}.deb"

    def archive(self, platform, outdir, filename):
        self.log.record("archive", platform, outdir, filename)
        return Path(outdir) / f"{filename}.tar.gz"

    def manifest(self, platform, outdir, filename):
        self.log.record("manifest", platform, outdir, filename)
        return Path(outdir) / f"{filename}.json"


@pytest.fixture
def call_log() -> CallLog:
    return CallLog()


@pytest.fixture
def collaborators(call_log: CallLog) -> Collaborators:
    return Collaborators(
        vcs=FakeVcs(call_log),
        checker=FakeChecker(call_log),
        patcher=FakePatcher(call_log),
        compiler=FakeCompiler(call_log),
        packager=FakePackager(call_log),
    )
