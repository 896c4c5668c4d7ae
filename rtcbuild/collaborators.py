"""Interfaces of the external tools the pipeline drives.

Each collaborator is injected into :class:`~rtcbuild.pipeline.BuildPipeline`.
Implementations signal failure by raising the matching
:class:`~rtcbuild.errors.BuildError` subclass.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence


class VersionControlClient(Protocol):
    def branch_head(self, repo_url: str, branch: str) -> str:
        """Return the SHA the remote ``branch`` currently points at."""

    def latest_revision(self, repo_url: str) -> str:
        """Return the SHA of the remote default branch head."""

    def revision_number(self, repo_url: str, sha: str) -> int:
        """Return the number of commits reachable from ``sha``."""

    def checkout(self, target_os: str, outdir: Path, sha: str) -> None:
        ...


class DependencyChecker(Protocol):
    def check_host(self, platform: str, target_cpu: str) -> None:
        ...

    def check_project(self, platform: str, outdir: Path, target_os: str) -> None:
        ...


class Patcher(Protocol):
    def apply(self, platform: str, outdir: Path, enable_rtti: bool) -> None:
        ...


class Compiler(Protocol):
    def compile(
        self,
        platform: str,
        outdir: Path,
        target_os: str,
        target_cpu: str,
        configs: Sequence[str],
        blacklist: Sequence[str],
    ) -> None:
        """Build every configuration; any failure fails the whole matrix."""


class Packager(Protocol):
    def prepare(
        self,
        platform: str,
        outdir: Path,
        filename: str,
        configs: Sequence[str],
        revision_number: int,
    ) -> Path:
        """Stage libraries, headers and resources under ``outdir/filename``."""

    def debian(self, outdir: Path, filename: str, name: str, version: str, arch: str) -> Path:
        ...

    def archive(self, platform: str, outdir: Path, filename: str) -> Path:
        ...

    def manifest(self, platform: str, outdir: Path, filename: str) -> Path:
        ...
