from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_CONFIGS: Tuple[str, ...] = ("Debug", "Release")
DEFAULT_FILENAME_PATTERN = "webrtc-%rn%-%sr%-%to%-%tc%"
DEFAULT_NAME_PATTERN = "webrtc"
DEFAULT_VERSION_PATTERN = "%rn%"
SHORT_SHA_LENGTH = 7


def split_words(value: Optional[str]) -> Tuple[str, ...]:
    """Split a space separated option value, dropping repeated entries."""

    words: List[str] = []
    for word in (value or "").split():
        if word not in words:
            words.append(word)
    return tuple(words)


@dataclass(frozen=True)
class BuildRequest:
    """Everything a single pipeline run needs, resolved once from the command line."""

    outdir: Path = Path("out")
    branch: str = ""
    revision: str = ""
    target_os: str = ""
    target_cpu: str = ""
    configs: Tuple[str, ...] = DEFAULT_CONFIGS
    blacklist: Tuple[str, ...] = ()
    enable_rtti: bool = True
    express: bool = False
    debian: bool = False
    filename_pattern: str = DEFAULT_FILENAME_PATTERN
    name_pattern: str = DEFAULT_NAME_PATTERN
    version_pattern: str = DEFAULT_VERSION_PATTERN

    def __post_init__(self) -> None:
        object.__setattr__(self, "outdir", Path(self.outdir))
        # a bare string is a space separated list, as on the command line
        configs = self.configs.split() if isinstance(self.configs, str) else self.configs
        blacklist = self.blacklist.split() if isinstance(self.blacklist, str) else self.blacklist
        object.__setattr__(self, "configs", split_words(" ".join(configs)))
        object.__setattr__(self, "blacklist", tuple(blacklist))
        if not self.configs:
            raise ValueError("At least one build configuration is required")


@dataclass(frozen=True)
class Target:
    """Host platform and the normalized cross-compilation target."""

    platform: str
    target_os: str
    target_cpu: str


@dataclass(frozen=True)
class Revision:
    sha: str
    number: int


@dataclass(frozen=True)
class PackageContext:
    """Values available to naming patterns."""

    platform: str
    outdir: Path
    target_os: str
    target_cpu: str
    branch: str
    revision: str
    revision_number: int

    @property
    def short_sha(self) -> str:
        return self.revision[:SHORT_SHA_LENGTH]

    @classmethod
    def build(cls, request: BuildRequest, target: Target, revision: Revision) -> "PackageContext":
        return cls(
            platform=target.platform,
            outdir=request.outdir,
            target_os=target.target_os,
            target_cpu=target.target_cpu,
            branch=request.branch,
            revision=revision.sha,
            revision_number=revision.number,
        )


@dataclass(frozen=True)
class PackageDescriptor:
    filename: str
    name: str
    version: str

    def to_dict(self) -> Dict[str, str]:
        return {"filename": self.filename, "name": self.name, "version": self.version}


@dataclass
class StageResult:
    """Summary emitted by a pipeline stage."""

    name: str
    status: str
    details: Dict[str, Any]

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.name, "status": self.status, "details": self.details}


@dataclass
class PipelineReport:
    """Ordered stage results of one run plus the values it resolved."""

    results: List[StageResult] = field(default_factory=list)
    target: Optional[Target] = None
    revision: Optional[Revision] = None
    descriptor: Optional[PackageDescriptor] = None

    @property
    def failed_stage(self) -> Optional[StageResult]:
        for result in self.results:
            if result.failed:
                return result
        return None

    @property
    def succeeded(self) -> bool:
        return self.failed_stage is None

    def stage(self, name: str) -> Optional[StageResult]:
        for result in self.results:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "succeeded": self.succeeded,
            "stages": [result.to_dict() for result in self.results],
        }
        if self.target is not None:
            payload["target"] = {
                "platform": self.target.platform,
                "target_os": self.target.target_os,
                "target_cpu": self.target.target_cpu,
            }
        if self.revision is not None:
            payload["revision"] = {"sha": self.revision.sha, "number": self.revision.number}
        if self.descriptor is not None:
            payload["package"] = self.descriptor.to_dict()
        return payload
