from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterable, Optional

from .collaborators import Compiler, DependencyChecker, Packager, Patcher, VersionControlClient
from .errors import (
    AcquisitionError,
    BuildError,
    CompileError,
    DependencyError,
    PackagingError,
    ResolutionError,
    UsageError,
)
from .models import BuildRequest, PackageContext, PipelineReport, Revision, StageResult, Target
from .packaging import dispatch_package
from .patterns import describe_package
from .platform import detect_and_normalize
from .revision import RevisionResolver

logger = logging.getLogger(__name__)


class Stage(Enum):
    PLATFORM = auto()
    ENVIRONMENT = auto()
    REVISION = auto()
    CHECKOUT = auto()
    PROJECT_DEPS = auto()
    PATCH = auto()
    COMPILE = auto()
    PACKAGE = auto()

    @classmethod
    def ordered(cls) -> Iterable["Stage"]:
        return (
            cls.PLATFORM,
            cls.ENVIRONMENT,
            cls.REVISION,
            cls.CHECKOUT,
            cls.PROJECT_DEPS,
            cls.PATCH,
            cls.COMPILE,
            cls.PACKAGE,
        )

    @property
    def label(self) -> str:
        return self.name.lower()


# stages that assume the output directory was prepared by an earlier run
EXPRESS_SKIPPED = frozenset({Stage.ENVIRONMENT, Stage.CHECKOUT, Stage.PROJECT_DEPS, Stage.PATCH})

# error raised when a collaborator fails with something other than a BuildError
_STAGE_ERRORS = {
    Stage.PLATFORM: UsageError,
    Stage.ENVIRONMENT: DependencyError,
    Stage.REVISION: ResolutionError,
    Stage.CHECKOUT: AcquisitionError,
    Stage.PROJECT_DEPS: DependencyError,
    Stage.PATCH: AcquisitionError,
    Stage.COMPILE: CompileError,
    Stage.PACKAGE: PackagingError,
}


@dataclass(frozen=True)
class Collaborators:
    vcs: VersionControlClient
    checker: DependencyChecker
    patcher: Patcher
    compiler: Compiler
    packager: Packager


StageHandler = Callable[["BuildPipeline"], Dict[str, Any]]


def _stage_platform(pipeline: "BuildPipeline") -> Dict[str, Any]:
    request = pipeline.request
    target = detect_and_normalize(request.target_os, request.target_cpu, system=pipeline.system)
    pipeline.report.target = target
    return {"platform": target.platform, "target_os": target.target_os, "target_cpu": target.target_cpu}


def _stage_environment(pipeline: "BuildPipeline") -> Dict[str, Any]:
    target = pipeline.target
    pipeline.collaborators.checker.check_host(target.platform, target.target_cpu)
    return {"platform": target.platform, "target_cpu": target.target_cpu}


def _stage_revision(pipeline: "BuildPipeline") -> Dict[str, Any]:
    request = pipeline.request
    revision = pipeline.resolver.resolve(request.branch, request.revision)
    pipeline.report.revision = revision
    return {"branch": request.branch, "sha": revision.sha, "number": revision.number}


def _stage_checkout(pipeline: "BuildPipeline") -> Dict[str, Any]:
    revision = pipeline.revision
    outdir = pipeline.request.outdir
    pipeline.collaborators.vcs.checkout(pipeline.target.target_os, outdir, revision.sha)
    return {"outdir": str(outdir), "sha": revision.sha}


def _stage_project_deps(pipeline: "BuildPipeline") -> Dict[str, Any]:
    target = pipeline.target
    pipeline.collaborators.checker.check_project(target.platform, pipeline.request.outdir, target.target_os)
    return {"target_os": target.target_os}


def _stage_patch(pipeline: "BuildPipeline") -> Dict[str, Any]:
    enable_rtti = pipeline.request.enable_rtti
    pipeline.collaborators.patcher.apply(pipeline.target.platform, pipeline.request.outdir, enable_rtti)
    return {"enable_rtti": enable_rtti}


def _stage_compile(pipeline: "BuildPipeline") -> Dict[str, Any]:
    request = pipeline.request
    target = pipeline.target
    pipeline.collaborators.compiler.compile(
        target.platform,
        request.outdir,
        target.target_os,
        target.target_cpu,
        list(request.configs),
        list(request.blacklist),
    )
    return {"configs": list(request.configs), "blacklist": list(request.blacklist)}


def _stage_package(pipeline: "BuildPipeline") -> Dict[str, Any]:
    request = pipeline.request
    target = pipeline.target
    revision = pipeline.revision
    descriptor = describe_package(request, PackageContext.build(request, target, revision))
    pipeline.report.descriptor = descriptor
    return dispatch_package(
        pipeline.collaborators.packager,
        descriptor,
        target.platform,
        request.outdir,
        list(request.configs),
        revision.number,
        request.debian,
        target.target_cpu,
    )


_STAGE_HANDLERS: Dict[Stage, StageHandler] = {
    Stage.PLATFORM: _stage_platform,
    Stage.ENVIRONMENT: _stage_environment,
    Stage.REVISION: _stage_revision,
    Stage.CHECKOUT: _stage_checkout,
    Stage.PROJECT_DEPS: _stage_project_deps,
    Stage.PATCH: _stage_patch,
    Stage.COMPILE: _stage_compile,
    Stage.PACKAGE: _stage_package,
}


class BuildPipeline:
    """Runs the build stages in order and stops at the first failure."""

    def __init__(
        self,
        request: BuildRequest,
        collaborators: Collaborators,
        repo_url: str,
        system: Optional[str] = None,
    ) -> None:
        self.request = request
        self.collaborators = collaborators
        self.resolver = RevisionResolver(collaborators.vcs, repo_url)
        self.system = system
        self.report = PipelineReport()

    @property
    def target(self) -> Target:
        assert self.report.target is not None, "platform stage has not run"
        return self.report.target

    @property
    def revision(self) -> Revision:
        assert self.report.revision is not None, "revision stage has not run"
        return self.report.revision

    def run(self) -> PipelineReport:
        for stage in Stage.ordered():
            result = self.run_stage(stage)
            self.report.results.append(result)
            if result.failed:
                logger.error("Stage %s failed: %s", stage.label, result.details.get("message"))
                break
        else:
            logger.info("Build successful")
        return self.report

    def run_stage(self, stage: Stage) -> StageResult:
        if self.request.express and stage in EXPRESS_SKIPPED:
            logger.debug("Express mode, skipping %s", stage.label)
            return StageResult(stage.label, "skipped", {"reason": "express"})
        handler = _STAGE_HANDLERS[stage]
        logger.debug("Running stage %s", stage.label)
        try:
            details = handler(self)
        except BuildError as exc:
            return self._failure(stage, exc)
        except (OSError, ValueError) as exc:
            error_type = _STAGE_ERRORS.get(stage, BuildError)
            return self._failure(stage, error_type(str(exc)))
        return StageResult(stage.label, "completed", details)

    @staticmethod
    def _failure(stage: Stage, exc: BuildError) -> StageResult:
        return StageResult(
            stage.label,
            "failed",
            {"error": type(exc).__name__, "message": exc.message},
        )
