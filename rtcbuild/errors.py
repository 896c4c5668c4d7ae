from __future__ import annotations


class BuildError(RuntimeError):
    """Base class for failures that abort the build pipeline."""

    stage = "build"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UsageError(BuildError):
    """Raised for malformed input detected before any work begins."""

    stage = "usage"


class ResolutionError(BuildError):
    """Raised when a branch, revision or revision number cannot be looked up."""

    stage = "revision"


class DependencyError(BuildError):
    """Raised when a host or project prerequisite is missing."""

    stage = "dependencies"


class AcquisitionError(BuildError):
    """Raised when checkout or patching of the source tree fails."""

    stage = "acquisition"


class CompileError(BuildError):
    """Raised when any configuration of the build matrix fails to compile."""

    stage = "compile"


class PackagingError(BuildError):
    """Raised when staging, archiving or native packaging fails."""

    stage = "package"
