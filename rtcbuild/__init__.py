"""Automated, reproducible WebRTC builds."""

from .models import BuildRequest, PackageDescriptor, Revision
from .patterns import interpret
from .pipeline import BuildPipeline, Collaborators, Stage

__all__ = ["BuildRequest", "PackageDescriptor", "Revision", "interpret", "BuildPipeline", "Collaborators", "Stage"]
