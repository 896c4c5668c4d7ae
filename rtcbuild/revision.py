from __future__ import annotations

import logging
from typing import Callable, TypeVar

from .collaborators import VersionControlClient
from .errors import BuildError, ResolutionError
from .models import Revision

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RevisionResolver:
    """Turns a branch, an explicit revision, or neither into one :class:`Revision`."""

    def __init__(self, vcs: VersionControlClient, repo_url: str) -> None:
        self.vcs = vcs
        self.repo_url = repo_url

    def resolve(self, branch: str = "", revision: str = "") -> Revision:
        # a branch always wins over an explicit revision
        if branch:
            sha = self._lookup("branch revision", self.vcs.branch_head, self.repo_url, branch)
            logger.info("Building branch: %s", branch)
        elif revision:
            sha = revision
        else:
            sha = self._lookup("latest revision", self.vcs.latest_revision, self.repo_url)
        logger.info("Building revision: %s", sha)

        number = self._lookup("revision number", self.vcs.revision_number, self.repo_url, sha)
        logger.info("Associated revision number: %s", number)
        return Revision(sha=sha, number=int(number))

    @staticmethod
    def _lookup(what: str, func: Callable[..., T], *args: str) -> T:
        try:
            value = func(*args)
        except ResolutionError:
            raise
        except BuildError as exc:
            raise ResolutionError(f"Could not get {what}: {exc.message}") from exc
        if value is None or value == "":
            raise ResolutionError(f"Could not get {what}")
        return value
