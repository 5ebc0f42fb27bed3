"""Results returned by git operations."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GitResult(BaseModel):
    """Base for values returned by the git collaborator."""

    model_config = ConfigDict(frozen=True)


class Conflict(GitResult):
    """One conflict reported by a merge or rebase."""

    reason: str
    file: str | None = None
    meta: Any = None


class StatusResult(GitResult):
    """Working tree status.

    ``files`` holds every path with pending changes, staged or not,
    including untracked ones. ``conflicted`` holds the unmerged subset.
    """

    current: str | None = None
    clean: bool = True
    conflicted: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)


class BranchList(GitResult):
    """Local and remote-tracking branches.

    Remote-tracking branches appear as ``remotes/<remote>/<name>``.
    """

    current: str | None = None
    all: list[str] = Field(default_factory=list)


class DiffResult(GitResult):
    diff: str = ""
    files: list[str] = Field(default_factory=list)


class MergeResult(GitResult):
    success: bool
    conflicts: list[Conflict] = Field(default_factory=list)


class RebaseResult(GitResult):
    """Outcome of starting or advancing a rebase.

    ``completed`` is False while the rebase is stopped on a commit.
    """

    completed: bool
    conflicts: list[Conflict] = Field(default_factory=list)


class PushedRef(GitResult):
    local: str
    remote: str


class PushResult(GitResult):
    success: bool
    pushed: list[PushedRef] = Field(default_factory=list)
    error: str | None = None


class CommitInfo(GitResult):
    sha: str
    author: str
    subject: str


__all__ = [
    "BranchList",
    "CommitInfo",
    "Conflict",
    "DiffResult",
    "MergeResult",
    "PushedRef",
    "PushResult",
    "RebaseResult",
    "StatusResult",
]
