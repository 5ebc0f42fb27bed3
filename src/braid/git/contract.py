"""Operations the workflows require from git."""

from typing import Protocol, runtime_checkable

from braid.git.types import (
    BranchList,
    CommitInfo,
    DiffResult,
    MergeResult,
    PushResult,
    RebaseResult,
    StatusResult,
)


@runtime_checkable
class GitOps(Protocol):
    """Async git collaborator bound to one repository.

    Conflicts come back as data inside MergeResult and RebaseResult.
    Every other failure raises GitCommandError, except push, which
    reports failure through PushResult.
    """

    async def status(self) -> StatusResult:
        ...

    async def branches(self) -> BranchList:
        ...

    async def diff(
        self, base: str, head: str, name_only: bool = False
    ) -> DiffResult:
        """Changes on ``head`` since it diverged from ``base``."""
        ...

    async def fetch(self, remote: str, prune: bool = True) -> None:
        ...

    async def merge(
        self, ref: str, no_ff: bool = False, squash: bool = False
    ) -> MergeResult:
        ...

    async def rebase(
        self,
        upstream: str | None = None,
        *,
        abort: bool = False,
        continue_: bool = False,
        skip: bool = False,
    ) -> RebaseResult:
        """Start a rebase onto ``upstream`` or drive one in progress."""
        ...

    async def push(
        self,
        remote: str,
        branch: str | None = None,
        force_with_lease: bool = False,
    ) -> PushResult:
        ...

    async def rev_parse(self, ref: str) -> str:
        """Resolve ``ref`` to a commit id.

        Raises:
            RefNotFoundError: If ``ref`` names no commit
        """
        ...

    async def merge_base(self, left: str, right: str) -> str:
        ...

    async def count_divergence(
        self, left: str, right: str
    ) -> tuple[int, int]:
        """Commits only on ``left`` and only on ``right``."""
        ...

    async def log(
        self, ref: str = "HEAD", limit: int = 10
    ) -> list[CommitInfo]:
        ...

    async def commit_subject(self, ref: str) -> str | None:
        """Subject line of ``ref``, or None when it does not exist."""
        ...


__all__ = ["GitOps"]
