"""States threaded through the merge and sync workflows.

Every model here is frozen. A step receives one state value and
builds the next with ``evolve`` (same type, new field values) or
``grow`` (richer type, every known field carried forward), so what a
run knows only grows along the path it takes.

Inputs start a run, outputs end it, and only terminal steps build
outputs. The ``*ResultState`` types are outputs that still carry the
fields the post-processing steps need (where to push, for example).
"""

from typing import Literal

from pydantic import Field

from braid.core.base import BaseState
from braid.git.types import Conflict
from braid.model.analysis import ConflictResolution, ResolutionSuggestion

SyncStrategy = Literal["rebase", "merge"]

# ============================================================
# MERGE
# ============================================================

class MergeInput(BaseState):
    """Request to merge ``source`` into the checked-out branch."""

    path: str = Field(description="Repository working directory")
    source: str = Field(description="Branch or ref to merge")
    no_ff: bool = Field(
        default=False,
        description="Always create a merge commit",
    )
    squash: bool = Field(
        default=False,
        description="Squash the changes without committing",
    )
    push: bool = Field(
        default=False,
        description="Push the target branch after a clean merge",
    )
    remote: str = Field(default="origin", description="Remote to push to")


class MergeState(MergeInput):
    """What the merge workflow has learned so far."""

    current_branch: str | None = None
    is_clean: bool | None = None
    dirty_files: list[str] = Field(default_factory=list)
    conflicted: list[str] = Field(default_factory=list)
    branch_exists: bool | None = None
    all_branches: list[str] = Field(default_factory=list)
    diff_preview: str | None = None
    changed_files: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class MergeOutput(BaseState):
    """Final report of a merge run."""

    success: bool
    merged: bool = False
    source: str
    target: str | None = None
    conflicts: list[Conflict] = Field(default_factory=list)
    changed_files: list[str] = Field(default_factory=list)
    pushed: bool = False
    error: str | None = None
    resolution: ConflictResolution | None = None
    warnings: list[str] = Field(default_factory=list)


class MergeResultState(MergeOutput):
    """Merge outcome plus what the closing steps still need."""

    path: str
    remote: str = "origin"
    push: bool = False

    def output(self) -> MergeOutput:
        return self.grow(MergeOutput)


# ============================================================
# SYNC
# ============================================================

class SyncInput(BaseState):
    """Request to bring the checked-out branch up to date with
    ``source``."""

    path: str = Field(description="Repository working directory")
    source: str = Field(
        description=(
            "Branch to sync with; qualified with the remote when it "
            "has no slash"
        ),
    )
    remote: str = Field(default="origin", description="Remote to use")
    strategy: SyncStrategy = Field(
        default="rebase",
        description="Rebase onto the source or merge it in",
    )
    push: bool = Field(
        default=True,
        description="Push the synced branch",
    )
    max_iterations: int = Field(
        default=50,
        ge=1,
        description="Cap on passes through the rebase conflict loop",
    )


class SyncState(SyncInput):
    """What the sync workflow has learned so far."""

    target_branch: str | None = None
    source_branch: str | None = None
    is_clean: bool | None = None
    dirty_files: list[str] = Field(default_factory=list)
    conflicted: list[str] = Field(default_factory=list)
    all_branches: list[str] = Field(default_factory=list)
    source_exists: bool | None = None
    needs_sync: bool | None = None
    commits_ahead: int | None = None
    commits_behind: int | None = None
    changed_files: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RebaseLoopState(BaseState):
    """State of the bounded rebase conflict loop.

    ``iteration_count`` goes up by one on every pass. The loop ends
    once ``rebase_completed`` or ``rebase_aborted`` holds; the second
    is set only when the count passes ``max_iterations``.
    """

    path: str
    remote: str = "origin"
    push: bool = True
    source_branch: str
    target_branch: str | None = None
    force_push: bool = True
    iteration_count: int = 0
    max_iterations: int = 50
    rebase_completed: bool = False
    rebase_aborted: bool = False
    resolved_commits: int = 0
    conflicts: list[Conflict] = Field(default_factory=list)
    current_commit_message: str | None = None
    # resolved_commits value when analysis was last requested
    analyzed_commit: int | None = None
    resolution: ConflictResolution | None = None
    error: str | None = None
    changed_files: list[str] = Field(default_factory=list)
    commits_ahead: int | None = None
    commits_behind: int | None = None
    warnings: list[str] = Field(default_factory=list)


class SyncOutput(BaseState):
    """Final report of a sync run.

    ``synced`` and ``pushed`` are independent: a failed push does not
    undo a successful sync.
    """

    success: bool
    synced: bool = False
    strategy: Literal["rebase", "merge", "none"] = "none"
    target_branch: str | None = None
    source_branch: str | None = None
    pushed: bool = False
    conflicts: list[Conflict] = Field(default_factory=list)
    changed_files: list[str] = Field(default_factory=list)
    commits_ahead: int | None = None
    commits_behind: int | None = None
    rebase_completed: bool | None = None
    rebase_aborted: bool | None = None
    iterations: int | None = None
    resolved_commits: int | None = None
    error: str | None = None
    resolution: ConflictResolution | None = None
    warnings: list[str] = Field(default_factory=list)


class SyncResultState(SyncOutput):
    """Sync outcome plus what the closing steps still need."""

    path: str
    remote: str = "origin"
    push: bool = True
    force_push: bool = False

    def output(self) -> SyncOutput:
        return self.grow(SyncOutput)


__all__ = [
    "Conflict",
    "ConflictResolution",
    "MergeInput",
    "MergeOutput",
    "MergeResultState",
    "MergeState",
    "RebaseLoopState",
    "ResolutionSuggestion",
    "SyncInput",
    "SyncOutput",
    "SyncResultState",
    "SyncState",
    "SyncStrategy",
]
