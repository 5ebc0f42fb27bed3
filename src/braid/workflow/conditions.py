"""Predicates that pick the branch a workflow takes.

Each takes one state value and returns a bool. None of them touch
the repository.
"""

from braid.workflow.state import (
    MergeResultState,
    MergeState,
    RebaseLoopState,
    SyncResultState,
    SyncState,
)

# ============================================================
# SHARED PRECONDITIONS
# ============================================================

def is_dirty_working_dir(state: MergeState | SyncState) -> bool:
    return state.is_clean is False


def has_unresolved_conflicts(state: MergeState | SyncState) -> bool:
    return bool(state.conflicted)


def is_ready(state: MergeState | SyncState) -> bool:
    """Clean working tree and nothing left unmerged."""
    return state.is_clean is True and not state.conflicted


# ============================================================
# MERGE
# ============================================================

def branch_missing(state: MergeState) -> bool:
    return state.branch_exists is False


def branch_exists(state: MergeState) -> bool:
    return state.branch_exists is True


def has_merge_conflicts(state: MergeResultState) -> bool:
    return bool(state.conflicts)


def merge_succeeded(state: MergeResultState) -> bool:
    return not state.conflicts


# ============================================================
# SYNC
# ============================================================

def source_missing(state: SyncState) -> bool:
    return state.source_exists is False


def no_sync_needed(state: SyncState) -> bool:
    return state.source_exists is True and state.needs_sync is False


def sync_needed(state: SyncState) -> bool:
    return state.needs_sync is True and state.source_exists is True


def uses_rebase_strategy(state: SyncState) -> bool:
    return state.strategy == "rebase"


def uses_merge_strategy(state: SyncState) -> bool:
    return state.strategy == "merge"


def has_sync_conflicts(state: SyncResultState) -> bool:
    return bool(state.conflicts)


def sync_succeeded(state: SyncResultState) -> bool:
    return state.success and not state.conflicts


def sync_failed(state: SyncResultState) -> bool:
    """Failed without conflicts to report, as when a rebase is aborted."""
    return not state.success and not state.conflicts


# ============================================================
# REBASE LOOP
# ============================================================

def rebase_loop_complete(state: RebaseLoopState) -> bool:
    return state.rebase_completed or state.rebase_aborted


def rebase_loop_has_conflicts(state: RebaseLoopState) -> bool:
    return (
        not state.rebase_completed
        and not state.rebase_aborted
        and bool(state.conflicts)
    )


__all__ = [
    "branch_exists",
    "branch_missing",
    "has_merge_conflicts",
    "has_sync_conflicts",
    "has_unresolved_conflicts",
    "is_dirty_working_dir",
    "is_ready",
    "merge_succeeded",
    "no_sync_needed",
    "rebase_loop_complete",
    "rebase_loop_has_conflicts",
    "source_missing",
    "sync_needed",
    "sync_failed",
    "sync_succeeded",
    "uses_merge_strategy",
    "uses_rebase_strategy",
]
