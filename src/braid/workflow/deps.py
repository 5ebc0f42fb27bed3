"""Collaborators injected into a workflow run."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from braid.git.contract import GitOps
from braid.model.analysis import ConflictAnalyzer
from braid.workflow.state import RebaseLoopState


@dataclass
class WorkflowDeps:
    """Everything a workflow step may call outside itself.

    Attributes:
        git: Git collaborator bound to the repository
        analyzer: Conflict analyzer; None runs without guidance
        await_resolution: Called by the rebase loop after it reported
            a stopped commit, before it checks for progress. The CLI
            installs one in interactive mode to wait for the operator.
    """

    git: GitOps
    analyzer: ConflictAnalyzer | None = None
    await_resolution: Callable[[RebaseLoopState], Awaitable[None]] | None = (
        None
    )


__all__ = ["WorkflowDeps"]
