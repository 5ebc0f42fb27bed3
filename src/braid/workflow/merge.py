"""Merge workflow: merge a branch into the checked-out branch.

CheckStatus → DirtyWorkingDir | UnresolvedConflicts | ValidateBranch
ValidateBranch → BranchNotFound | PreviewChanges
PreviewChanges → ExecuteMerge → AnalyzeConflicts | MergeSuccess

Precondition failures end the run without touching the repository.
Conflicts are reported in the output, with analysis attached when an
analyzer is available.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, Graph, GraphRunContext

from braid.core.log import logger
from braid.git.errors import GitCommandError
from braid.model.analysis import AnalysisRequest, request_analysis
from braid.workflow.compose import branch, run_graph, then
from braid.workflow.conditions import (
    branch_exists,
    branch_missing,
    has_merge_conflicts,
    has_unresolved_conflicts,
    is_dirty_working_dir,
    is_ready,
    merge_succeeded,
)
from braid.workflow.deps import WorkflowDeps
from braid.workflow.state import (
    MergeInput,
    MergeOutput,
    MergeResultState,
    MergeState,
)


def error_output(state: MergeState, error: str) -> MergeOutput:
    """Failed output for a run stopped before merging."""
    return MergeOutput(
        success=False,
        merged=False,
        source=state.source,
        target=state.current_branch,
        error=error,
        warnings=state.warnings,
    )


@dataclass
class CheckStatus(BaseNode[None, WorkflowDeps, MergeOutput]):
    """Read working tree cleanliness and unmerged paths."""

    request: MergeInput

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> DirtyWorkingDir | UnresolvedConflicts | ValidateBranch:
        status = await ctx.deps.git.status()
        logger.debug(
            "Repository status",
            branch=status.current,
            clean=status.clean,
            conflicted=status.conflicted,
        )

        state = self.request.grow(
            MergeState,
            current_branch=status.current,
            is_clean=status.clean,
            dirty_files=status.files,
            conflicted=status.conflicted,
        )
        # Unmerged paths also make the tree unclean, so they are
        # checked first.
        return branch(state, [
            (has_unresolved_conflicts, UnresolvedConflicts),
            (is_dirty_working_dir, DirtyWorkingDir),
            (is_ready, ValidateBranch),
        ], name="check-status")


@dataclass
class DirtyWorkingDir(BaseNode[None, WorkflowDeps, MergeOutput]):
    state: MergeState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[MergeOutput]:
        files = ", ".join(self.state.dirty_files) or "unknown files"
        logger.warning("Working directory is not clean", files=files)
        return End(error_output(
            self.state,
            f"Working directory is not clean ({files}). Please commit "
            f"or stash your changes before merging.",
        ))


@dataclass
class UnresolvedConflicts(BaseNode[None, WorkflowDeps, MergeOutput]):
    state: MergeState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[MergeOutput]:
        files = ", ".join(self.state.conflicted) or "unknown files"
        logger.warning("Repository has unresolved conflicts", files=files)
        return End(error_output(
            self.state,
            f"Repository has unresolved conflicts in: {files}",
        ))


@dataclass
class ValidateBranch(BaseNode[None, WorkflowDeps, MergeOutput]):
    """Look the source up among local and remote-tracking branches."""

    state: MergeState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> BranchNotFound | PreviewChanges:
        branches = await ctx.deps.git.branches()
        source = self.state.source
        remote_name = f"remotes/{self.state.remote}/{source}"
        exists = any(b in (source, remote_name) for b in branches.all)

        state = self.state.evolve(
            branch_exists=exists,
            all_branches=branches.all,
        )
        return branch(state, [
            (branch_missing, BranchNotFound),
            (branch_exists, PreviewChanges),
        ], name="validate-branch")


@dataclass
class BranchNotFound(BaseNode[None, WorkflowDeps, MergeOutput]):
    state: MergeState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[MergeOutput]:
        known = ", ".join(self.state.all_branches) or "none"
        logger.warning("Branch not found", source=self.state.source)
        return End(error_output(
            self.state,
            f"Branch '{self.state.source}' does not exist. "
            f"Available branches: {known}",
        ))


@dataclass
class PreviewChanges(BaseNode[None, WorkflowDeps, MergeOutput]):
    """List the files the merge would bring in.

    Informational only: a failing diff becomes a warning.
    """

    state: MergeState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> ExecuteMerge:
        base = self.state.current_branch or "HEAD"
        try:
            diff = await ctx.deps.git.diff(
                base, self.state.source, name_only=True
            )
        except GitCommandError as e:
            logger.warning("Could not preview changes", error=str(e))
            state = self.state.evolve(
                warnings=[
                    *self.state.warnings,
                    f"Could not preview changes: {e}",
                ],
            )
            return then(ExecuteMerge, state)

        logger.info(
            f"{len(diff.files)} files change when merging "
            f"{self.state.source}",
            files=diff.files,
        )
        state = self.state.evolve(
            diff_preview="\n".join(diff.files),
            changed_files=diff.files,
        )
        return then(ExecuteMerge, state)


@dataclass
class ExecuteMerge(BaseNode[None, WorkflowDeps, MergeOutput]):
    state: MergeState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> AnalyzeConflicts | MergeSuccess:
        state = self.state
        with logger.span(
            "Merging {source} into {target}",
            source=state.source,
            target=state.current_branch,
        ):
            result = await ctx.deps.git.merge(
                state.source, no_ff=state.no_ff, squash=state.squash
            )

        error = None
        if result.conflicts:
            files = ", ".join(c.file for c in result.conflicts if c.file)
            error = f"Merge has conflicts. Resolve in: {files}"
            logger.warning(error, conflicts=len(result.conflicts))

        merged = state.grow(
            MergeResultState,
            success=result.success and not result.conflicts,
            merged=result.success,
            target=state.current_branch,
            conflicts=result.conflicts,
            error=error,
        )
        return branch(merged, [
            (has_merge_conflicts, AnalyzeConflicts),
            (merge_succeeded, MergeSuccess),
        ], name="merge-result")


@dataclass
class AnalyzeConflicts(BaseNode[None, WorkflowDeps, MergeOutput]):
    """Attach conflict analysis, if any can be had, and finish."""

    state: MergeResultState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[MergeOutput]:
        request = AnalysisRequest(
            strategy="merge",
            source=self.state.source,
            target=self.state.target,
            files=[c.file for c in self.state.conflicts if c.file],
            path=self.state.path,
        )
        resolution = await request_analysis(ctx.deps.analyzer, request)
        if resolution is None:
            return End(self.state.output())
        return End(self.state.evolve(resolution=resolution).output())


@dataclass
class MergeSuccess(BaseNode[None, WorkflowDeps, MergeOutput]):
    """Push if asked to and report the merge."""

    state: MergeResultState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[MergeOutput]:
        state = self.state
        logger.info(
            f"Merged {state.source} into {state.target}",
            files=len(state.changed_files),
        )
        if not state.push:
            return End(state.output())

        result = await ctx.deps.git.push(state.remote, state.target)
        if result.success:
            return End(state.evolve(pushed=True).output())
        return End(state.evolve(
            pushed=False,
            error=f"Merge succeeded but push failed: {result.error}",
        ).output())


merge_graph = Graph(
    nodes=(
        CheckStatus,
        DirtyWorkingDir,
        UnresolvedConflicts,
        ValidateBranch,
        BranchNotFound,
        PreviewChanges,
        ExecuteMerge,
        AnalyzeConflicts,
        MergeSuccess,
    ),
    name="merge",
)


async def run_merge(request: MergeInput, deps: WorkflowDeps) -> MergeOutput:
    """Run the merge workflow for ``request``.

    Raises:
        GitCommandError: If git itself fails
    """
    with logger.span("merge {source}", source=request.source):
        return await run_graph(merge_graph, CheckStatus(request), deps)


__all__ = [
    "CheckStatus",
    "merge_graph",
    "run_merge",
]
