"""Sync workflow: bring the checked-out branch up to date with a source.

FetchRemote → DirtyWorkingDir | UnresolvedConflicts | AnalyzeDivergence
AnalyzeDivergence → SourceNotFound | AlreadySynced | ExecuteByStrategy
ExecuteByStrategy → ExecuteSync (merge) | StartRebase (rebase)
ExecuteSync → AnalyzeConflicts | PushChanges
StartRebase → ProcessRebaseConflict, repeated until the rebase
    completes or is aborted → RebaseLoopToResult
RebaseLoopToResult → AnalyzeConflicts | End | PushChanges

The rebase loop never edits files. When it stops on a conflicted
commit it asks for analysis and waits for the conflicts to be
resolved outside braid; after ``max_iterations`` passes it aborts the
rebase, leaving the branch as it was.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, Graph, GraphRunContext

from braid.core.log import logger
from braid.git.errors import GitCommandError, RefNotFoundError
from braid.git.parse import STATUS_CONFLICT_REASON
from braid.git.types import Conflict
from braid.model.analysis import AnalysisRequest, request_analysis
from braid.workflow.compose import branch, repeat_until, run_graph, then
from braid.workflow.conditions import (
    has_sync_conflicts,
    has_unresolved_conflicts,
    is_dirty_working_dir,
    is_ready,
    no_sync_needed,
    rebase_loop_complete,
    source_missing,
    sync_failed,
    sync_needed,
    sync_succeeded,
    uses_merge_strategy,
    uses_rebase_strategy,
)
from braid.workflow.deps import WorkflowDeps
from braid.workflow.state import (
    RebaseLoopState,
    SyncInput,
    SyncOutput,
    SyncResultState,
    SyncState,
)

# Commit a stopped rebase is trying to apply
REBASE_HEAD = "REBASE_HEAD"


def qualify_source(source: str, remote: str) -> str:
    """``main`` → ``origin/main``; names with a slash are kept."""
    return source if "/" in source else f"{remote}/{source}"


def error_output(state: SyncState, error: str) -> SyncOutput:
    """Failed output for a run stopped before syncing."""
    return SyncOutput(
        success=False,
        synced=False,
        strategy="none",
        target_branch=state.target_branch,
        source_branch=state.source_branch or state.source,
        error=error,
        warnings=state.warnings,
    )


def finish(state: SyncResultState) -> End[SyncOutput]:
    return End(state.output())


def _files(conflicts: list[Conflict]) -> str:
    return ", ".join(c.file for c in conflicts if c.file)


@dataclass
class FetchRemote(BaseNode[None, WorkflowDeps, SyncOutput]):
    """Fetch from the remote, then read the working tree status."""

    request: SyncInput

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> DirtyWorkingDir | UnresolvedConflicts | AnalyzeDivergence:
        request = self.request
        logger.info(f"Fetching {request.remote}")
        await ctx.deps.git.fetch(request.remote, prune=True)
        status = await ctx.deps.git.status()

        state = request.grow(
            SyncState,
            target_branch=status.current,
            is_clean=status.clean,
            dirty_files=status.files,
            conflicted=status.conflicted,
        )
        # Unmerged paths also make the tree unclean, so they are
        # checked first.
        return branch(state, [
            (has_unresolved_conflicts, UnresolvedConflicts),
            (is_dirty_working_dir, DirtyWorkingDir),
            (is_ready, AnalyzeDivergence),
        ], name="fetch-remote")


@dataclass
class DirtyWorkingDir(BaseNode[None, WorkflowDeps, SyncOutput]):
    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[SyncOutput]:
        files = ", ".join(self.state.dirty_files) or "unknown files"
        logger.warning("Working directory is not clean", files=files)
        return End(error_output(
            self.state,
            f"Working directory is not clean ({files}). Please commit "
            f"or stash your changes before syncing.",
        ))


@dataclass
class UnresolvedConflicts(BaseNode[None, WorkflowDeps, SyncOutput]):
    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[SyncOutput]:
        files = ", ".join(self.state.conflicted) or "unknown files"
        logger.warning("Repository has unresolved conflicts", files=files)
        return End(error_output(
            self.state,
            f"Repository has unresolved conflicts in: {files}",
        ))


@dataclass
class AnalyzeDivergence(BaseNode[None, WorkflowDeps, SyncOutput]):
    """Decide whether the target is behind the source.

    Sync is needed unless the source commit is already the merge base
    of source and target. A merge base that cannot be found counts as
    "sync needed" and is reported in the warnings.
    """

    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> SourceNotFound | AlreadySynced | ExecuteByStrategy:
        git = ctx.deps.git
        state = self.state
        source_branch = qualify_source(state.source, state.remote)

        branches = await git.branches()
        exists = any(
            b in (source_branch, state.source, f"remotes/{source_branch}")
            for b in branches.all
        )
        state = state.evolve(
            source_branch=source_branch,
            source_exists=exists,
            all_branches=branches.all,
        )
        if not exists:
            return then(SourceNotFound, state.evolve(needs_sync=False))

        target = state.target_branch or "HEAD"
        warnings = list(state.warnings)
        needs_sync = True

        try:
            source_hash = await git.rev_parse(source_branch)
        except RefNotFoundError as e:
            warnings.append(f"Could not resolve {source_branch}: {e}")
            logger.warning("Could not resolve source", error=str(e))
        else:
            try:
                base_hash = await git.merge_base(target, source_branch)
            except GitCommandError as e:
                warnings.append(
                    f"Could not find the merge base of {target} and "
                    f"{source_branch}; assuming a sync is needed: {e}"
                )
                logger.warning(
                    "Merge base lookup failed; assuming sync is needed",
                    target=target,
                    source=source_branch,
                    error=str(e),
                )
            else:
                needs_sync = source_hash != base_hash

        ahead = behind = None
        try:
            ahead, behind = await git.count_divergence(target, source_branch)
        except GitCommandError as e:
            warnings.append(f"Could not count divergence: {e}")

        changed_files = []
        if needs_sync:
            try:
                diff = await git.diff(target, source_branch, name_only=True)
                changed_files = diff.files
            except GitCommandError as e:
                warnings.append(f"Could not preview changes: {e}")

        logger.info(
            f"{target} is {behind} behind and {ahead} ahead of "
            f"{source_branch}",
            needs_sync=needs_sync,
        )
        state = state.evolve(
            needs_sync=needs_sync,
            commits_ahead=ahead,
            commits_behind=behind,
            changed_files=changed_files,
            warnings=warnings,
        )
        return branch(state, [
            (source_missing, SourceNotFound),
            (no_sync_needed, AlreadySynced),
            (sync_needed, ExecuteByStrategy),
        ], name="analyze-divergence")


@dataclass
class SourceNotFound(BaseNode[None, WorkflowDeps, SyncOutput]):
    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[SyncOutput]:
        known = ", ".join(self.state.all_branches) or "none"
        logger.warning("Source not found", source=self.state.source)
        return End(error_output(
            self.state,
            f"Source branch '{self.state.source}' does not exist on "
            f"remote '{self.state.remote}'. Available branches: {known}",
        ))


@dataclass
class AlreadySynced(BaseNode[None, WorkflowDeps, SyncOutput]):
    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[SyncOutput]:
        state = self.state
        logger.info(f"{state.target_branch} is up to date")
        return End(SyncOutput(
            success=True,
            synced=False,
            strategy="none",
            target_branch=state.target_branch,
            source_branch=state.source_branch,
            commits_ahead=state.commits_ahead,
            commits_behind=0,
            warnings=state.warnings,
        ))


@dataclass
class ExecuteByStrategy(BaseNode[None, WorkflowDeps, SyncOutput]):
    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> ExecuteSync | StartRebase:
        return branch(self.state, [
            (uses_merge_strategy, ExecuteSync),
            (uses_rebase_strategy, StartRebase),
        ], name="execute-by-strategy")


@dataclass
class ExecuteSync(BaseNode[None, WorkflowDeps, SyncOutput]):
    """Merge the source into the target."""

    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> AnalyzeConflicts | PushChanges:
        state = self.state
        with logger.span(
            "Merging {source} into {target}",
            source=state.source_branch,
            target=state.target_branch,
        ):
            result = await ctx.deps.git.merge(state.source_branch)

        clean = not result.conflicts
        error = None
        if not clean:
            error = f"Merge has conflicts in: {_files(result.conflicts)}"
            logger.warning(error, conflicts=len(result.conflicts))

        synced = state.grow(
            SyncResultState,
            success=clean,
            synced=clean,
            strategy="merge",
            force_push=False,
            conflicts=result.conflicts,
            commits_behind=0 if clean else state.commits_behind,
            error=error,
        )
        return branch(synced, [
            (has_sync_conflicts, AnalyzeConflicts),
            (sync_succeeded, PushChanges),
        ], name="sync-result")


@dataclass
class StartRebase(BaseNode[None, WorkflowDeps, SyncOutput]):
    """Start rebasing the target onto the source."""

    state: SyncState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> ProcessRebaseConflict:
        state = self.state
        git = ctx.deps.git
        logger.info(
            f"Rebasing {state.target_branch} onto {state.source_branch}",
            max_iterations=state.max_iterations,
        )
        result = await git.rebase(state.source_branch)

        message = None
        if result.conflicts:
            message = await git.commit_subject(REBASE_HEAD)

        loop = RebaseLoopState(
            path=state.path,
            remote=state.remote,
            push=state.push,
            source_branch=state.source_branch,
            target_branch=state.target_branch,
            force_push=True,
            max_iterations=state.max_iterations,
            conflicts=result.conflicts,
            current_commit_message=message,
            changed_files=state.changed_files,
            commits_ahead=state.commits_ahead,
            commits_behind=state.commits_behind,
            warnings=state.warnings,
        )
        return then(ProcessRebaseConflict, loop)


@dataclass
class ProcessRebaseConflict(BaseNode[None, WorkflowDeps, SyncOutput]):
    """One pass of the rebase conflict loop.

    Every pass adds one to the iteration count. Past the cap the
    rebase is aborted. With no conflicts left the rebase is complete.
    Otherwise the stopped commit is analyzed (once per commit), the
    operator gets a chance to resolve it, and the rebase continues
    if no unmerged paths remain.
    """

    state: RebaseLoopState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> ProcessRebaseConflict | RebaseLoopToResult:
        state = await self._pass(ctx.deps)
        return repeat_until(
            state,
            rebase_loop_complete,
            ProcessRebaseConflict,
            RebaseLoopToResult,
        )

    async def _pass(self, deps: WorkflowDeps) -> RebaseLoopState:
        git = deps.git
        state = self.state.evolve(
            iteration_count=self.state.iteration_count + 1
        )
        logger.debug(
            "Rebase loop pass",
            iteration=state.iteration_count,
            max_iterations=state.max_iterations,
            conflicts=len(state.conflicts),
        )

        if state.iteration_count > state.max_iterations:
            return await self._abort(git, state)

        if not state.conflicts:
            logger.info(
                "Rebase complete",
                resolved_commits=state.resolved_commits,
                iterations=state.iteration_count,
            )
            return state.evolve(rebase_completed=True, error=None)

        commit_number = state.resolved_commits + 1
        if state.analyzed_commit != state.resolved_commits:
            request = AnalysisRequest(
                strategy="rebase_commit",
                source=state.source_branch,
                target=state.target_branch,
                files=[c.file for c in state.conflicts if c.file],
                path=state.path,
                commit_number=commit_number,
                iteration=state.iteration_count,
                max_iterations=state.max_iterations,
                commit_message=state.current_commit_message,
            )
            resolution = await request_analysis(deps.analyzer, request)
            state = state.evolve(
                analyzed_commit=state.resolved_commits,
                resolution=resolution,
            )

        if deps.await_resolution is not None:
            await deps.await_resolution(state)

        status = await git.status()
        if status.conflicted:
            return state.evolve(
                conflicts=self._refresh(state.conflicts, status.conflicted),
                error=(
                    f"Rebase paused at commit {commit_number}. Manual "
                    f"conflict resolution required."
                ),
            )

        result = await git.rebase(continue_=True)
        resolved = state.resolved_commits + 1
        if not result.conflicts:
            logger.info("Rebase continued", resolved_commits=resolved)
            return state.evolve(
                resolved_commits=resolved,
                conflicts=[],
                current_commit_message=None,
                error=None,
            )

        message = await git.commit_subject(REBASE_HEAD)
        logger.warning(
            f"Rebase stopped on commit {resolved + 1}",
            files=_files(result.conflicts),
            commit=message,
        )
        return state.evolve(
            resolved_commits=resolved,
            conflicts=result.conflicts,
            current_commit_message=message,
            error=(
                f"Rebase paused at commit {resolved + 1}. Manual "
                f"conflict resolution required."
            ),
        )

    async def _abort(self, git, state: RebaseLoopState) -> RebaseLoopState:
        logger.error(
            "Rebase loop exceeded its iteration cap; aborting",
            max_iterations=state.max_iterations,
        )
        warnings = state.warnings
        try:
            await git.rebase(abort=True)
        except GitCommandError as e:
            warnings = [*warnings, f"git rebase --abort failed: {e}"]
        return state.evolve(
            rebase_completed=False,
            rebase_aborted=True,
            warnings=warnings,
            error=(
                f"Rebase aborted: exceeded maximum iterations "
                f"({state.max_iterations}). Too many conflicts to "
                f"resolve automatically."
            ),
        )

    @staticmethod
    def _refresh(
        conflicts: list[Conflict], conflicted: list[str]
    ) -> list[Conflict]:
        """Conflicts matching the unmerged paths git reports now."""
        if {c.file for c in conflicts} == set(conflicted):
            return conflicts
        return [
            Conflict(reason=STATUS_CONFLICT_REASON, file=path)
            for path in conflicted
        ]


@dataclass
class RebaseLoopToResult(BaseNode[None, WorkflowDeps, SyncOutput]):
    state: RebaseLoopState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> AnalyzeConflicts | PushChanges | End[SyncOutput]:
        loop = self.state
        done = loop.rebase_completed and not loop.rebase_aborted
        result = SyncResultState(
            path=loop.path,
            remote=loop.remote,
            push=loop.push,
            force_push=loop.force_push,
            success=done,
            synced=done,
            strategy="rebase",
            target_branch=loop.target_branch,
            source_branch=loop.source_branch,
            conflicts=[] if done else loop.conflicts,
            changed_files=loop.changed_files,
            commits_ahead=loop.commits_ahead,
            commits_behind=0 if done else loop.commits_behind,
            rebase_completed=loop.rebase_completed,
            rebase_aborted=loop.rebase_aborted,
            iterations=loop.iteration_count,
            resolved_commits=loop.resolved_commits,
            error=loop.error,
            resolution=None if done else loop.resolution,
            warnings=loop.warnings,
        )
        return branch(result, [
            (has_sync_conflicts, AnalyzeConflicts),
            (sync_failed, finish),
            (sync_succeeded, PushChanges),
        ], name="rebase-result")


@dataclass
class AnalyzeConflicts(BaseNode[None, WorkflowDeps, SyncOutput]):
    """Attach conflict analysis, if any can be had, and finish.

    Analysis the rebase loop already obtained is kept as is.
    """

    state: SyncResultState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[SyncOutput]:
        state = self.state
        if state.resolution is not None:
            return End(state.output())

        request = AnalysisRequest(
            strategy="sync",
            source=state.source_branch,
            target=state.target_branch,
            files=[c.file for c in state.conflicts if c.file],
            path=state.path,
            sync_strategy=state.strategy,
        )
        resolution = await request_analysis(ctx.deps.analyzer, request)
        if resolution is None:
            return End(state.output())
        return End(state.evolve(resolution=resolution).output())


@dataclass
class PushChanges(BaseNode[None, WorkflowDeps, SyncOutput]):
    """Push the synced branch.

    A rebase rewrote history, so it is pushed with --force-with-lease.
    A failed push is reported but leaves ``synced`` alone.
    """

    state: SyncResultState

    async def run(
        self, ctx: GraphRunContext[None, WorkflowDeps]
    ) -> End[SyncOutput]:
        state = self.state
        if not state.push:
            logger.info("Skipping push")
            return End(state.evolve(pushed=False).output())

        result = await ctx.deps.git.push(
            state.remote,
            state.target_branch,
            force_with_lease=state.force_push,
        )
        if result.success:
            logger.info(
                f"Pushed {state.target_branch} to {state.remote}",
                force=state.force_push,
            )
            return End(state.evolve(pushed=True).output())
        return End(state.evolve(
            pushed=False,
            error=f"Failed to push changes to remote: {result.error}",
        ).output())


sync_graph = Graph(
    nodes=(
        FetchRemote,
        DirtyWorkingDir,
        UnresolvedConflicts,
        AnalyzeDivergence,
        SourceNotFound,
        AlreadySynced,
        ExecuteByStrategy,
        ExecuteSync,
        StartRebase,
        ProcessRebaseConflict,
        RebaseLoopToResult,
        AnalyzeConflicts,
        PushChanges,
    ),
    name="sync",
)


async def run_sync(request: SyncInput, deps: WorkflowDeps) -> SyncOutput:
    """Run the sync workflow for ``request``.

    Raises:
        GitCommandError: If git itself fails
    """
    with logger.span(
        "sync {source} ({strategy})",
        source=request.source,
        strategy=request.strategy,
    ):
        return await run_graph(sync_graph, FetchRemote(request), deps)


__all__ = [
    "FetchRemote",
    "qualify_source",
    "run_sync",
    "sync_graph",
]
