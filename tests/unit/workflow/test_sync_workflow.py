"""Tests for the sync workflow and its rebase conflict loop."""

import asyncio
from unittest.mock import AsyncMock

from braid.git.errors import GitCommandError, RefNotFoundError
from braid.git.types import (
    Conflict,
    MergeResult,
    PushResult,
    RebaseResult,
    StatusResult,
)
from braid.model.analysis import ConflictResolution
from braid.workflow.deps import WorkflowDeps
from braid.workflow.state import SyncInput
from braid.workflow.sync import qualify_source, run_sync


def run(request, deps):
    return asyncio.run(run_sync(request, deps))


def rebase_request(**kwargs):
    return SyncInput(path="/repo", source="main", **kwargs)


def merge_request(**kwargs):
    return SyncInput(path="/repo", source="main", strategy="merge", **kwargs)


def clean_status():
    return StatusResult(current="feature", clean=True)


def stopped_status(*files):
    return StatusResult(
        current=None, clean=False, conflicted=list(files), files=list(files)
    )


def test_qualify_source():
    assert qualify_source("main", "origin") == "origin/main"
    assert qualify_source("upstream/main", "origin") == "upstream/main"


class TestPreconditions:
    def test_fetches_with_prune_first(self, git, deps):
        run(rebase_request(), deps)

        git.fetch.assert_awaited_once_with("origin", prune=True)

    def test_dirty_tree_fails_without_mutation(self, make_git):
        git = make_git(clean=False, files=["wip.txt"])

        output = run(rebase_request(), WorkflowDeps(git=git))

        assert output.success is False
        assert output.synced is False
        assert "wip.txt" in output.error
        git.rebase.assert_not_called()
        git.merge.assert_not_called()
        git.push.assert_not_called()

    def test_unresolved_conflicts_fail(self, make_git):
        git = make_git(clean=False, conflicted=["x.py"], files=["x.py"])

        output = run(rebase_request(), WorkflowDeps(git=git))

        assert output.success is False
        assert "unresolved conflicts in: x.py" in output.error
        git.rebase.assert_not_called()

    def test_source_not_found_lists_branches(self, git, deps):
        output = run(SyncInput(path="/repo", source="gone"), deps)

        assert output.success is False
        assert "Source branch 'gone' does not exist" in output.error
        assert "remotes/origin/main" in output.error
        assert output.source_branch == "origin/gone"
        git.rev_parse.assert_not_called()
        git.rebase.assert_not_called()
        git.merge.assert_not_called()


class TestDivergence:
    def test_already_synced_makes_no_mutating_call(self, git, deps):
        git.rev_parse.return_value = "c" * 40
        git.merge_base.return_value = "c" * 40

        output = run(rebase_request(), deps)

        assert output.success is True
        assert output.synced is False
        assert output.strategy == "none"
        assert output.commits_behind == 0
        git.merge_base.assert_awaited_once_with("feature", "origin/main")
        git.rebase.assert_not_called()
        git.merge.assert_not_called()
        git.push.assert_not_called()

    def test_merge_base_failure_assumes_sync_needed(self, git, deps):
        git.merge_base.side_effect = GitCommandError(
            "git merge-base feature origin/main", 1
        )

        output = run(rebase_request(), deps)

        assert output.synced is True
        assert any("merge base" in w for w in output.warnings)
        git.rebase.assert_awaited()

    def test_unresolvable_source_assumes_sync_needed(self, git, deps):
        git.rev_parse.side_effect = RefNotFoundError(
            "git rev-parse origin/main", 1
        )

        output = run(rebase_request(), deps)

        assert output.synced is True
        assert any("Could not resolve" in w for w in output.warnings)
        git.merge_base.assert_not_called()

    def test_divergence_counts_reach_output(self, git, deps):
        git.count_divergence.return_value = (3, 5)

        output = run(merge_request(push=False), deps)

        assert output.commits_ahead == 3
        assert output.commits_behind == 0
        assert output.changed_files == ["src/app.py"]


class TestMergeStrategy:
    def test_clean_merge_pushes_once_without_force(self, git, deps):
        output = run(merge_request(), deps)

        assert output.success is True
        assert output.synced is True
        assert output.strategy == "merge"
        assert output.pushed is True
        git.merge.assert_awaited_once_with("origin/main")
        git.push.assert_awaited_once_with(
            "origin", "feature", force_with_lease=False
        )
        git.rebase.assert_not_called()

    def test_conflicts_are_reported_unchanged(self, git):
        conflicts = [Conflict(reason="content", file="a.py")]
        git.merge.return_value = MergeResult(
            success=False, conflicts=conflicts
        )
        analyzer = AsyncMock()
        analyzer.analyze.return_value = ConflictResolution(analysis="edit")

        deps = WorkflowDeps(git=git, analyzer=analyzer)
        output = run(merge_request(), deps)

        assert output.success is False
        assert output.synced is False
        assert output.conflicts == conflicts
        assert output.resolution.analysis == "edit"
        assert analyzer.analyze.await_args.args[0].sync_strategy == "merge"
        git.push.assert_not_called()

    def test_push_failure_keeps_synced(self, git, deps):
        git.push.return_value = PushResult(success=False, error="denied")

        output = run(merge_request(), deps)

        assert output.synced is True
        assert output.pushed is False
        assert "denied" in output.error

    def test_push_disabled_skips_push(self, git, deps):
        output = run(merge_request(push=False), deps)

        assert output.synced is True
        assert output.pushed is False
        git.push.assert_not_called()


class TestRebaseLoop:
    def test_clean_rebase_completes_on_first_pass(self, git, deps):
        output = run(rebase_request(), deps)

        assert output.success is True
        assert output.synced is True
        assert output.strategy == "rebase"
        assert output.rebase_completed is True
        assert output.rebase_aborted is False
        assert output.iterations == 1
        assert output.resolved_commits == 0
        git.rebase.assert_awaited_once_with("origin/main")

    def test_rebase_force_pushes(self, git, deps):
        run(rebase_request(), deps)

        git.push.assert_awaited_once_with(
            "origin", "feature", force_with_lease=True
        )

    def test_scenario_conflict_then_clean(self, git):
        """First pass stops on one file, second pass completes."""
        conflict = Conflict(reason="content", file="a.py")
        git.rebase.side_effect = [
            RebaseResult(completed=False, conflicts=[conflict]),
            RebaseResult(completed=True),
        ]
        # Clean tree before the rebase, resolved when the loop checks
        git.status.side_effect = [clean_status(), clean_status()]
        analyzer = AsyncMock()
        analyzer.analyze.return_value = ConflictResolution(analysis="fix a")

        deps = WorkflowDeps(git=git, analyzer=analyzer)
        output = run(rebase_request(), deps)

        assert output.success is True
        assert output.rebase_completed is True
        assert output.rebase_aborted is False
        assert output.iterations == 2
        assert output.resolved_commits == 1
        assert output.conflicts == []
        # Guidance for a commit that was since resolved is dropped
        assert output.resolution is None
        git.rebase.assert_any_await(continue_=True)

        request = analyzer.analyze.await_args.args[0]
        assert request.strategy == "rebase_commit"
        assert request.commit_number == 1
        assert request.iteration == 1
        assert request.commit_message == "Add feature"

    def test_iteration_cap_aborts(self, git):
        conflict = Conflict(reason="content", file="a.py")
        git.rebase.return_value = RebaseResult(
            completed=False, conflicts=[conflict]
        )
        git.status.side_effect = (
            [clean_status()] + [stopped_status("a.py")] * 10
        )
        analyzer = AsyncMock()
        analyzer.analyze.return_value = ConflictResolution(analysis="hard")

        output = run(
            rebase_request(max_iterations=3),
            WorkflowDeps(git=git, analyzer=analyzer),
        )

        assert output.success is False
        assert output.synced is False
        assert output.rebase_aborted is True
        assert output.rebase_completed is False
        assert output.iterations == 4
        assert "exceeded maximum iterations (3)" in output.error
        assert output.conflicts == [conflict]
        git.rebase.assert_any_await(abort=True)
        assert output.resolution.analysis == "hard"
        git.rebase.assert_any_await("origin/main")
        git.push.assert_not_called()
        # Once per stopped commit, not once per pass
        assert analyzer.analyze.await_count == 1

    def test_abort_failure_becomes_warning(self, git, deps):
        conflict = Conflict(reason="content", file="a.py")
        git.rebase.side_effect = [
            RebaseResult(completed=False, conflicts=[conflict]),
            GitCommandError("git rebase --abort", 128, "no rebase"),
        ]
        git.status.side_effect = [clean_status(), stopped_status("a.py")]

        output = run(rebase_request(max_iterations=1), deps)

        assert output.rebase_aborted is True
        assert any("--abort failed" in w for w in output.warnings)

    def test_each_new_commit_is_analyzed(self, git):
        first = Conflict(reason="content", file="a.py")
        second = Conflict(reason="content", file="b.py")
        git.rebase.side_effect = [
            RebaseResult(completed=False, conflicts=[first]),
            RebaseResult(completed=False, conflicts=[second]),
            RebaseResult(completed=True),
        ]
        git.status.side_effect = [clean_status()] * 3
        analyzer = AsyncMock()
        analyzer.analyze.return_value = ConflictResolution(analysis="ok")

        deps = WorkflowDeps(git=git, analyzer=analyzer)
        output = run(rebase_request(), deps)

        assert output.success is True
        assert output.resolved_commits == 2
        assert output.iterations == 3
        numbers = [
            call.args[0].commit_number
            for call in analyzer.analyze.await_args_list
        ]
        assert numbers == [1, 2]

    def test_analysis_failure_does_not_stop_loop(self, git):
        conflict = Conflict(reason="content", file="a.py")
        git.rebase.side_effect = [
            RebaseResult(completed=False, conflicts=[conflict]),
            RebaseResult(completed=True),
        ]
        git.status.side_effect = [clean_status(), clean_status()]
        analyzer = AsyncMock()
        analyzer.analyze.side_effect = TimeoutError("slow model")

        deps = WorkflowDeps(git=git, analyzer=analyzer)
        output = run(rebase_request(), deps)

        assert output.success is True
        assert output.resolution is None

    def test_await_resolution_runs_before_progress_check(self, git):
        conflict = Conflict(reason="content", file="a.py")
        git.rebase.side_effect = [
            RebaseResult(completed=False, conflicts=[conflict]),
            RebaseResult(completed=True),
        ]
        git.status.side_effect = [clean_status(), clean_status()]
        waited = []

        async def await_resolution(state):
            waited.append(state.iteration_count)
            git.status.assert_awaited_once()

        deps = WorkflowDeps(git=git, await_resolution=await_resolution)

        output = run(rebase_request(), deps)

        assert output.success is True
        assert waited == [1]
