"""Pytest configuration and fixtures for braid tests."""

import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from braid.core.log import ConsoleSink, setup_logger
from braid.git.types import (
    BranchList,
    DiffResult,
    MergeResult,
    PushResult,
    RebaseResult,
    StatusResult,
)
from braid.workflow.deps import WorkflowDeps


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Console-only logging for the whole test session.

    Nothing is sent to logfire.dev and no log files are written.
    """
    test_log_root = Path(tempfile.gettempdir()) / "braid-tests"
    setup_logger(
        log_root=test_log_root,
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture(scope="session")
def test_config():
    """Configuration loaded from the packaged defaults.

    sys.argv is replaced while loading so pydantic-settings does not
    parse pytest's own arguments.
    """
    from braid.core.config import State

    old_argv = sys.argv
    sys.argv = ['braid']

    try:
        state = State()
        return state.config
    finally:
        sys.argv = old_argv


def _make_git(
    *,
    current="feature",
    clean=True,
    conflicted=None,
    files=None,
    branches=("feature", "main", "remotes/origin/main"),
):
    """AsyncMock git collaborator describing a healthy repository.

    Tests override individual return values or side effects.
    """
    git = AsyncMock()
    git.status.return_value = StatusResult(
        current=current,
        clean=clean,
        conflicted=list(conflicted or []),
        files=list(files or []),
    )
    git.branches.return_value = BranchList(
        current=current, all=list(branches)
    )
    git.diff.return_value = DiffResult(files=["src/app.py"])
    git.fetch.return_value = None
    git.merge.return_value = MergeResult(success=True)
    git.rebase.return_value = RebaseResult(completed=True)
    git.push.return_value = PushResult(success=True)
    git.rev_parse.return_value = "a" * 40
    git.merge_base.return_value = "b" * 40
    git.count_divergence.return_value = (1, 2)
    git.log.return_value = []
    git.commit_subject.return_value = "Add feature"
    return git


@pytest.fixture
def make_git():
    """Factory for AsyncMock git collaborators."""
    return _make_git


@pytest.fixture
def git():
    return _make_git()


@pytest.fixture
def deps(git):
    return WorkflowDeps(git=git)
