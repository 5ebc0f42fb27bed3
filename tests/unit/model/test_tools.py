"""Tests for the read-only analyzer tools."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from pydantic_ai.exceptions import ModelRetry

from braid.git.errors import GitCommandError
from braid.git.types import CommitInfo, DiffResult, StatusResult
from braid.model.tools import (
    AnalysisContext,
    analysis_tools,
    conflict_status,
    read_conflicted_file,
    recent_commits,
    show_diff,
)


@pytest.fixture
def ctx(tmp_path):
    conflicted = tmp_path / "a.py"
    conflicted.write_text(
        "def f():\n<<<<<<< HEAD\n    return 1\n=======\n"
        "    return 2\n>>>>>>> main\n"
    )
    git = AsyncMock()
    git.status.return_value = StatusResult(
        current=None, clean=False, conflicted=["a.py"], files=["a.py"]
    )
    return SimpleNamespace(
        deps=AnalysisContext(workdir=tmp_path, git=git, files=["a.py"])
    )


def test_read_conflicted_file_numbers_lines(ctx):
    content = asyncio.run(read_conflicted_file(ctx, "a.py"))

    assert content.splitlines()[0] == "1: def f():"
    assert "2: <<<<<<< HEAD" in content


def test_read_conflicted_file_window(ctx):
    content = asyncio.run(
        read_conflicted_file(ctx, "a.py", start_line=3, num_lines=2)
    )

    assert content == "3:     return 1\n4: ======="


def test_read_outside_repository_is_retried(ctx):
    with pytest.raises(ModelRetry, match="outside the repository"):
        asyncio.run(read_conflicted_file(ctx, "../secrets.txt"))


def test_read_missing_file_lists_conflicts(ctx):
    with pytest.raises(ModelRetry, match="Conflicted files: a.py"):
        asyncio.run(read_conflicted_file(ctx, "nope.py"))


def test_conflict_status(ctx):
    text = asyncio.run(conflict_status(ctx))

    assert text == "branch: (detached HEAD)\nconflicted: a.py"


def test_show_diff_failure_is_retried(ctx):
    ctx.deps.git.diff.side_effect = GitCommandError("git diff", 128, "bad")

    with pytest.raises(ModelRetry):
        asyncio.run(show_diff(ctx, "HEAD", "nope"))


def test_show_diff_names(ctx):
    ctx.deps.git.diff.return_value = DiffResult(files=["a.py", "b.py"])

    text = asyncio.run(show_diff(ctx, "HEAD", "main", name_only=True))

    assert text == "a.py\nb.py"


def test_recent_commits_caps_limit(ctx):
    ctx.deps.git.log.return_value = [
        CommitInfo(sha="0123456789abcdef", author="Ada", subject="Add f"),
    ]

    text = asyncio.run(recent_commits(ctx, "main", limit=500))

    assert text == "0123456789ab Ada: Add f"
    ctx.deps.git.log.assert_awaited_once_with("main", limit=50)


def test_wrapped_tools_keep_names_and_reraise(ctx):
    names = [tool.__name__ for tool in analysis_tools]
    assert names == [
        "conflict_status",
        "show_diff",
        "recent_commits",
        "read_conflicted_file",
    ]

    wrapped = analysis_tools[names.index("read_conflicted_file")]
    with pytest.raises(ModelRetry):
        asyncio.run(wrapped(ctx, "../outside"))


def test_option_like_revisions_are_retried(ctx, tmp_path):
    target = tmp_path.parent / "written_by_tool"

    with pytest.raises(ModelRetry, match="not a revision"):
        asyncio.run(recent_commits(ctx, ref=f"--output={target}"))
    with pytest.raises(ModelRetry, match="not a revision"):
        asyncio.run(show_diff(ctx, base=f"--output={target}", head="HEAD"))
    with pytest.raises(ModelRetry, match="not a revision"):
        asyncio.run(show_diff(ctx, base="HEAD", head="-p"))

    ctx.deps.git.log.assert_not_called()
    ctx.deps.git.diff.assert_not_called()
    assert not target.exists()
