"""Tests for GitCommands with the command runner mocked."""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from braid.git.commands import GIT_ENV, GitCommands
from braid.git.errors import GitCommandError, RefNotFoundError


def result(exited=0, stdout="", stderr=""):
    r = MagicMock()
    r.exited = exited
    r.stdout = stdout
    r.stderr = stderr
    return r


@pytest.fixture
def git(test_config):
    git = GitCommands(Path("/repo"), test_config.commands["git"])
    git.runner = MagicMock()
    return git


def commands(git):
    return [call.args[0] for call in git.runner.execute.call_args_list]


def test_runs_in_workdir_without_prompts(git):
    git.runner.execute.return_value = result(stdout="## main\n")

    asyncio.run(git.status())

    kwargs = git.runner.execute.call_args.kwargs
    assert kwargs["cwd"] == Path("/repo")
    assert kwargs["env"] == GIT_ENV


def test_arguments_are_quoted(git):
    git.runner.execute.return_value = result()

    asyncio.run(git.merge("main; rm -rf /"))

    assert commands(git) == ["git merge --no-edit 'main; rm -rf /'"]


def test_merge_flags(git):
    git.runner.execute.return_value = result()

    merge = asyncio.run(git.merge("main", no_ff=True, squash=True))

    assert merge.success is True
    assert commands(git) == ["git merge --no-edit --no-ff --squash main"]


def test_merge_conflicts_are_data(git):
    git.runner.execute.side_effect = [
        result(1, stdout="CONFLICT (content): Merge conflict in a.ts\n"),
        result(stdout="## main\nUU a.ts\n"),
    ]

    merge = asyncio.run(git.merge("main"))

    assert merge.success is False
    assert [c.file for c in merge.conflicts] == ["a.ts"]


def test_merge_failure_without_conflicts_raises(git):
    git.runner.execute.side_effect = [
        result(1, stderr="merge: nope - not something we can merge"),
        result(stdout="## main\n"),
    ]

    with pytest.raises(GitCommandError) as exc:
        asyncio.run(git.merge("nope"))

    assert exc.value.exit_code == 1
    assert "not something we can merge" in exc.value.stderr


def test_rebase_requeries_status_on_failure(git):
    git.runner.execute.side_effect = [
        result(1, stderr="could not apply 1a2b3c4... Add feature"),
        result(stdout="## HEAD (no branch)\nUU src/app.py\n"),
    ]

    rebase = asyncio.run(git.rebase("origin/main"))

    assert rebase.completed is False
    assert [c.file for c in rebase.conflicts] == ["src/app.py"]
    assert commands(git) == [
        "git -c core.editor=true rebase origin/main",
        "git status --porcelain=v1 --branch",
    ]


def test_rebase_actions(git):
    git.runner.execute.return_value = result()

    asyncio.run(git.rebase(continue_=True))
    asyncio.run(git.rebase(skip=True))
    asyncio.run(git.rebase(abort=True))

    assert commands(git) == [
        "git -c core.editor=true rebase --continue",
        "git rebase --skip",
        "git rebase --abort",
    ]


def test_rebase_needs_upstream_or_action(git):
    with pytest.raises(ValueError):
        asyncio.run(git.rebase())


def test_push_force_with_lease(git):
    git.runner.execute.return_value = result()

    asyncio.run(git.push("origin", "feature", force_with_lease=True))

    assert commands(git) == [
        "git push --porcelain --force-with-lease origin feature"
    ]


def test_push_failure_does_not_raise(git):
    git.runner.execute.return_value = result(128, stderr="fatal: denied")

    push = asyncio.run(git.push("origin"))

    assert push.success is False
    assert push.error == "fatal: denied"
    assert commands(git) == ["git push --porcelain origin HEAD"]


def test_rev_parse_missing_ref(git):
    git.runner.execute.return_value = result(1)

    with pytest.raises(RefNotFoundError):
        asyncio.run(git.rev_parse("origin/missing"))

    assert commands(git) == [
        "git rev-parse --verify --quiet origin/missing^{commit}"
    ]


def test_fetch_failure_raises(git):
    git.runner.execute.return_value = result(128, stderr="no remote")

    with pytest.raises(GitCommandError):
        asyncio.run(git.fetch("origin"))

    assert commands(git) == ["git fetch --prune origin"]


def test_fetch_without_prune(git):
    git.runner.execute.return_value = result()

    asyncio.run(git.fetch("origin", prune=False))

    assert commands(git) == ["git fetch origin"]


def test_revisions_end_option_parsing(git):
    git.runner.execute.return_value = result(stdout="a.py\n")

    asyncio.run(git.diff("HEAD", "main", name_only=True))
    asyncio.run(git.log("main", limit=5))

    assert commands(git) == [
        "git diff --name-only --end-of-options HEAD...main",
        "git log --max-count=5 --format=%H%x09%an%x09%s "
        "--end-of-options main",
    ]


def test_commit_subject_missing_is_none(git):
    git.runner.execute.return_value = result(128)

    assert asyncio.run(git.commit_subject("REBASE_HEAD")) is None


def test_count_divergence(git):
    git.runner.execute.return_value = result(stdout="2\t7\n")

    assert asyncio.run(git.count_divergence("HEAD", "origin/main")) == (2, 7)
    assert commands(git) == [
        "git rev-list --left-right --count HEAD...origin/main"
    ]


def test_unknown_template(git):
    git.templates = {}

    with pytest.raises(KeyError):
        asyncio.run(git.status())
