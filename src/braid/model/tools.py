"""Read-only repository tools offered to the conflict analyzer."""

import time
from functools import wraps
from pathlib import Path

from pydantic_ai import RunContext
from pydantic_ai.exceptions import ModelRetry

from braid.core.log import logger
from braid.git.contract import GitOps
from braid.git.errors import GitCommandError


class AnalysisContext:
    """Dependencies handed to every analyzer tool call.

    Gives the agent a view of the repository where the conflicts
    exist. Nothing reachable from here can change that repository.
    """

    def __init__(self, workdir: Path, git: GitOps, files: list[str]):
        """Initialize the context.

        Args:
            workdir: Repository working directory
            git: Git collaborator for that repository
            files: Conflicted paths under analysis
        """
        self.workdir = Path(workdir)
        self.git = git
        self.files = files


def _log_tool_execution(func):
    """Log each tool call with its arguments, duration and outcome.

    ModelRetry is logged as a warning and re-raised so pydantic-ai
    can hand the message back to the model.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        tool_name = func.__name__
        start_time = time.time()

        context_info = {}
        if args and isinstance(args[0], RunContext):
            ctx = args[0]
            if isinstance(ctx.deps, AnalysisContext):
                context_info = {
                    'workdir': str(ctx.deps.workdir),
                    'conflict_files': ctx.deps.files,
                }

        logger.info(
            f"Tool '{tool_name}' invoked",
            tool_name=tool_name,
            args=args[1:] if len(args) > 1 else [],
            kwargs=kwargs,
            **context_info,
        )

        try:
            result = await func(*args, **kwargs)
        except ModelRetry as e:
            logger.warning(
                f"Tool '{tool_name}' raised ModelRetry",
                tool_name=tool_name,
                execution_time_ms=round((time.time() - start_time) * 1000, 2),
                retry_message=str(e),
            )
            raise
        except Exception as e:
            logger.error(
                f"Tool '{tool_name}' raised unexpected exception",
                tool_name=tool_name,
                execution_time_ms=round((time.time() - start_time) * 1000, 2),
                exception_type=type(e).__name__,
                _exc_info=e,
            )
            raise

        logger.info(
            f"Tool '{tool_name}' succeeded",
            tool_name=tool_name,
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
            result_size=len(str(result)) if result else 0,
        )
        logger.trace(
            f"Tool '{tool_name}' full result:\n{result}",
            tool_name=tool_name,
        )
        return result

    return wrapper


def _check_revision(revision: str) -> None:
    # git would read a leading dash as an option, e.g. --output=FILE
    if revision.startswith("-"):
        raise ModelRetry(
            f"'{revision}' is not a revision. Pass a branch, tag or "
            f"commit name such as HEAD or origin/main."
        )


async def conflict_status(ctx: RunContext[AnalysisContext]) -> str:
    """Show the current branch and the files with unresolved conflicts.

    Returns:
        One line for the branch, then one line per unmerged path
    """
    status = await ctx.deps.git.status()
    lines = [f"branch: {status.current or '(detached HEAD)'}"]
    if status.conflicted:
        lines.extend(f"conflicted: {path}" for path in status.conflicted)
    else:
        lines.append("no unmerged paths")
    return "\n".join(lines)


async def show_diff(
    ctx: RunContext[AnalysisContext],
    base: str,
    head: str,
    name_only: bool = False,
) -> str:
    """Show what changed on one revision since it diverged from another.

    Args:
        base: Revision to compare against (e.g. HEAD)
        head: Revision whose changes to show (e.g. origin/main)
        name_only: List changed paths instead of the full patch

    Returns:
        Unified diff, or one path per line when name_only is set
    """
    _check_revision(base)
    _check_revision(head)
    try:
        diff = await ctx.deps.git.diff(base, head, name_only=name_only)
    except GitCommandError as e:
        raise ModelRetry(f"git diff failed: {e}") from e
    if name_only:
        return "\n".join(diff.files) or "(no changes)"
    return diff.diff or "(no changes)"


async def recent_commits(
    ctx: RunContext[AnalysisContext],
    ref: str = "HEAD",
    limit: int = 10,
) -> str:
    """List recent commits reachable from a revision.

    Args:
        ref: Revision to start from
        limit: Maximum number of commits (at most 50)

    Returns:
        One "sha author: subject" line per commit
    """
    _check_revision(ref)
    try:
        commits = await ctx.deps.git.log(ref, limit=min(limit, 50))
    except GitCommandError as e:
        raise ModelRetry(f"git log failed for '{ref}': {e}") from e
    return "\n".join(
        f"{c.sha[:12]} {c.author}: {c.subject}" for c in commits
    ) or "(no commits)"


async def read_conflicted_file(
    ctx: RunContext[AnalysisContext],
    filepath: str,
    start_line: int = 1,
    num_lines: int = 200,
) -> str:
    """Read a file from the working tree, conflict markers included.

    Args:
        filepath: Path relative to the repository root
        start_line: First line to read (1-indexed)
        num_lines: Number of lines to read

    Returns:
        File content with line numbers: "1: content\\n2: content\\n..."
    """
    root = ctx.deps.workdir.resolve()
    file_path = (root / filepath).resolve()

    if not file_path.is_relative_to(root):
        raise ModelRetry(
            f"'{filepath}' is outside the repository. "
            f"Use a path relative to the repository root."
        )
    if not file_path.is_file():
        raise ModelRetry(
            f"File '{filepath}' not found. Conflicted files: "
            f"{', '.join(ctx.deps.files) or 'none'}"
        )

    try:
        lines = file_path.read_text(errors="replace").splitlines()
    except OSError as e:
        raise ModelRetry(f"Failed to read '{filepath}': {e}") from e

    start = max(start_line, 1)
    selected = lines[start - 1:start - 1 + num_lines]
    return "\n".join(
        f"{start + i}: {line}" for i, line in enumerate(selected)
    )


_raw_tools = [
    conflict_status,
    show_diff,
    recent_commits,
    read_conflicted_file,
]

# Tools for Agent(tools=[...]), each wrapped with execution logging
analysis_tools = [_log_tool_execution(tool) for tool in _raw_tools]

__all__ = [
    "AnalysisContext",
    "analysis_tools",
    "conflict_status",
    "read_conflicted_file",
    "recent_commits",
    "show_diff",
]
