"""Wiring shared by the workflow commands."""

import asyncio

from braid.core.config import Config
from braid.core.log import logger
from braid.git.commands import GitCommands
from braid.model.analyzer import create_analyzer
from braid.workflow.deps import WorkflowDeps
from braid.workflow.state import MergeOutput, RebaseLoopState, SyncOutput


async def prompt_for_resolution(state: RebaseLoopState) -> None:
    """Wait for the operator to resolve a stopped rebase commit."""
    print(
        f"\nRebase stopped on commit {state.resolved_commits + 1}"
        f" ({state.current_commit_message or 'unknown commit'})."
    )
    for conflict in state.conflicts:
        print(f"  {conflict.reason}: {conflict.file or '?'}")
    if state.resolution is not None:
        print(f"\n{state.resolution.analysis}")
        for suggestion in state.resolution.suggestions:
            print(f"\n  {suggestion.file}: {suggestion.suggestion}")
            for command in suggestion.commands:
                print(f"    $ {command}")
    await asyncio.to_thread(
        input,
        "\nResolve and stage the conflicts, then press Enter to continue: ",
    )


def build_deps(config: Config) -> WorkflowDeps:
    """Collaborators for a run against ``config.git.workdir``."""
    git = GitCommands(config.git.workdir, config.commands.get("git", {}))
    analyzer = create_analyzer(config, git)
    if analyzer is None:
        logger.info("No llm.model configured; conflict analysis disabled")
    return WorkflowDeps(
        git=git,
        analyzer=analyzer,
        await_resolution=(
            prompt_for_resolution if config.interactive else None
        ),
    )


def report(output: MergeOutput | SyncOutput) -> int:
    """Print ``output`` as JSON and return the process exit code."""
    print(output.model_dump_json(indent=2, exclude_none=True))
    if output.success:
        return 0
    logger.error(output.error or "Workflow failed")
    return 1
