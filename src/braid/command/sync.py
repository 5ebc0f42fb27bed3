"""Sync command - bring the checked-out branch up to date."""

from typing import Literal

from pydantic import BaseModel, Field

from braid.command.context import build_deps, report
from braid.core.log import logger
from braid.workflow.state import SyncInput
from braid.workflow.sync import run_sync


class SyncCommand(BaseModel):
    """Sync the checked-out branch with a source branch.

    Fetches the remote, then rebases onto or merges the source. A
    rebase that stops on conflicts is driven commit by commit; with
    --config.interactive braid waits for each commit to be resolved
    by hand, otherwise it gives up after max-iterations passes and
    aborts the rebase.

    Unset options fall back to the sync section of the configuration.
    """

    source: str = Field(
        description="Source branch; qualified with the remote unless "
        "it contains a slash",
    )
    strategy: Literal["rebase", "merge"] | None = Field(
        default=None,
        description="'rebase' or 'merge' (default: config.sync.strategy)",
    )
    push: bool | None = Field(
        default=None,
        description="Push after syncing (default: config.sync.push)",
    )
    max_iterations: int | None = Field(
        default=None,
        alias="max-iterations",
        ge=1,
        description="Rebase loop cap (default: config.sync.max_iterations)",
    )

    model_config = {"populate_by_name": True}

    def to_request(self, config) -> SyncInput:
        """Build the workflow input, filling gaps from ``config``."""
        sync = config.sync
        return SyncInput(
            path=str(config.git.workdir),
            source=self.source,
            remote=config.git.remote,
            strategy=self.strategy or sync.strategy,
            push=sync.push if self.push is None else self.push,
            max_iterations=self.max_iterations or sync.max_iterations,
        )

    async def run_workflow(self, state) -> int:
        """Run the sync workflow.

        Args:
            state: Loaded settings

        Returns:
            Exit code (0 = synced or already up to date)
        """
        request = self.to_request(state.config)
        logger.info(
            f"Syncing with {request.source}",
            workdir=request.path,
            strategy=request.strategy,
            push=request.push,
        )
        output = await run_sync(request, build_deps(state.config))
        return report(output)
