"""Merge command - merge a branch into the checked-out branch."""

from pydantic import BaseModel, Field

from braid.command.context import build_deps, report
from braid.core.log import logger
from braid.workflow.merge import run_merge
from braid.workflow.state import MergeInput


class MergeCommand(BaseModel):
    """Merge a branch into the checked-out branch.

    Refuses to start on a dirty or conflicted working tree. When the
    merge conflicts, the conflicts are reported together with
    resolution suggestions from the configured model.
    """

    source: str = Field(description="Branch to merge")
    no_ff: bool = Field(
        default=False,
        alias="no-ff",
        description="Always create a merge commit",
    )
    squash: bool = Field(
        default=False,
        description="Squash the changes into the working tree",
    )
    push: bool = Field(
        default=False,
        description="Push the branch after a clean merge",
    )

    model_config = {"populate_by_name": True}

    async def run_workflow(self, state) -> int:
        """Run the merge workflow.

        Args:
            state: Loaded settings

        Returns:
            Exit code (0 = merged)
        """
        config = state.config
        request = MergeInput(
            path=str(config.git.workdir),
            source=self.source,
            no_ff=self.no_ff,
            squash=self.squash,
            push=self.push,
            remote=config.git.remote,
        )
        logger.info(
            f"Merging {self.source}",
            workdir=request.path,
            no_ff=self.no_ff,
            squash=self.squash,
        )
        output = await run_merge(request, build_deps(config))
        return report(output)
