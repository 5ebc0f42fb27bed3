"""Diagram command - print a workflow as a mermaid state diagram."""

from typing import Literal

from pydantic import BaseModel, Field


class DiagramCommand(BaseModel):
    """Print the merge or sync workflow as a mermaid diagram."""

    workflow: Literal["merge", "sync"] = Field(
        default="sync",
        description="Workflow to draw",
    )

    def render(self) -> str:
        if self.workflow == "merge":
            from braid.workflow.merge import CheckStatus, merge_graph
            return merge_graph.mermaid_code(start_node=CheckStatus)

        from braid.workflow.sync import FetchRemote, sync_graph
        return sync_graph.mermaid_code(start_node=FetchRemote)

    async def run_workflow(self, state) -> int:  # noqa: ARG002
        print(self.render())
        return 0
