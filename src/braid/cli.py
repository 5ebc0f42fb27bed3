#!/usr/bin/env python3
"""braid CLI - keep git branches in sync, with conflict analysis."""

import asyncio
import sys

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from braid.command.diagram import DiagramCommand
from braid.command.merge import MergeCommand
from braid.command.sync import SyncCommand
from braid.core.config import State
from braid.core.log import logger


class CliState(State):
    """Merge and sync git branches safely.

    braid checks the working tree before touching it, reports merge
    and rebase conflicts as data, and asks an LLM for resolution
    suggestions when llm.model is configured. It never edits
    conflicted files itself.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.git.remote upstream)
    2. --include files, ./braid.yaml, the user config braid.yaml
       and the packaged defaults
    3. .env file for secrets
    4. Environment variables (BRAID_CONFIG__LLM__MODEL=...)
    """

    merge: CliSubCommand[MergeCommand]
    sync: CliSubCommand[SyncCommand]
    diagram: CliSubCommand[DiagramCommand]

    def cli_cmd(self):
        """Dispatch to the chosen subcommand, or show help."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(1)

        # Closes the log sinks on exit
        with logger:
            exit_code = asyncio.run(subcommand.run_workflow(self))
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
