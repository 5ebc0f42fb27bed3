"""CLI command modules for braid."""

from braid.command.diagram import DiagramCommand
from braid.command.merge import MergeCommand
from braid.command.sync import SyncCommand

__all__ = ["DiagramCommand", "MergeCommand", "SyncCommand"]
