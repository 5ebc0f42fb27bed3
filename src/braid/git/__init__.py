"""Git collaborator: the operations the workflows need from git."""

from braid.git.commands import GitCommands
from braid.git.contract import GitOps
from braid.git.errors import GitCommandError, RefNotFoundError

__all__ = [
    "GitCommandError",
    "GitCommands",
    "GitOps",
    "RefNotFoundError",
]
