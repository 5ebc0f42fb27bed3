"""Git process failures."""


class GitCommandError(RuntimeError):
    """A git command failed for reasons other than a conflict.

    Conflicts are domain results and come back as data. This error
    means the process itself failed: bad ref, missing repository,
    network trouble, and so on. It aborts the workflow run.
    """

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(
            f"'{command}' exited with {exit_code}{detail}"
        )


class RefNotFoundError(GitCommandError):
    """A revision did not resolve to a commit."""
