"""Git collaborator backed by the git command line."""

import asyncio
import shlex
from pathlib import Path

from invoke import Result

from braid.core.log import logger
from braid.core.runner import Runner
from braid.git.errors import GitCommandError, RefNotFoundError
from braid.git.parse import (
    parse_branches,
    parse_conflicts,
    parse_divergence,
    parse_log,
    parse_push,
    parse_status,
)
from braid.git.types import (
    BranchList,
    CommitInfo,
    DiffResult,
    MergeResult,
    PushResult,
    RebaseResult,
    StatusResult,
)

# git must never wait on a terminal for credentials or an editor
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true"}


def _flag(enabled: bool, flag: str) -> str:
    return f" {flag}" if enabled else ""


class GitCommands:
    """Runs git in one working directory.

    Command lines come from the ``commands.git`` templates of the
    configuration. Values are shell-quoted before substitution; flag
    placeholders receive either "" or " --flag".
    """

    def __init__(self, workdir: Path, templates: dict[str, str]):
        """Initialize the collaborator.

        Args:
            workdir: Repository working directory
            templates: Command templates keyed by operation name
        """
        self.workdir = Path(workdir)
        self.templates = templates
        self.runner = Runner()

    def _command(self, name: str, **values: str) -> str:
        template = self.templates.get(name)
        if template is None:
            raise KeyError(f"No git command template named '{name}'")
        return template.format(**values)

    async def _run(self, command: str) -> Result:
        logger.debug("git", command=command, workdir=str(self.workdir))
        result = await asyncio.to_thread(
            self.runner.execute,
            command,
            cwd=self.workdir,
            env=GIT_ENV,
        )
        logger.spew(
            "git finished",
            command=command,
            exit_code=result.exited,
            stdout=result.stdout,
            stderr=result.stderr,
        )
        return result

    async def _check(self, command: str) -> Result:
        result = await self._run(command)
        if result.exited != 0:
            raise GitCommandError(command, result.exited, result.stderr)
        return result

    async def status(self) -> StatusResult:
        result = await self._check(self._command("status"))
        return parse_status(result.stdout)

    async def branches(self) -> BranchList:
        result = await self._check(self._command("branches"))
        return parse_branches(result.stdout)

    async def diff(
        self, base: str, head: str, name_only: bool = False
    ) -> DiffResult:
        quoted = {"base": shlex.quote(base), "head": shlex.quote(head)}
        names = await self._check(self._command("diff_files", **quoted))
        files = [line for line in names.stdout.splitlines() if line]
        if name_only:
            return DiffResult(files=files)
        full = await self._check(self._command("diff", **quoted))
        return DiffResult(diff=full.stdout, files=files)

    async def fetch(self, remote: str, prune: bool = True) -> None:
        command = self._command(
            "fetch",
            remote=shlex.quote(remote),
            prune=_flag(prune, "--prune"),
        )
        await self._check(command)

    async def merge(
        self, ref: str, no_ff: bool = False, squash: bool = False
    ) -> MergeResult:
        command = self._command(
            "merge",
            ref=shlex.quote(ref),
            no_ff=_flag(no_ff, "--no-ff"),
            squash=_flag(squash, "--squash"),
        )
        result = await self._run(command)
        if result.exited == 0:
            return MergeResult(success=True)

        conflicts = await self._conflicts_after(result)
        if not conflicts:
            raise GitCommandError(command, result.exited, result.stderr)
        return MergeResult(success=False, conflicts=conflicts)

    async def rebase(
        self,
        upstream: str | None = None,
        *,
        abort: bool = False,
        continue_: bool = False,
        skip: bool = False,
    ) -> RebaseResult:
        if abort:
            command = self._command("rebase_abort")
        elif continue_:
            command = self._command("rebase_continue")
        elif skip:
            command = self._command("rebase_skip")
        elif upstream is not None:
            command = self._command("rebase", upstream=shlex.quote(upstream))
        else:
            raise ValueError("rebase needs an upstream or an action")

        result = await self._run(command)
        if result.exited == 0:
            return RebaseResult(completed=True)
        if abort:
            raise GitCommandError(command, result.exited, result.stderr)

        conflicts = await self._conflicts_after(result)
        if not conflicts:
            raise GitCommandError(command, result.exited, result.stderr)
        return RebaseResult(completed=False, conflicts=conflicts)

    async def _conflicts_after(self, result: Result):
        status = await self.status()
        return parse_conflicts(
            result.stdout + "\n" + result.stderr, status.conflicted
        )

    async def push(
        self,
        remote: str,
        branch: str | None = None,
        force_with_lease: bool = False,
    ) -> PushResult:
        command = self._command(
            "push",
            remote=shlex.quote(remote),
            refspec=shlex.quote(branch) if branch else "HEAD",
            force=_flag(force_with_lease, "--force-with-lease"),
        )
        result = await self._run(command)
        push = parse_push(result.stdout, result.exited, result.stderr)
        if not push.success:
            logger.warning("git push failed", error=push.error)
        return push

    async def rev_parse(self, ref: str) -> str:
        command = self._command("rev_parse", ref=shlex.quote(ref))
        result = await self._run(command)
        if result.exited != 0:
            raise RefNotFoundError(command, result.exited, result.stderr)
        return result.stdout.strip()

    async def merge_base(self, left: str, right: str) -> str:
        result = await self._check(
            self._command(
                "merge_base",
                left=shlex.quote(left),
                right=shlex.quote(right),
            )
        )
        return result.stdout.strip()

    async def count_divergence(
        self, left: str, right: str
    ) -> tuple[int, int]:
        result = await self._check(
            self._command(
                "divergence",
                left=shlex.quote(left),
                right=shlex.quote(right),
            )
        )
        return parse_divergence(result.stdout)

    async def log(
        self, ref: str = "HEAD", limit: int = 10
    ) -> list[CommitInfo]:
        result = await self._check(
            self._command("log", ref=shlex.quote(ref), limit=str(limit))
        )
        return parse_log(result.stdout)

    async def commit_subject(self, ref: str) -> str | None:
        result = await self._run(
            self._command("commit_subject", ref=shlex.quote(ref))
        )
        if result.exited != 0:
            return None
        return result.stdout.strip() or None


__all__ = ["GitCommands", "GIT_ENV"]
