"""Subprocess execution on top of invoke."""

import contextlib
import io
import os
import platform
from pathlib import Path

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut

from braid.core.log import logger


class Runner(Context):
    """invoke.Context with a single ``execute`` entry point.

    Every external command braid runs goes through execute(), which
    captures output instead of echoing it, never reads the terminal
    and reports failures through the returned Result rather than an
    exception unless ``check`` is set.
    """

    def kill(self) -> None:
        """Kill the running subprocess.

        invoke sends signal.SIGKILL, which does not exist on Windows.
        os.kill() there hands its number to TerminateProcess(), so
        the numeric value 9 is used instead.
        """
        if platform.system() == "Windows":
            pid = self.pid if self.using_pty else self.process.pid
            with contextlib.suppress(ProcessLookupError):
                os.kill(pid, 9)
            return

        super().kill()

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        timeout: int | None = None,
        stdin: str | None = None,
        log_level: str | None = None,
        check: bool = False,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Run a shell command and return its captured result.

        Args:
            command: Command line to execute
            cwd: Working directory for the command
            timeout: Seconds before the command is killed
            stdin: Text fed to the command's stdin
            log_level: Replay stdout/stderr lines into the log at
                this level
            check: Raise invoke.UnexpectedExit on non-zero exit
            env: Variables added to the inherited environment

        Returns:
            invoke.Result with stdout, stderr and exited. A command
            that timed out reports exited == -1.
        """
        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": False,
        }
        if timeout:
            kwargs["timeout"] = timeout
        if stdin:
            kwargs["in_stream"] = io.StringIO(stdin)
        if env:
            kwargs["env"] = env

        logger.spew("Executing command", command=command, cwd=str(cwd))

        try:
            if cwd:
                with self.cd(str(cwd)):
                    result = self.run(command, **kwargs)
            else:
                result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            result = e.result
            result.exited = -1

        if log_level:
            for line in result.stdout.splitlines():
                logger.log(log_level, line.rstrip())
            for line in result.stderr.splitlines():
                logger.log(log_level, line.rstrip())

        return result
