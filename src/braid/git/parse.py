"""Parse git's plumbing-friendly output into result types."""

import re

from braid.git.types import (
    BranchList,
    CommitInfo,
    Conflict,
    PushedRef,
    PushResult,
    StatusResult,
)

# XY codes of `git status --porcelain` that mean "unmerged"
UNMERGED_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

# Reason given to unmerged paths git did not announce with a
# CONFLICT line
STATUS_CONFLICT_REASON = "content conflict"

_CONFLICT_LINE = re.compile(r"^CONFLICT \(([^)]+)\):\s*(.*)$")
_MERGE_CONFLICT_IN = re.compile(r"Merge conflict in (.+)$")


def _unquote(path: str) -> str:
    # git quotes paths with unusual characters
    if len(path) >= 2 and path[0] == path[-1] == '"':
        return path[1:-1]
    return path


def _branch_from_header(header: str) -> str | None:
    header = header[3:]
    if header.startswith("No commits yet on "):
        return header[len("No commits yet on "):]
    if header.startswith("HEAD (no branch)"):
        return None
    return header.split("...", 1)[0].split(" ", 1)[0]


def parse_status(output: str) -> StatusResult:
    """Parse ``git status --porcelain=v1 --branch``.

    A detached HEAD, as during a rebase, gives ``current=None``.
    """
    current = None
    files = []
    conflicted = []

    for line in output.splitlines():
        if line.startswith("## "):
            current = _branch_from_header(line)
            continue
        if len(line) < 4:
            continue

        code, path = line[:2], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = _unquote(path)

        files.append(path)
        if code in UNMERGED_CODES:
            conflicted.append(path)

    return StatusResult(
        current=current,
        clean=not files,
        conflicted=conflicted,
        files=files,
    )


def parse_branches(output: str) -> BranchList:
    """Parse ``git branch --all --no-color``.

    Symbolic refs such as ``remotes/origin/HEAD -> origin/main`` and
    detached HEAD entries are skipped.
    """
    current = None
    names = []

    for line in output.splitlines():
        if not line.strip():
            continue
        marker, name = line[:2], line[2:].strip()
        if "->" in name or name.startswith("("):
            continue
        if marker.startswith("*"):
            current = name
        names.append(name)

    return BranchList(current=current, all=names)


def parse_conflicts(output: str, conflicted: list[str]) -> list[Conflict]:
    """Build the conflict list of a stopped merge or rebase.

    Args:
        output: Combined stdout/stderr of the merge or rebase
        conflicted: Unmerged paths according to status

    Returns:
        One Conflict per CONFLICT line, followed by one for every
        unmerged path none of those lines named
    """
    conflicts = []
    covered = set()

    for line in output.splitlines():
        match = _CONFLICT_LINE.match(line.strip())
        if not match:
            continue
        reason, detail = match.groups()

        file = None
        in_file = _MERGE_CONFLICT_IN.search(detail)
        if in_file:
            file = _unquote(in_file.group(1).strip())
        else:
            file = next((p for p in conflicted if p in detail), None)

        if file is not None:
            covered.add(file)
        conflicts.append(Conflict(reason=reason, file=file, meta=detail))

    for path in conflicted:
        if path not in covered:
            conflicts.append(
                Conflict(reason=STATUS_CONFLICT_REASON, file=path)
            )

    return conflicts


def parse_push(output: str, exit_code: int, stderr: str = "") -> PushResult:
    """Parse ``git push --porcelain``.

    Ref lines look like ``<flag>\\t<from>:<to>\\t<summary>``. Flag
    ``!`` marks a rejected ref.
    """
    pushed = []
    rejected = []

    for line in output.splitlines():
        if "\t" not in line:
            continue
        flag, rest = line[0], line[1:].lstrip("\t")
        refs = rest.split("\t", 1)[0]
        if ":" not in refs:
            continue
        local, remote = refs.split(":", 1)
        if flag == "!":
            rejected.append(remote)
        else:
            pushed.append(PushedRef(local=local, remote=remote))

    success = exit_code == 0 and not rejected
    error = None
    if not success:
        error = stderr.strip() or (
            f"rejected: {', '.join(rejected)}" if rejected
            else f"git push exited with {exit_code}"
        )

    return PushResult(success=success, pushed=pushed, error=error)


def parse_divergence(output: str) -> tuple[int, int]:
    """Parse ``git rev-list --left-right --count``."""
    left, right = output.split()
    return int(left), int(right)


def parse_log(output: str) -> list[CommitInfo]:
    """Parse ``git log --format=%H%x09%an%x09%s``."""
    commits = []
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        sha, author, subject = parts
        commits.append(CommitInfo(sha=sha, author=author, subject=subject))
    return commits


__all__ = [
    "parse_branches",
    "parse_conflicts",
    "parse_divergence",
    "parse_log",
    "parse_push",
    "parse_status",
]
