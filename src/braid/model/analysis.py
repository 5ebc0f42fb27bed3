"""Conflict analysis contract shared by the workflows and analyzers."""

from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from braid.core.log import logger


class ResolutionSuggestion(BaseModel):
    """How to resolve the conflict in one file."""

    model_config = ConfigDict(frozen=True)

    file: str = Field(description="Path of the conflicted file")
    suggestion: str = Field(description="How to resolve this file")
    commands: list[str] = Field(
        default_factory=list,
        description="git commands that carry out the suggestion",
    )


class ConflictResolution(BaseModel):
    """Advice returned by a conflict analyzer.

    Guidance only: nothing in braid applies it to the repository.
    """

    model_config = ConfigDict(frozen=True)

    analysis: str = Field(description="What likely caused the conflicts")
    suggestions: list[ResolutionSuggestion] = Field(
        default_factory=list,
        description="One suggestion per conflicted file",
    )


class AnalysisRequest(BaseModel):
    """What an analyzer is told about a set of conflicts.

    ``strategy`` selects the prompt: a one-shot merge, the end of a
    sync, or a single commit stopped during a rebase. The commit
    fields are only meaningful for ``rebase_commit``.
    """

    model_config = ConfigDict(frozen=True)

    strategy: Literal["merge", "sync", "rebase_commit"]
    source: str
    target: str | None = None
    files: list[str] = Field(default_factory=list)
    path: str | None = None
    sync_strategy: str | None = None
    commit_number: int | None = None
    iteration: int | None = None
    max_iterations: int | None = None
    commit_message: str | None = None


@runtime_checkable
class ConflictAnalyzer(Protocol):
    """Produces resolution guidance for conflicts."""

    async def analyze(self, request: AnalysisRequest) -> ConflictResolution:
        ...


async def request_analysis(
    analyzer: ConflictAnalyzer | None,
    request: AnalysisRequest,
) -> ConflictResolution | None:
    """Ask ``analyzer`` for guidance, tolerating its absence or failure.

    Analysis is advisory. Without an analyzer, or when it raises, the
    caller simply proceeds with no guidance.
    """
    if analyzer is None:
        logger.debug("No conflict analyzer configured; skipping analysis")
        return None

    try:
        with logger.span(
            "Conflict analysis ({strategy})",
            strategy=request.strategy,
            files=request.files,
        ):
            return await analyzer.analyze(request)
    except Exception as e:
        logger.warning(
            "Conflict analysis failed; continuing without guidance",
            error=str(e),
            _exc_info=e,
        )
        return None


__all__ = [
    "AnalysisRequest",
    "ConflictAnalyzer",
    "ConflictResolution",
    "ResolutionSuggestion",
    "request_analysis",
]
