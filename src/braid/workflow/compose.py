"""Composition primitives for building workflow graphs.

Workflow steps are pydantic-graph nodes. A node's ``run()`` decides
where the run goes next, and these helpers give those decisions the
three shapes a workflow is built from:

- then: continue with one fixed step
- branch: take the first route whose condition holds
- repeat_until: run a loop body again until a condition holds

A route target is any callable that builds the next node (or End)
from a state, usually the node class itself.

Usage:
    return branch(state, [
        (is_dirty_working_dir, DirtyWorkingDir),
        (is_ready, ValidateBranch),
    ], name="check-status")
"""

from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from pydantic_graph import BaseNode, End, Graph

from braid.core.log import logger

StateT = TypeVar("StateT")
Condition = Callable[[StateT], bool]
Target = Callable[[StateT], BaseNode | End]


class WorkflowMisconfiguredError(RuntimeError):
    """No branch route matched the state it was given.

    Every branch must cover every state that can reach it, so this is
    a defect in the workflow definition rather than in the data.
    """


def then(target: Target, state: StateT) -> BaseNode | End:
    """Continue with ``target``."""
    return target(state)


def branch(
    state: StateT,
    routes: Sequence[tuple[Condition, Target]],
    *,
    name: str = "branch",
) -> BaseNode | End:
    """Continue with the target of the first route whose condition holds.

    Args:
        state: State the conditions are evaluated against
        routes: Ordered (condition, target) pairs
        name: Branch name used in logs and errors

    Raises:
        WorkflowMisconfiguredError: If no condition holds
    """
    for condition, target in routes:
        if condition(state):
            logger.debug(
                f"Branch '{name}' took {condition.__name__}",
                branch=name,
                condition=condition.__name__,
            )
            return target(state)

    raise WorkflowMisconfiguredError(
        f"No route of branch '{name}' matched "
        f"{type(state).__name__}: tried "
        f"{', '.join(condition.__name__ for condition, _ in routes)}"
    )


def repeat_until(
    state: StateT,
    until: Condition,
    body: Target,
    done: Target,
) -> BaseNode | End:
    """Loop edge: run ``body`` again unless ``until`` holds.

    The body node owns the iteration counter and its cap; this only
    decides between another pass and leaving the loop.
    """
    if until(state):
        return done(state)
    return body(state)


async def run_graph(graph: Graph, start: BaseNode, deps: Any = None) -> Any:
    """Run ``graph`` from ``start`` and return the End payload.

    Errors raised by a node propagate and abort the run.

    Raises:
        RuntimeError: If the run stops without reaching End
    """
    end = None
    async with graph.iter(start, deps=deps) as run:
        async for node in run:
            if isinstance(node, End):
                logger.debug("Workflow finished", workflow=graph.name)
                end = node
            else:
                logger.debug(
                    f"Step {type(node).__name__}",
                    workflow=graph.name,
                    step=type(node).__name__,
                )

    if end is None:
        raise RuntimeError(
            f"Workflow {graph.name} stopped without a result"
        )
    return end.data


__all__ = [
    "WorkflowMisconfiguredError",
    "branch",
    "repeat_until",
    "run_graph",
    "then",
]
