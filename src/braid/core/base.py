"""Base classes for configuration and workflow state models.

This module holds the foundations shared by the rest of braid:
- Closeable Protocol for resource cleanup
- BaseCloseable for automatic cleanup cascade
- BaseConfig for configuration models
- BaseState for immutable workflow state

Kept separate from config.py and log.py so both can import it without
a cycle.
"""

from __future__ import annotations

import sys
from typing import Any, Protocol, Self, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict

# ============================================================
# CLOSEABLE PROTOCOL AND BASE CLASS
# ============================================================

@runtime_checkable
class Closeable(Protocol):
    """Protocol for objects that support close()."""

    def close(self) -> None:
        """Release resources."""
        ...


class BaseCloseable(BaseModel):
    """Pydantic model that closes its Closeable children.

    Subclasses become context managers. On close() every field
    implementing Closeable is closed in turn; a failure in one child
    is reported on stderr and does not stop the others.

    The cascade for the CLI is:
    State.config.close() → Logger.close() → Sink.close()
    """

    def close(self):
        """Close every Closeable field of this model."""
        for field_name in self.__class__.model_fields:
            child = getattr(self, field_name, None)
            if child is None:
                continue

            if isinstance(child, Closeable):
                try:
                    child.close()
                except Exception as e:
                    print(
                        f"Warning: Error closing {field_name}: {e}",
                        file=sys.stderr,
                    )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


# ============================================================
# BASE CLASSES
# ============================================================

class BaseConfig(BaseCloseable):
    """Base class for all configuration sections.

    Marks a model as configuration (loaded from YAML/env/CLI) and
    gives it the cleanup cascade.
    """
    pass


StateT = TypeVar("StateT", bound="BaseState")


class BaseState(BaseModel):
    """Base class for values threaded through a workflow run.

    A state is frozen. A step never edits the state it received; it
    returns a new value that is the old one plus whatever the step
    learned, either as the same type (evolve) or as a richer type
    that carries every field forward (grow).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def evolve(self, **changes: Any) -> Self:
        """Return a copy of this state with ``changes`` applied."""
        return self.model_copy(update=changes)

    def grow(self, cls: type[StateT], **fields: Any) -> StateT:
        """Carry this state's fields into a richer state type.

        Args:
            cls: State type whose schema extends this one
            **fields: Newly known fields

        Returns:
            New ``cls`` instance holding the old and new fields
        """
        carried = {
            name: value
            for name, value in self
            if name in cls.model_fields
        }
        return cls(**{**carried, **fields})


__all__ = [
    "Closeable",
    "BaseCloseable",
    "BaseConfig",
    "BaseState",
]
