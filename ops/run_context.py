"""
Run context: identity for the current process run.

Every recommender run has:
- run_id: UUID4 generated once at process start
- started_at: ISO-8601 UTC timestamp
- batch_id: monotonic counter, incremented for each filter_markets() batch

run_id (once activated), batch_id and component are stored in contextvars for
injection into structured logs.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Context variables for logging injection
_run_id_var: ContextVar[str] = ContextVar("run_id", default="")
_batch_id_var: ContextVar[int] = ContextVar("batch_id", default=0)
_component_var: ContextVar[str] = ContextVar("component", default="")


def set_batch_context(batch_id: int, component: str = "") -> None:
    """Set batch context for structured logging injection."""
    _batch_id_var.set(batch_id)
    if component:
        _component_var.set(component)


def set_component(component: str) -> None:
    _component_var.set(component)


def get_run_id() -> str:
    return _run_id_var.get()


def get_batch_id() -> int:
    """Get current batch_id from context."""
    return _batch_id_var.get()


def get_component() -> str:
    """Get current component from context."""
    return _component_var.get()


@dataclass
class RunContext:
    """Identity for a single recommender process run."""

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    batch_id: int = 0

    def activate(self) -> None:
        """Make this run the one stamped on log records in the current context."""
        _run_id_var.set(self.run_id)

    def next_batch(self, component: str = "") -> int:
        """Increment and return the new batch_id. Also updates contextvars."""
        self.batch_id += 1
        self.activate()
        set_batch_context(self.batch_id, component)
        return self.batch_id
