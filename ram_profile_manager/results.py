"""Result types returned by core operations."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Sequence


class Outcome(Enum):
    """How an operation ended without raising."""
    DONE = "done"            # Work was performed
    NOOP = "noop"            # Already in the desired state
    DECLINED = "declined"    # The user refused a confirmation
    CANCELLED = "cancelled"  # The user cancelled a selection


# Injected user interaction: the core never reads the terminal itself.
# confirm receives a question and returns True only on an explicit yes.
ConfirmCallback = Callable[[str], bool]
# select receives the ordered choices and returns a 1-based index or None.
SelectCallback = Callable[[Sequence[Any]], Optional[int]]


def deny(_prompt: str) -> bool:
    """Default confirmation: never proceed without an explicit answer."""
    return False


@dataclass
class OperationResult:
    """Result of a core operation.

    Attributes:
        outcome: How the operation ended
        message: Human-readable summary
        path: Path produced or acted on (archive, restored archive, ...)
        details: Operation-specific payload (sync stats, deleted files, ...)
    """
    outcome: Outcome
    message: str
    path: Optional[Path] = None
    details: Optional[Any] = None

    @property
    def success(self) -> bool:
        """True unless the user declined."""
        return self.outcome != Outcome.DECLINED

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        details = self.details
        if hasattr(details, "to_dict"):
            details = details.to_dict()
        return {
            "outcome": self.outcome.value,
            "success": self.success,
            "message": self.message,
            "path": str(self.path) if self.path else None,
            "details": details,
        }
