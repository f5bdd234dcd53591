"""
Periodic Loop Results.

Exports:
    LoopRunResult: Outcome of one failsafe or scheduler tick
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.utils import utc_now


@dataclass
class LoopRunResult:
    """Result of one periodic loop tick."""

    run_type: str
    success: bool = True
    skipped: bool = False
    items_scanned: int = 0
    items_acted: int = 0
    actions_taken: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def complete(self, success: bool = True, error: Optional[str] = None):
        """Mark the run as complete."""
        self.completed_at = utc_now()
        self.success = success
        self.error = error

    @property
    def duration_ms(self) -> int:
        """Get run duration in milliseconds."""
        if self.completed_at:
            return int((self.completed_at - self.started_at).total_seconds() * 1000)
        return 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for health output and logging."""
        return {
            "run_type": self.run_type,
            "success": self.success,
            "skipped": self.skipped,
            "items_scanned": self.items_scanned,
            "items_acted": self.items_acted,
            "actions_taken": self.actions_taken,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


__all__ = ["LoopRunResult"]
