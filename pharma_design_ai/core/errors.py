"""
Typed errors raised by the layout engine.

Each error carries enough context (stage name, room ids, rule id) for a
caller to render an actionable message. Failing compliance rules are
reported in a ComplianceReport and are never raised.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of layout engine errors."""

    INVALID_INPUT = "invalid_input"
    UNSATISFIABLE = "unsatisfiable_layout"
    EXTERNAL = "external_dependency"
    INTERNAL = "internal"


class LayoutError(Exception):
    """Base class for all layout engine errors."""

    category = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        room_ids: Optional[List[str]] = None,
        rule_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.room_ids = list(room_ids or [])
        self.rule_id = rule_id
        self.details = details or {}

    def with_stage(self, stage: str) -> "LayoutError":
        """Attach the orchestrator stage name if none was recorded yet."""
        if self.stage is None:
            self.stage = stage
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.category.value,
            "message": self.message,
            "stage": self.stage,
            "room_ids": self.room_ids,
            "rule_id": self.rule_id,
            "details": self.details,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.room_ids:
            parts.append(f"rooms={','.join(self.room_ids)}")
        if self.rule_id:
            parts.append(f"rule={self.rule_id}")
        return " | ".join(parts)


class InvalidInputError(LayoutError):
    """Malformed request, unknown room type or dangling relationship endpoint."""

    category = ErrorCategory.INVALID_INPUT


class UnsatisfiableLayoutError(LayoutError):
    """A room cannot be given any valid position."""

    category = ErrorCategory.UNSATISFIABLE


class ExternalServiceError(LayoutError):
    """The requirements interpreter or the layout repository failed."""

    category = ErrorCategory.EXTERNAL


class LayoutGenerationError(LayoutError):
    """Unexpected failure inside an orchestrator stage."""

    category = ErrorCategory.INTERNAL
