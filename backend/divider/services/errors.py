"""
Failure kinds and typed outcomes reported by the divider.

Geometric problems (a degenerate contour, a parallel cutter, a split
piece that collapses to a sliver) are expected in normal operation and
must never abort a batch.  They are therefore reported as values: a
:class:`Failure` names the kind of problem, a human readable message
and optionally the subject (panel, cutter or fragment index) it
concerns.  Exceptions are reserved for the store layer and for caller
errors such as an empty selection.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    """Reasons a panel, cutter or fragment could not be processed."""

    DEGENERATE_PLANE = "degenerate_plane"
    PARALLEL_CUTTER = "parallel_cutter"
    INSUFFICIENT_INTERSECTIONS = "insufficient_intersections"
    DEGENERATE_FRAGMENT = "degenerate_fragment"
    MATERIALIZATION_REJECTED = "materialization_rejected"
    SELECTION_CANCELLED = "selection_cancelled"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    subject: Optional[str] = None

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "subject": self.subject}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a :class:`Failure`, never both."""

    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, message: str, subject: Optional[str] = None) -> "Outcome[T]":
        return cls(failure=Failure(kind=kind, message=message, subject=subject))


class SelectionCancelled(Exception):
    """Raised before any mutation when a division batch cannot start.

    Covers an empty panel selection and selections naming panels or
    cutters that do not exist.
    """

    kind = FailureKind.SELECTION_CANCELLED


class PanelStoreError(Exception):
    """Base class for errors raised by panel store implementations."""


class PanelNotFoundError(PanelStoreError):
    def __init__(self, panel_id: int) -> None:
        super().__init__(f"panel {panel_id} not found")
        self.panel_id = panel_id


class PanelCreationError(PanelStoreError):
    """The store refused to materialize a contour as a panel."""

    kind = FailureKind.MATERIALIZATION_REJECTED


class OpeningCreationError(PanelStoreError):
    """The store refused to attach an opening contour to a panel."""

    kind = FailureKind.MATERIALIZATION_REJECTED
