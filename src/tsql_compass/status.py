"""Compatibility status model.

A status is stored in capture files by its uppercase tag, shown in reports
by its display name, weighted for the compatibility score, and ranked to
fix the order of report sections. All four live in one table so that adding
a status cannot leave one of them behind.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class Status(str, Enum):
    """Compatibility status of a captured construct."""
    SUPPORTED = "SUPPORTED"
    NOT_SUPPORTED = "NOTSUPPORTED"
    REVIEW_SEMANTICS = "REVIEWSEMANTICS"
    REVIEW_PERFORMANCE = "REVIEWPERFORMANCE"
    REVIEW_MANUALLY = "REVIEWMANUALLY"
    IGNORED = "IGNORED"
    OBJECT_COUNT_ONLY = "OBJECTCOUNTONLY"

    @classmethod
    def from_tag(cls, tag: str) -> Status:
        """Parse a capture-file tag (case-insensitive)."""
        return cls(tag.strip().upper())

    @classmethod
    def from_name(cls, name: str) -> Status:
        """Parse a tag, an enum member name or a display name.

        Accepts "NotSupported", "NOT_SUPPORTED", "notsupported" or
        "Not Supported" for the same status.
        """
        squashed = name.replace(" ", "").replace("_", "").upper()
        return cls(squashed)

    @property
    def info(self) -> StatusInfo:
        return STATUS_INFO[self]

    @property
    def display(self) -> str:
        return STATUS_INFO[self].display

    @property
    def weight(self) -> int:
        return STATUS_INFO[self].weight

    @property
    def rank(self) -> int:
        return STATUS_INFO[self].rank

    @property
    def is_attention(self) -> bool:
        """True for statuses that require migration work."""
        return self in ATTENTION_STATUSES

    @property
    def is_reported(self) -> bool:
        return self is not Status.OBJECT_COUNT_ONLY


@dataclass(frozen=True)
class StatusInfo:
    """Everything the report layer needs to know about a status."""
    display: str
    weight: int
    rank: int


STATUS_INFO: dict[Status, StatusInfo] = {
    Status.NOT_SUPPORTED: StatusInfo("Not Supported", 200, 1),
    Status.REVIEW_MANUALLY: StatusInfo("Review Manually", 150, 2),
    Status.REVIEW_SEMANTICS: StatusInfo("Review Semantics", 150, 3),
    Status.REVIEW_PERFORMANCE: StatusInfo("Review Performance", 150, 4),
    Status.IGNORED: StatusInfo("Ignored", 0, 5),
    Status.SUPPORTED: StatusInfo("Supported", 100, 6),
    Status.OBJECT_COUNT_ONLY: StatusInfo("ObjectCountOnly", 0, 9),
}

ATTENTION_STATUSES = frozenset({
    Status.NOT_SUPPORTED,
    Status.REVIEW_MANUALLY,
    Status.REVIEW_SEMANTICS,
    Status.REVIEW_PERFORMANCE,
})

# Statuses that never make an object "with issues"
ISSUE_FREE_STATUSES = frozenset({
    Status.SUPPORTED,
    Status.IGNORED,
    Status.OBJECT_COUNT_ONLY,
})


def report_order() -> list[Status]:
    """Statuses in the order their report sections appear."""
    return sorted((s for s in Status if s.is_reported), key=lambda s: s.rank)


def status_for_rank(rank: int) -> Status:
    for status, info in STATUS_INFO.items():
        if info.rank == rank:
            return status
    raise ValueError(f"No status with rank {rank}")
