"""Weighted compatibility score."""
from __future__ import annotations
from dataclasses import dataclass, field

from tsql_compass.capture.records import CaptureRecord
from tsql_compass.status import ATTENTION_STATUSES, Status

NOT_APPLICABLE = "Not Applicable"


@dataclass
class ScoreCalculator:
    """Accumulates weighted status counts over all captured records.

    Each record contributes the weight of its status, or the weight
    configured for its feature group when there is one. The score is the
    share of the baseline (100 per construct, minus the weight of ignored
    constructs) that is not taken up by attention statuses.
    """
    group_weights: dict[str, int] = field(default_factory=dict)
    constructs: int = 0
    status_counts: dict[Status, int] = field(default_factory=dict)
    weighted: dict[Status, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._group_weights = {k.upper(): v for k, v in self.group_weights.items()}

    def weight_for(self, status: Status, group: str) -> int:
        return self._group_weights.get(group.upper(), status.weight)

    def add(self, status: Status, group: str) -> None:
        if status is Status.OBJECT_COUNT_ONLY:
            return
        self.constructs += 1
        self.status_counts[status] = self.status_counts.get(status, 0) + 1
        self.weighted[status] = self.weighted.get(status, 0) + self.weight_for(status, group)

    def add_record(self, record: CaptureRecord) -> None:
        self.add(record.status, record.group)

    @property
    def attention_weight(self) -> int:
        return sum(self.weighted.get(s, 0) for s in ATTENTION_STATUSES)

    @property
    def base_total(self) -> int:
        return self.constructs * 100 - self.weighted.get(Status.IGNORED, 0)

    def raw_percentage(self) -> int | None:
        """Unclamped score, or None when there is nothing to score."""
        base = self.base_total
        if self.constructs == 0 or base <= 0:
            return None
        # Integer division truncating toward zero
        num = (base - self.attention_weight) * 100
        pct = abs(num) // base
        return pct if num >= 0 else -pct

    def percentage(self) -> int | None:
        raw = self.raw_percentage()
        if raw is None:
            return None
        pct = max(0, min(100, raw))
        if pct == 100 and self.attention_weight > 0:
            pct = 99
        return pct

    def display(self) -> str:
        pct = self.percentage()
        return NOT_APPLICABLE if pct is None else f"{pct}%"


def compute_score(records, group_weights: dict[str, int] | None = None) -> ScoreCalculator:
    calc = ScoreCalculator(group_weights=group_weights or {})
    for record in records:
        calc.add_record(record)
    return calc
