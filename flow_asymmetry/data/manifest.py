"""
Run manifest: the record of everything an analysis run skipped or adjusted.

Per-anchor and per-row failures are recovered locally; the manifest is where
they end up so data loss is never silent.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SkippedAnchor:
    """An anchor query that contributed no rows."""

    anchor_id: str
    anchor_role: str
    reason: str  # no_data | failed | timeout | cancelled
    attempts: int = 0
    detail: Optional[str] = None


@dataclass
class ReconciliationNote:
    """How a duplicate (origin, destination) observation was resolved."""

    origin_id: str
    destination_id: str
    kept_magnitude: float
    kept_source: str
    discarded_magnitude: float
    discarded_source: str
    reason: str


@dataclass
class ExcludedGroup:
    """An origin group left out of ranking."""

    origin_id: str
    reason: str


@dataclass
class RunManifest:
    """Accumulated skips, drops, exclusions and reconciliation notes."""

    skipped_anchors: List[SkippedAnchor] = field(default_factory=list)
    dropped_rows: Counter = field(default_factory=Counter)
    excluded_groups: List[ExcludedGroup] = field(default_factory=list)
    reconciliations: List[ReconciliationNote] = field(default_factory=list)
    succeeded_anchors: List[str] = field(default_factory=list)

    def skip_anchor(self, anchor_id: str, anchor_role: str, reason: str, attempts: int = 0,
                    detail: Optional[str] = None) -> None:
        self.skipped_anchors.append(SkippedAnchor(anchor_id, anchor_role, reason, attempts, detail))

    def drop_rows(self, reason: str, count: int = 1) -> None:
        if count:
            self.dropped_rows[reason] += count

    def exclude_group(self, origin_id: str, reason: str) -> None:
        self.excluded_groups.append(ExcludedGroup(origin_id, reason))

    def merge(self, other: "RunManifest") -> "RunManifest":
        """Fold another manifest into this one and return self."""
        self.skipped_anchors.extend(other.skipped_anchors)
        self.dropped_rows.update(other.dropped_rows)
        self.excluded_groups.extend(other.excluded_groups)
        self.reconciliations.extend(other.reconciliations)
        self.succeeded_anchors.extend(other.succeeded_anchors)
        return self

    def skipped_by_reason(self) -> Dict[str, int]:
        return dict(Counter(s.reason for s in self.skipped_anchors))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "succeeded_anchors": sorted(set(self.succeeded_anchors)),
            "skipped_anchors": [vars(s) for s in self.skipped_anchors],
            "skipped_by_reason": self.skipped_by_reason(),
            "dropped_rows": dict(self.dropped_rows),
            "excluded_groups": [vars(g) for g in self.excluded_groups],
            "reconciliations": [vars(n) for n in self.reconciliations],
        }
