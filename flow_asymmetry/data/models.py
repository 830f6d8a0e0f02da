"""
Core data model for the flow-asymmetry engine.

This module defines:
- GeographicEntity: canonical, immutable geographic identifiers
- RawFlowEdge / SourceTag: uncanonicalized observations from one query
- FlowEdge: reconciled canonical directed edge
- AsymmetryRecord / ConcentrationFlag / RegionalSummary: derived results
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class EntityKind(str, Enum):
    """Kinds of geographic entity a raw identifier can resolve to."""

    COUNTY = "county"
    STATE = "state"
    COUNTRY = "country"
    UNCLASSIFIED = "unclassified-aggregate"


PRIMARY_KINDS = frozenset({EntityKind.COUNTY, EntityKind.STATE})


class AnchorRole(str, Enum):
    """Role the anchor entity plays in a flow query."""

    ORIGIN = "origin"
    DESTINATION = "destination"


class ObservedDirection(str, Enum):
    """
    Which query perspective(s) a canonical edge was observed from.

    INBOUND edges come only from destination-anchored queries, OUTBOUND
    only from origin-anchored queries, BOTH from at least one of each.
    """

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    BOTH = "both"


@dataclass(frozen=True)
class GeographicEntity:
    """A canonical geographic entity."""

    entity_id: str
    name: str
    kind: EntityKind
    parent_region: Optional[str] = None

    @property
    def is_primary(self) -> bool:
        return self.kind in PRIMARY_KINDS


@dataclass(frozen=True)
class SourceTag:
    """Identifies the ingestion call that produced an observation."""

    anchor_id: str
    anchor_role: AnchorRole
    year: Optional[int] = None

    def __str__(self) -> str:
        suffix = f"@{self.year}" if self.year is not None else ""
        return f"{self.anchor_role.value}:{self.anchor_id}{suffix}"


@dataclass(frozen=True)
class RawFlowEdge:
    """One directed observation, before deduplication."""

    origin_id: str
    destination_id: str
    magnitude: Optional[float]
    source: SourceTag

    @property
    def key(self) -> Tuple[str, str]:
        return (self.origin_id, self.destination_id)


@dataclass(frozen=True)
class FlowEdge:
    """A canonical, reconciled directed edge."""

    origin_id: str
    destination_id: str
    magnitude: float
    observed_direction: ObservedDirection
    sources: Tuple[SourceTag, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin_id": self.origin_id,
            "destination_id": self.destination_id,
            "magnitude": self.magnitude,
            "observed_direction": self.observed_direction.value,
            "sources": ";".join(str(s) for s in self.sources),
        }


@dataclass
class AsymmetryRecord:
    """Concentration metrics for one origin group."""

    origin_id: str
    total_magnitude: float
    destination_count: int
    cv: Optional[float]
    gini: Optional[float]
    top_concentration_ratio: float
    top_destination_id: str
    observed_directions: FrozenSet[ObservedDirection] = field(default_factory=frozenset)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "origin_id": self.origin_id,
            "total_magnitude": self.total_magnitude,
            "destination_count": self.destination_count,
            "cv": self.cv,
            "gini": self.gini,
            "top_concentration_ratio": self.top_concentration_ratio,
            "top_destination_id": self.top_destination_id,
            "observed_directions": ",".join(sorted(d.value for d in self.observed_directions)),
        }


@dataclass
class ConcentrationFlag:
    """An edge whose share of its group far exceeds the uniform share."""

    origin_id: str
    destination_id: str
    observed_share: float
    expected_share: float
    ratio: float
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegionalSummary:
    """CV summary for one region."""

    region_label: str
    n_groups: int
    mean_cv: float
    median_cv: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
