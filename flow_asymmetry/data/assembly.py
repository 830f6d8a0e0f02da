"""
Flow table assembly: deduplication and reconciliation of raw edges.

The same (origin, destination) pair can be observed twice, once by a query
anchored at the destination (inbound view) and once by a query anchored at
the origin (outbound view). Observations that agree within the source's
rounding collapse into one edge. Disagreements are resolved by an explicit
authority rule, never by fetch order or averaging, and every such decision is
written to the run manifest.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

from config.settings import AssemblyConfig, get_config

from .manifest import ReconciliationNote, RunManifest
from .models import AnchorRole, FlowEdge, ObservedDirection, RawFlowEdge

logger = logging.getLogger(__name__)


class FlowTable:
    """
    Canonical directed edges indexed by origin.

    Each (origin, destination) pair appears at most once. Group lookups are
    O(1) dictionary accesses; edges within a group are returned in
    lexicographic destination order.
    """

    def __init__(self, edges: Iterable[FlowEdge] = ()):
        self._by_origin: Dict[str, Dict[str, FlowEdge]] = {}
        for edge in edges:
            self.add(edge)

    def add(self, edge: FlowEdge) -> None:
        group = self._by_origin.setdefault(edge.origin_id, {})
        if edge.destination_id in group:
            raise ValueError(f"Duplicate canonical edge {edge.origin_id}->{edge.destination_id}")
        group[edge.destination_id] = edge

    def __len__(self) -> int:
        return sum(len(group) for group in self._by_origin.values())

    def __iter__(self) -> Iterator[FlowEdge]:
        for origin in self.origins:
            yield from self.group(origin)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        origin, destination = key
        return destination in self._by_origin.get(origin, {})

    def get(self, origin_id: str, destination_id: str) -> Optional[FlowEdge]:
        return self._by_origin.get(origin_id, {}).get(destination_id)

    @property
    def origins(self) -> List[str]:
        return sorted(self._by_origin)

    @property
    def destinations(self) -> Set[str]:
        return {d for group in self._by_origin.values() for d in group}

    def group(self, origin_id: str) -> List[FlowEdge]:
        """Edges leaving one origin, sorted by destination id."""
        group = self._by_origin.get(origin_id, {})
        return [group[d] for d in sorted(group)]

    def weights(self, origin_id: str) -> np.ndarray:
        return np.array([e.magnitude for e in self.group(origin_id)], dtype=float)

    def group_total(self, origin_id: str) -> float:
        return float(sum(e.magnitude for e in self._by_origin.get(origin_id, {}).values()))

    def total_magnitude(self) -> float:
        return float(sum(e.magnitude for e in self))

    def direction_coverage(self) -> Dict[str, int]:
        """Count of canonical edges per observed direction."""
        return dict(Counter(e.observed_direction.value for e in self))

    def to_frame(self) -> pd.DataFrame:
        """Canonical edges as a DataFrame, one row per edge."""
        columns = ["origin_id", "destination_id", "magnitude", "observed_direction", "sources"]
        return pd.DataFrame([e.to_dict() for e in self], columns=columns)


class FlowTableAssembler:
    """
    Merge raw edges from many anchor queries into a FlowTable.

    Parameters
    ----------
    config : Optional[AssemblyConfig]
        Reconciliation tolerance and authoritative role. Uses default if None.
    manifest : Optional[RunManifest]
        Manifest receiving dropped-row counts and reconciliation notes
    """

    def __init__(
        self,
        config: Optional[AssemblyConfig] = None,
        manifest: Optional[RunManifest] = None,
    ):
        self.config = config or get_config().assembly
        self.manifest = manifest if manifest is not None else RunManifest()
        self.authority = AnchorRole(self.config.authoritative_role)

    def assemble(self, raw_edges: Iterable[RawFlowEdge]) -> FlowTable:
        """
        Deduplicate and reconcile raw edges.

        Parameters
        ----------
        raw_edges : Iterable[RawFlowEdge]
            Observations from any number of ingestion calls

        Returns
        -------
        FlowTable
            One canonical edge per observed (origin, destination) pair
        """
        observations: Dict[Tuple[str, str], List[RawFlowEdge]] = defaultdict(list)
        n_raw = 0

        for raw in raw_edges:
            n_raw += 1
            if raw.origin_id == raw.destination_id:
                self.manifest.drop_rows("self_loop")
                continue
            magnitude = raw.magnitude
            if magnitude is None or (isinstance(magnitude, float) and math.isnan(magnitude)):
                self.manifest.drop_rows("missing_magnitude")
                continue
            if magnitude <= 0:
                self.manifest.drop_rows("non_positive_magnitude")
                continue
            observations[raw.key].append(raw)

        table = FlowTable()
        n_notes_before = len(self.manifest.reconciliations)
        for key in sorted(observations):
            table.add(self._reconcile(key, observations[key]))

        n_notes = len(self.manifest.reconciliations) - n_notes_before
        logger.info(
            f"Assembled {len(table):,} canonical edges from {n_raw:,} raw observations "
            f"({n_notes} reconciliation notes)"
        )
        return table

    def _reconcile(self, key: Tuple[str, str], observed: List[RawFlowEdge]) -> FlowEdge:
        origin_id, destination_id = key
        by_role: Dict[AnchorRole, List[RawFlowEdge]] = defaultdict(list)
        for raw in observed:
            by_role[raw.source.anchor_role].append(raw)

        chosen = {role: self._resolve_same_role(key, obs) for role, obs in by_role.items()}
        sources = tuple(sorted({raw.source for raw in observed}, key=str))

        if len(chosen) == 1:
            (role, kept), = chosen.items()
            direction = (
                ObservedDirection.INBOUND if role is AnchorRole.DESTINATION
                else ObservedDirection.OUTBOUND
            )
            return FlowEdge(origin_id, destination_id, float(kept.magnitude), direction, sources)

        authoritative = chosen[self.authority]
        other_role = AnchorRole.ORIGIN if self.authority is AnchorRole.DESTINATION else AnchorRole.DESTINATION
        other = chosen[other_role]

        if abs(authoritative.magnitude - other.magnitude) > self.config.reconciliation_tolerance:
            self.manifest.reconciliations.append(ReconciliationNote(
                origin_id=origin_id,
                destination_id=destination_id,
                kept_magnitude=float(authoritative.magnitude),
                kept_source=str(authoritative.source),
                discarded_magnitude=float(other.magnitude),
                discarded_source=str(other.source),
                reason=f"{self.authority.value}-anchored observation is authoritative",
            ))
            logger.debug(
                f"Reconciled {origin_id}->{destination_id}: kept {authoritative.magnitude} "
                f"({authoritative.source}) over {other.magnitude} ({other.source})"
            )

        return FlowEdge(
            origin_id, destination_id, float(authoritative.magnitude),
            ObservedDirection.BOTH, sources,
        )

    def _resolve_same_role(self, key: Tuple[str, str], observed: List[RawFlowEdge]) -> RawFlowEdge:
        """Collapse repeated observations made from the same anchor role."""
        ordered = sorted(observed, key=lambda raw: (str(raw.source), raw.magnitude))
        if len(ordered) == 1:
            return ordered[0]

        low = min(raw.magnitude for raw in ordered)
        high = max(ordered, key=lambda raw: raw.magnitude)
        if high.magnitude - low <= self.config.reconciliation_tolerance:
            return ordered[0]

        for raw in ordered:
            if raw is high:
                continue
            self.manifest.reconciliations.append(ReconciliationNote(
                origin_id=key[0],
                destination_id=key[1],
                kept_magnitude=float(high.magnitude),
                kept_source=str(high.source),
                discarded_magnitude=float(raw.magnitude),
                discarded_source=str(raw.source),
                reason="conflicting observations from the same anchor role; kept the largest",
            ))
        return high
