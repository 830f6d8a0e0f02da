"""
Asymmetry statistics engine.

For each origin group in a FlowTable this computes how unevenly the origin
spreads its outflow across destinations. Groups that fail the eligibility
thresholds are excluded and recorded in the manifest; that is an expected
outcome, not a failure.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from config.settings import AsymmetryConfig, get_config
from flow_asymmetry.data.assembly import FlowTable
from flow_asymmetry.data.manifest import RunManifest
from flow_asymmetry.data.models import AsymmetryRecord
from flow_asymmetry.exceptions import FlowAsymmetryError, InsufficientSampleError

from .statistics import (
    coefficient_of_variation,
    gini_coefficient,
    top_concentration_ratio,
    top_destination,
)

logger = logging.getLogger(__name__)

# entity id -> {"name": ..., "population": ...}
MetadataLookup = Callable[[str], Dict[str, object]]


def compute_group_record(table: FlowTable, origin_id: str) -> AsymmetryRecord:
    """
    Compute the AsymmetryRecord for one origin group, ignoring eligibility.

    CV and Gini are None for single-destination groups.
    """
    edges = table.group(origin_id)
    if not edges:
        raise InsufficientSampleError(origin_id, "no outgoing edges")

    weights = [e.magnitude for e in edges]
    by_destination = {e.destination_id: e.magnitude for e in edges}

    return AsymmetryRecord(
        origin_id=origin_id,
        total_magnitude=float(sum(weights)),
        destination_count=len(edges),
        cv=coefficient_of_variation(weights),
        gini=gini_coefficient(weights),
        top_concentration_ratio=top_concentration_ratio(weights),
        top_destination_id=top_destination(by_destination),
        observed_directions=frozenset(e.observed_direction for e in edges),
    )


class AsymmetryStatisticsEngine:
    """
    Compute concentration metrics for every eligible origin group.

    Parameters
    ----------
    config : Optional[AsymmetryConfig]
        Eligibility thresholds. Uses default if None.
    metadata : Optional[MetadataLookup]
        Entity metadata lookup, consulted only when a minimum origin
        population is configured
    manifest : Optional[RunManifest]
        Manifest receiving excluded groups
    """

    def __init__(
        self,
        config: Optional[AsymmetryConfig] = None,
        metadata: Optional[MetadataLookup] = None,
        manifest: Optional[RunManifest] = None,
    ):
        self.config = config or get_config().asymmetry
        self.metadata = metadata
        self.manifest = manifest if manifest is not None else RunManifest()

    def check_eligibility(self, record: AsymmetryRecord) -> None:
        """
        Raise InsufficientSampleError if the group fails eligibility.
        """
        cfg = self.config
        if record.destination_count < cfg.min_destinations:
            raise InsufficientSampleError(
                record.origin_id,
                f"destination_count {record.destination_count} < {cfg.min_destinations}",
            )
        if record.total_magnitude < cfg.min_total_magnitude:
            raise InsufficientSampleError(
                record.origin_id,
                f"total_magnitude {record.total_magnitude:g} < {cfg.min_total_magnitude:g}",
            )
        if record.cv is None:
            raise InsufficientSampleError(record.origin_id, "coefficient of variation undefined")

        if cfg.min_origin_population is not None:
            if self.metadata is None:
                raise InsufficientSampleError(record.origin_id, "population unavailable")
            try:
                population = self.metadata(record.origin_id).get("population")
            except (FlowAsymmetryError, ValueError) as e:
                logger.warning(f"Population lookup failed for {record.origin_id}: {e}")
                raise InsufficientSampleError(record.origin_id, f"population unavailable: {e}")
            if population is None:
                raise InsufficientSampleError(record.origin_id, "population unavailable")
            if population < cfg.min_origin_population:
                raise InsufficientSampleError(
                    record.origin_id,
                    f"population {population} < {cfg.min_origin_population}",
                )

    def compute(self, table: FlowTable) -> List[AsymmetryRecord]:
        """
        Compute records for all eligible groups.

        Parameters
        ----------
        table : FlowTable
            Assembled canonical flows

        Returns
        -------
        List[AsymmetryRecord]
            Eligible records in origin-id order (ranking is separate)
        """
        records = []
        for origin_id in table.origins:
            try:
                record = compute_group_record(table, origin_id)
                self.check_eligibility(record)
            except InsufficientSampleError as e:
                logger.debug(f"Excluding group {e.origin_id}: {e.reason}")
                self.manifest.exclude_group(e.origin_id, e.reason)
                continue
            records.append(record)

        logger.info(
            f"Computed asymmetry metrics for {len(records)} of {len(table.origins)} origin groups"
        )
        return records

    def compute_all(self, table: FlowTable) -> Dict[str, AsymmetryRecord]:
        """Records for every group regardless of eligibility."""
        return {origin_id: compute_group_record(table, origin_id) for origin_id in table.origins}
