"""
Regional aggregation of asymmetry results.

Groups AsymmetryRecords by an injected entity -> region classification and
compares CV across regions. Regions with too few qualifying groups are left
out so a single origin is never presented as a regional statistic.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from config.settings import AsymmetryConfig, RegionalConfig, get_config
from flow_asymmetry.data.assembly import FlowTable
from flow_asymmetry.data.geography import GeographyRegistry
from flow_asymmetry.data.models import AsymmetryRecord, RegionalSummary

from .statistics import StatisticalResult, kruskal_wallis_test

logger = logging.getLogger(__name__)

REGIONAL_COLUMNS = ["region_label", "n_groups", "mean_cv", "median_cv"]
PREFERENCE_COLUMNS = ["origin_id", "top_region", "top_region_share", "total_magnitude", "n_regions"]


class RegionalAggregator:
    """
    Compare asymmetry across regions.

    Parameters
    ----------
    registry : Optional[GeographyRegistry]
        Classification service; its region_for() assigns origins to regions
    config : Optional[RegionalConfig]
        Minimum groups per region. Uses default if None.
    region_of : Optional[Callable[[str], Optional[str]]]
        Overrides the registry lookup entirely
    """

    def __init__(
        self,
        registry: Optional[GeographyRegistry] = None,
        config: Optional[RegionalConfig] = None,
        region_of: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.registry = registry or GeographyRegistry()
        self.config = config or get_config().regional
        self.region_of = region_of or self.registry.region_for

    def group_by_region(self, records: Iterable[AsymmetryRecord]) -> Dict[str, List[float]]:
        """Region label -> CVs of its records (records without CV or region are skipped)."""
        grouped: Dict[str, List[float]] = defaultdict(list)
        unassigned = 0
        for record in records:
            if record.cv is None:
                continue
            region = self.region_of(record.origin_id)
            if region is None:
                unassigned += 1
                continue
            grouped[region].append(record.cv)

        if unassigned:
            logger.info(f"{unassigned} records have no region assignment")
        return dict(grouped)

    def _qualifying(self, records: Iterable[AsymmetryRecord]) -> Dict[str, List[float]]:
        minimum = self.config.min_groups_per_region
        grouped = self.group_by_region(records)
        qualifying = {region: cvs for region, cvs in grouped.items() if len(cvs) >= minimum}
        dropped = sorted(set(grouped) - set(qualifying))
        if dropped:
            logger.info(f"Regions with fewer than {minimum} groups excluded: {dropped}")
        return qualifying

    def compare(self, records: Iterable[AsymmetryRecord]) -> List[RegionalSummary]:
        """
        Mean and median CV per qualifying region.

        Returns
        -------
        List[RegionalSummary]
            Ordered by mean CV descending, then region label
        """
        summaries = [
            RegionalSummary(
                region_label=region,
                n_groups=len(cvs),
                mean_cv=float(np.mean(cvs)),
                median_cv=float(np.median(cvs)),
            )
            for region, cvs in self._qualifying(records).items()
        ]
        summaries.sort(key=lambda s: (-s.mean_cv, s.region_label))
        return summaries

    def difference_test(self, records: Iterable[AsymmetryRecord]) -> Optional[StatisticalResult]:
        """
        Kruskal-Wallis test of CV across qualifying regions.

        Returns None when fewer than two regions qualify or every CV is
        identical (the test statistic is undefined).
        """
        qualifying = self._qualifying(records)
        if len(qualifying) < 2:
            return None
        values = np.concatenate([np.asarray(v, dtype=float) for v in qualifying.values()])
        if np.all(values == values[0]):
            return None
        return kruskal_wallis_test(dict(sorted(qualifying.items())))

    @staticmethod
    def to_frame(summaries: Iterable[RegionalSummary]) -> pd.DataFrame:
        return pd.DataFrame([s.to_dict() for s in summaries], columns=REGIONAL_COLUMNS)


def destination_region_preferences(
    table: FlowTable,
    region_of: Callable[[str], Optional[str]],
    config: Optional[AsymmetryConfig] = None,
) -> pd.DataFrame:
    """
    Origins that send most of their outflow to a single destination region.

    Destinations are rolled up to regions (e.g. counties to metro areas);
    an origin is reported when its total reaches preference_min_total and
    its top region's share reaches preference_share_threshold.

    Parameters
    ----------
    table : FlowTable
        Canonical flows
    region_of : Callable[[str], Optional[str]]
        Destination id -> region label; unmapped destinations are ignored
    config : Optional[AsymmetryConfig]
        Preference thresholds. Uses default if None.

    Returns
    -------
    pd.DataFrame
        PREFERENCE_COLUMNS, ordered by top_region_share descending
    """
    config = config or get_config().asymmetry
    rows = []

    for origin_id in table.origins:
        by_region: Dict[str, float] = defaultdict(float)
        for edge in table.group(origin_id):
            region = region_of(edge.destination_id)
            if region is not None:
                by_region[region] += edge.magnitude

        total = sum(by_region.values())
        if not by_region or total < config.preference_min_total:
            continue

        top_region = min(by_region, key=lambda r: (-by_region[r], r))
        share = by_region[top_region] / total
        if share >= config.preference_share_threshold:
            rows.append({
                "origin_id": origin_id,
                "top_region": top_region,
                "top_region_share": share,
                "total_magnitude": total,
                "n_regions": len(by_region),
            })

    frame = pd.DataFrame(rows, columns=PREFERENCE_COLUMNS)
    return frame.sort_values(["top_region_share", "origin_id"], ascending=[False, True]).reset_index(drop=True)
