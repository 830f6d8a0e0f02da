"""
Analysis module for the flow-asymmetry engine.

Key components:
    - statistics: CV, Gini and top-concentration metrics plus inferential tests
    - asymmetry: Per-origin asymmetry records and eligibility
    - ranking: Ranking and concentration flags
    - regional: Regional comparison of asymmetry
    - symmetry: Pairwise A->B versus B->A asymmetry
    - pipeline: End-to-end analyzer
"""

from .statistics import (
    StatisticalResult,
    coefficient_of_variation,
    gini_coefficient,
    top_concentration_ratio,
    top_destination,
    descriptive_statistics,
    kruskal_wallis_test,
    volume_asymmetry_regression,
)

from .asymmetry import AsymmetryStatisticsEngine, compute_group_record
from .ranking import SignificanceRanker, find_concentration_flags, rank_records
from .regional import RegionalAggregator, destination_region_preferences
from .symmetry import pairwise_asymmetry, summarize_pair_asymmetry
from .pipeline import AnalysisResults, MigrationSymmetryAnalyzer

__all__ = [
    "StatisticalResult",
    "coefficient_of_variation",
    "gini_coefficient",
    "top_concentration_ratio",
    "top_destination",
    "descriptive_statistics",
    "kruskal_wallis_test",
    "volume_asymmetry_regression",
    "AsymmetryStatisticsEngine",
    "compute_group_record",
    "SignificanceRanker",
    "find_concentration_flags",
    "rank_records",
    "RegionalAggregator",
    "destination_region_preferences",
    "pairwise_asymmetry",
    "summarize_pair_asymmetry",
    "AnalysisResults",
    "MigrationSymmetryAnalyzer",
]
