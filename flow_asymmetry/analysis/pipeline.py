"""
End-to-end flow asymmetry analysis.

Runs ingestion, then (after every ingestion task has finished) assembly,
statistics, ranking and regional comparison over an immutable snapshot of
the collected edges. Everything after the ingestion barrier is
single-threaded.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from config.settings import AppConfig, get_config
from flow_asymmetry.data.assembly import FlowTable, FlowTableAssembler
from flow_asymmetry.data.geography import GeographyRegistry
from flow_asymmetry.data.ingestion import FlowIngestor, FlowSource, IngestionResult
from flow_asymmetry.data.manifest import RunManifest
from flow_asymmetry.data.models import (
    AnchorRole,
    AsymmetryRecord,
    ConcentrationFlag,
    RawFlowEdge,
    RegionalSummary,
)
from flow_asymmetry.data.normalization import IdentifierNormalizer
from flow_asymmetry.data.preprocessing import export_table, raw_edges_to_frame
from flow_asymmetry.utils.helpers import write_json

from .asymmetry import AsymmetryStatisticsEngine
from .ranking import SignificanceRanker, flags_to_frame, records_to_frame
from .regional import RegionalAggregator, destination_region_preferences
from .statistics import StatisticalResult, volume_asymmetry_regression
from .symmetry import pairwise_asymmetry, summarize_pair_asymmetry

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResults:
    """Everything one analysis run produces."""

    table: FlowTable
    ranked: List[AsymmetryRecord]
    flags: List[ConcentrationFlag]
    regional: List[RegionalSummary]
    manifest: RunManifest
    summary: Dict[str, Any] = field(default_factory=dict)
    regional_test: Optional[StatisticalResult] = None
    volume_association: Optional[StatisticalResult] = None
    pairs: pd.DataFrame = field(default_factory=pd.DataFrame)
    preferences: pd.DataFrame = field(default_factory=pd.DataFrame)

    def ranked_frame(self) -> pd.DataFrame:
        return records_to_frame(self.ranked)

    def flags_frame(self) -> pd.DataFrame:
        return flags_to_frame(self.flags)

    def regional_frame(self) -> pd.DataFrame:
        return RegionalAggregator.to_frame(self.regional)


class MigrationSymmetryAnalyzer:
    """
    Analyzer for migration flow asymmetry.

    This class wires the engine together: ingestion from a FlowSource,
    assembly into a FlowTable, and the derived statistics.

    Parameters
    ----------
    config : Optional[AppConfig]
        Configuration; validated immediately. Uses default if None.
    source : Optional[FlowSource]
        Data-retrieval collaborator; required only for fetch()/run()
    registry : Optional[GeographyRegistry]
        Shared classification service for normalizer and aggregator
    metadata : Optional[Callable]
        entity id -> {"name", "population"}; defaults to the source's
        entity_metadata when a minimum population is configured
    progress : bool
        Show ingestion progress bar
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        source: Optional[FlowSource] = None,
        registry: Optional[GeographyRegistry] = None,
        metadata=None,
        progress: bool = False,
    ):
        self.config = (config or get_config()).validate()
        self.source = source
        self.registry = registry or self._default_registry()
        self.normalizer = IdentifierNormalizer(self.registry)
        self.progress = progress

        if metadata is None and hasattr(source, "entity_metadata"):
            metadata = source.entity_metadata
        self.metadata = functools.lru_cache(maxsize=None)(metadata) if metadata else None

        self.raw_edges: List[RawFlowEdge] = []
        self.manifest = RunManifest()

    def _default_registry(self) -> GeographyRegistry:
        path = self.config.regional.region_mapping_path
        if path is not None:
            return GeographyRegistry.from_csv(path)
        return GeographyRegistry()

    def fetch(
        self,
        anchor_ids: Iterable[str],
        roles: Sequence[AnchorRole] = (AnchorRole.DESTINATION,),
        year: Optional[int] = None,
    ) -> IngestionResult:
        """
        Ingest flows for the given anchors.

        Returns
        -------
        IngestionResult
            Raw edges and ingestion manifest; also kept on the analyzer
        """
        if self.source is None:
            raise ValueError("No flow source configured. Pass source= to fetch live data.")

        ingestor = FlowIngestor(
            self.source,
            normalizer=self.normalizer,
            config=self.config.ingestion,
            progress=self.progress,
        )
        result = ingestor.ingest(anchor_ids, roles=roles, year=year)
        self.raw_edges = list(result.edges)
        self.manifest = result.manifest
        return result

    def analyze(self, raw_edges: Optional[Iterable[RawFlowEdge]] = None) -> AnalysisResults:
        """
        Assemble and analyze raw edges.

        Parameters
        ----------
        raw_edges : Optional[Iterable[RawFlowEdge]]
            Edges to analyze; defaults to those from the last fetch()

        Returns
        -------
        AnalysisResults
            Ranked records, flags, regional comparison and supplements
        """
        snapshot = tuple(raw_edges) if raw_edges is not None else tuple(self.raw_edges)
        manifest = RunManifest().merge(self.manifest)
        cfg = self.config

        table = FlowTableAssembler(cfg.assembly, manifest=manifest).assemble(snapshot)
        coverage = table.direction_coverage()
        if set(coverage) == {"inbound"} or set(coverage) == {"outbound"}:
            logger.info(f"All canonical edges observed from one direction only: {coverage}")

        engine = AsymmetryStatisticsEngine(cfg.asymmetry, metadata=self.metadata, manifest=manifest)
        records = engine.compute(table)

        ranker = SignificanceRanker(cfg.asymmetry)
        ranked = ranker.rank(records)
        flags = ranker.flag(table)

        aggregator = RegionalAggregator(self.registry, cfg.regional)
        regional = aggregator.compare(ranked)
        regional_test = aggregator.difference_test(ranked)

        summary = ranker.summarize(ranked)
        summary["direction_coverage"] = coverage
        summary["n_canonical_edges"] = len(table)
        summary["n_origins"] = len(table.origins)
        summary["n_destinations"] = len(table.destinations)

        pairs = pairwise_asymmetry(table, min_total=cfg.asymmetry.pair_min_total)
        summary["pairwise"] = summarize_pair_asymmetry(pairs)

        results = AnalysisResults(
            table=table,
            ranked=ranked,
            flags=flags,
            regional=regional,
            manifest=manifest,
            summary=summary,
            regional_test=regional_test,
            volume_association=self._volume_association(ranked),
            pairs=pairs,
            preferences=destination_region_preferences(table, self.registry.region_for, cfg.asymmetry),
        )

        logger.info(
            f"Analysis complete: {len(ranked)} ranked groups, {len(flags)} flags, "
            f"{len(regional)} regions compared"
        )
        return results

    def run(
        self,
        anchor_ids: Iterable[str],
        roles: Sequence[AnchorRole] = (AnchorRole.DESTINATION,),
        year: Optional[int] = None,
    ) -> AnalysisResults:
        """Fetch then analyze."""
        self.fetch(anchor_ids, roles=roles, year=year)
        return self.analyze()

    @staticmethod
    def _volume_association(ranked: List[AsymmetryRecord]) -> Optional[StatisticalResult]:
        if len(ranked) < 3:
            return None
        totals = np.array([r.total_magnitude for r in ranked], dtype=float)
        if np.ptp(np.log10(totals)) == 0:
            return None
        return volume_asymmetry_regression(totals, [r.cv for r in ranked])

    def export_results(
        self,
        results: AnalysisResults,
        output_dir: Path,
        format: str = "csv",
    ) -> Dict[str, Path]:
        """
        Write the reporting tables and the run manifest.

        Returns
        -------
        Dict[str, Path]
            Table name -> file written
        """
        output_dir = Path(output_dir)
        written = {
            "asymmetry": export_table(results.ranked_frame(), output_dir / "asymmetry_ranked", format),
            "flags": export_table(results.flags_frame(), output_dir / "concentration_flags", format),
            "regional": export_table(results.regional_frame(), output_dir / "regional_comparison", format),
            "pairs": export_table(results.pairs, output_dir / "pairwise_asymmetry", format),
            "preferences": export_table(results.preferences, output_dir / "region_preferences", format),
            "edges": export_table(results.table.to_frame(), output_dir / "canonical_edges", format),
        }

        summary = dict(results.summary)
        if results.regional_test is not None:
            summary["regional_test"] = results.regional_test.to_dict()
        if results.volume_association is not None:
            summary["volume_association"] = results.volume_association.to_dict()

        written["summary"] = output_dir / "summary.json"
        write_json(summary, written["summary"])
        written["manifest"] = output_dir / "manifest.json"
        write_json(results.manifest.to_dict(), written["manifest"])
        return written

    def export_raw_edges(self, path: Path, format: str = "csv") -> Path:
        """Write the raw edges from the last fetch() for later analysis."""
        return export_table(raw_edges_to_frame(self.raw_edges), path, format)
