"""
Data module for the flow-asymmetry engine.

This module provides:
- The canonical data model and run manifest
- Identifier normalization backed by a shared geography registry
- The Census flows client and concurrent ingestion
- Flow table assembly and tabular I/O
"""

from .models import (
    AnchorRole,
    AsymmetryRecord,
    ConcentrationFlag,
    EntityKind,
    FlowEdge,
    GeographicEntity,
    ObservedDirection,
    RawFlowEdge,
    RegionalSummary,
    SourceTag,
)

from .manifest import RunManifest, ReconciliationNote, SkippedAnchor
from .geography import GeographyRegistry
from .normalization import IdentifierNormalizer, QueryContext, clean_display_name
from .census import CensusFlowsClient
from .ingestion import AnchorResult, FlowIngestor, FlowSource, IngestionResult
from .assembly import FlowTable, FlowTableAssembler

from .preprocessing import (
    export_table,
    load_raw_edges,
    raw_edges_from_frame,
    raw_edges_to_frame,
)

__all__ = [
    "AnchorRole",
    "AsymmetryRecord",
    "ConcentrationFlag",
    "EntityKind",
    "FlowEdge",
    "GeographicEntity",
    "ObservedDirection",
    "RawFlowEdge",
    "RegionalSummary",
    "SourceTag",
    "RunManifest",
    "ReconciliationNote",
    "SkippedAnchor",
    "GeographyRegistry",
    "IdentifierNormalizer",
    "QueryContext",
    "clean_display_name",
    "CensusFlowsClient",
    "AnchorResult",
    "FlowIngestor",
    "FlowSource",
    "IngestionResult",
    "FlowTable",
    "FlowTableAssembler",
    "export_table",
    "load_raw_edges",
    "raw_edges_from_frame",
    "raw_edges_to_frame",
]
