"""
Command-line interface for the flow-asymmetry engine.

Provides commands for:
- Fetching raw flow observations from the Census flows API
- Analyzing raw flows (from a file or fetched live)
- Classifying raw identifiers
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="flow-asymmetry",
        description="Migration Flow Asymmetry CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch raw flows from the Census API")
    _add_anchor_arguments(fetch_parser, required=True)
    fetch_parser.add_argument(
        "--output",
        type=Path,
        default=Path("data/raw/raw_edges.csv"),
        help="Output file for raw edges"
    )
    fetch_parser.add_argument(
        "--format",
        choices=["csv", "json", "parquet"],
        default="csv",
        help="Output format"
    )

    # Analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Run the asymmetry analysis")
    analyze_parser.add_argument(
        "--input",
        type=Path,
        help="Raw edges file written by 'fetch' (fetches live if omitted)"
    )
    _add_anchor_arguments(analyze_parser, required=False)
    analyze_parser.add_argument(
        "--output",
        type=Path,
        default=Path("data/results"),
        help="Output directory for results"
    )
    analyze_parser.add_argument(
        "--format",
        choices=["csv", "json", "parquet"],
        default="csv",
        help="Export format"
    )
    analyze_parser.add_argument(
        "--regions",
        type=Path,
        help="CSV with entity_id,region columns overriding Census regions"
    )
    analyze_parser.add_argument("--min-destinations", type=int, help="Minimum destinations per group")
    analyze_parser.add_argument("--min-total", type=float, help="Minimum total outflow per group")
    analyze_parser.add_argument("--flag-ratio", type=float, help="Concentration flag ratio threshold")
    analyze_parser.add_argument("--min-edge-volume", type=float, help="Minimum flagged edge volume")
    analyze_parser.add_argument("--min-population", type=int, help="Minimum origin population")

    # Classify command
    classify_parser = subparsers.add_parser("classify", help="Classify raw identifiers")
    classify_parser.add_argument(
        "identifiers",
        nargs="+",
        help="Raw identifiers, e.g. 48453 006 ASI"
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from flow_asymmetry.exceptions import ConfigurationError, IngestionError

    try:
        # Route to appropriate handler
        if args.command == "fetch":
            run_fetch(args)
        elif args.command == "analyze":
            run_analysis(args)
        elif args.command == "classify":
            run_classify(args)
    except (ConfigurationError, IngestionError) as e:
        logger.error(str(e))
        sys.exit(1)


def _add_anchor_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    group = parser.add_mutually_exclusive_group(required=required)
    group.add_argument(
        "--anchors",
        nargs="+",
        help="Anchor entity ids (5-digit county or 2-digit state FIPS)"
    )
    group.add_argument(
        "--anchors-file",
        type=Path,
        help="File with one anchor id per line"
    )
    parser.add_argument(
        "--roles",
        nargs="+",
        choices=["destination", "origin"],
        default=["destination"],
        help="Anchor roles to query (query 'origin' too for outbound flows)"
    )
    parser.add_argument("--year", type=int, help="ACS release year")
    parser.add_argument("--concurrency", type=int, help="Maximum concurrent queries")
    parser.add_argument("--timeout", type=float, help="Overall ingestion timeout in seconds")
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )


def _read_anchors(args) -> List[str]:
    if getattr(args, "anchors", None):
        return list(args.anchors)
    lines = args.anchors_file.read_text().splitlines()
    return [line.strip() for line in lines if line.strip() and not line.startswith("#")]


def _build_config(args):
    from config.settings import get_config

    base = get_config()
    ingestion = base.ingestion
    if getattr(args, "concurrency", None) is not None:
        ingestion = dataclasses.replace(ingestion, max_concurrency=args.concurrency)
    if getattr(args, "timeout", None) is not None:
        ingestion = dataclasses.replace(ingestion, ingestion_timeout=args.timeout)

    overrides = {
        "min_destinations": getattr(args, "min_destinations", None),
        "min_total_magnitude": getattr(args, "min_total", None),
        "flag_ratio_threshold": getattr(args, "flag_ratio", None),
        "min_edge_volume": getattr(args, "min_edge_volume", None),
        "min_origin_population": getattr(args, "min_population", None),
    }
    asymmetry = dataclasses.replace(
        base.asymmetry,
        **{k: v for k, v in overrides.items() if v is not None}
    )

    regional = base.regional
    if getattr(args, "regions", None) is not None:
        regional = dataclasses.replace(regional, region_mapping_path=args.regions)

    return dataclasses.replace(base, ingestion=ingestion, asymmetry=asymmetry, regional=regional)


def _build_analyzer(args, live: bool):
    from flow_asymmetry.analysis.pipeline import MigrationSymmetryAnalyzer
    from flow_asymmetry.data.census import CensusFlowsClient

    config = _build_config(args).validate()
    source = CensusFlowsClient() if live else None
    return MigrationSymmetryAnalyzer(
        config=config,
        source=source,
        progress=not getattr(args, "no_progress", False),
    )


def _roles(args):
    from flow_asymmetry.data.models import AnchorRole

    return tuple(AnchorRole(r) for r in args.roles)


def run_fetch(args):
    """Fetch raw edges and write them to disk."""
    anchors = _read_anchors(args)
    logger.info(f"Fetching flows for {len(anchors)} anchors as {', '.join(args.roles)}...")

    analyzer = _build_analyzer(args, live=True)
    result = analyzer.fetch(anchors, roles=_roles(args), year=args.year)
    path = analyzer.export_raw_edges(args.output, format=args.format)

    skipped = result.manifest.skipped_by_reason()
    logger.info(f"Wrote {len(result.edges)} raw edges to {path}")
    if skipped:
        logger.warning(f"Skipped anchors by reason: {skipped}")


def run_analysis(args):
    """Run the analysis pipeline."""
    from flow_asymmetry.data.preprocessing import load_raw_edges
    from flow_asymmetry.utils.helpers import format_share

    if args.input is None and not (args.anchors or args.anchors_file):
        raise SystemExit("analyze needs --input or --anchors/--anchors-file")

    live = args.input is None
    analyzer = _build_analyzer(args, live=live)

    if live:
        analyzer.fetch(_read_anchors(args), roles=_roles(args), year=args.year)
        results = analyzer.analyze()
    else:
        results = analyzer.analyze(load_raw_edges(args.input))

    written = analyzer.export_results(results, args.output, format=args.format)

    summary = results.summary
    logger.info(f"Ranked {summary['n_groups']} origin groups")
    if results.ranked:
        top = results.ranked[0]
        logger.info(
            f"Most asymmetric origin: {top.origin_id} (CV={top.cv:.3f}, "
            f"top share {format_share(top.top_concentration_ratio)})"
        )
        logger.info(
            f"High asymmetry (CV > {summary['high_asymmetry_cv']:g}): "
            f"{summary['n_high_asymmetry']} of {summary['n_groups']}"
        )
    for region in results.regional:
        logger.info(f"  {region.region_label}: mean CV {region.mean_cv:.3f} (n={region.n_groups})")
    if results.regional_test is not None:
        logger.info(f"Regional difference: {results.regional_test.to_apa()}")

    logger.info(f"Analysis complete. Results saved to {args.output} ({len(written)} files)")


def run_classify(args):
    """Print the canonical classification of each identifier."""
    from flow_asymmetry.data.normalization import IdentifierNormalizer

    normalizer = IdentifierNormalizer()
    for raw in args.identifiers:
        entity = normalizer.normalize(raw)
        region = entity.parent_region or "-"
        print(f"{raw}\t{entity.entity_id}\t{entity.kind.value}\t{entity.name}\t{region}")


if __name__ == "__main__":
    main()
