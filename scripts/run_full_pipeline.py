#!/usr/bin/env python3
"""
Complete Analysis Pipeline for Migration Flow Asymmetry

This script runs the full analysis pipeline:
1. Loads raw flows (the synthetic demo file by default, or a fetched file)
2. Assembles and reconciles the canonical flow table
3. Computes, ranks and flags concentration statistics
4. Compares regions and exports all result tables

Usage:
    python scripts/run_full_pipeline.py [RAW_EDGES_CSV] [REGIONS_CSV]
"""

import sys
from pathlib import Path
from datetime import datetime

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import dataclasses
import logging

from config.settings import get_config
from flow_asymmetry.analysis.pipeline import MigrationSymmetryAnalyzer
from flow_asymmetry.data.preprocessing import load_raw_edges
from flow_asymmetry.utils.helpers import format_share

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main(argv=None):
    """
    Run the complete analysis pipeline.
    """
    argv = sys.argv[1:] if argv is None else argv
    demo_dir = PROJECT_ROOT / "data" / "demo"
    edges_path = Path(argv[0]) if argv else demo_dir / "DEMO_RAW_EDGES_NOT_REAL.csv"
    regions_path = Path(argv[1]) if len(argv) > 1 else demo_dir / "DEMO_METRO_REGIONS.csv"

    print("=" * 60)
    print("MIGRATION FLOW ASYMMETRY")
    print("Complete Analysis Pipeline")
    print("=" * 60)
    print(f"Started: {datetime.now().isoformat()}")
    print()

    if not edges_path.exists():
        print(f"No raw edges at {edges_path}.")
        print("Run scripts/generate_synthetic_data.py or 'flow-asymmetry fetch' first.")
        return None

    config = get_config()
    if regions_path.exists():
        config = dataclasses.replace(
            config,
            regional=dataclasses.replace(config.regional, region_mapping_path=regions_path),
        )

    # Step 1: Load raw flows
    print("STEP 1: Loading raw flows...")
    print("-" * 40)
    edges = load_raw_edges(edges_path)
    print(f"  Observations: {len(edges)}")
    print()

    # Step 2: Assemble, compute, rank, compare
    print("STEP 2: Assembling and analyzing...")
    print("-" * 40)
    analyzer = MigrationSymmetryAnalyzer(config=config)
    results = analyzer.analyze(edges)

    summary = results.summary
    print(f"  Canonical edges: {summary['n_canonical_edges']}")
    print(f"  Direction coverage: {summary['direction_coverage']}")
    print(f"  Reconciliation notes: {len(results.manifest.reconciliations)}")
    print(f"  Eligible origin groups: {summary['n_groups']} "
          f"(excluded {len(results.manifest.excluded_groups)})")
    print()

    # Step 3: Export
    print("STEP 3: Exporting results...")
    print("-" * 40)
    output_dir = PROJECT_ROOT / "data" / "results" / datetime.now().strftime("%Y%m%d_%H%M%S")
    written = analyzer.export_results(results, output_dir)
    for name, path in written.items():
        print(f"  Saved {name}: {path}")

    # Final summary
    print("\n" + "=" * 60)
    print("PIPELINE COMPLETE")
    print("=" * 60)
    print("\nKEY FINDINGS:")
    print("-" * 40)

    for rank, record in enumerate(results.ranked[:5], start=1):
        print(f"{rank}. {record.origin_id}: CV = {record.cv:.2f}, Gini = {record.gini:.2f}, "
              f"top destination {record.top_destination_id} "
              f"({format_share(record.top_concentration_ratio)})")

    if summary["n_groups"]:
        print(f"\nHigh asymmetry (CV > {summary['high_asymmetry_cv']:g}): "
              f"{summary['n_high_asymmetry']} of {summary['n_groups']} origins")

    print(f"Concentration flags: {len(results.flags)}")
    for region in results.regional:
        print(f"  {region.region_label}: mean CV {region.mean_cv:.2f}, "
              f"median {region.median_cv:.2f} (n={region.n_groups})")
    if results.regional_test is not None:
        print(f"Regional difference: {results.regional_test.to_apa()}")
    if results.volume_association is not None:
        print(f"Volume association: {results.volume_association.to_apa()}")
    print("=" * 60)

    return results


if __name__ == "__main__":
    main()
