#!/usr/bin/env python3
"""
Generate DEMO/TEST flow data for development and testing ONLY.

WARNING: This script generates SYNTHETIC county-to-county migration flows for
testing the analysis pipeline. The numbers are NOT Census estimates and MUST
NOT be used for:
- Publications or reports
- Drawing conclusions about migration asymmetry

Use this only for:
- Testing that the analysis code works correctly
- Verifying the raw edge file format
- Development and debugging without a Census API key

Flows follow a simple gravity model (population product over squared
distance) with lognormal noise. A few origins are given a dominant
destination so the concentration flags have something to find. Each
canonical edge is observed from the destination-anchored query and, for a
subset of anchors, again from the origin-anchored query with a small
disagreement so reconciliation is exercised.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import json
import warnings
from datetime import datetime

import numpy as np
import pandas as pd

from flow_asymmetry.data.models import AnchorRole, RawFlowEdge, SourceTag
from flow_asymmetry.data.preprocessing import raw_edges_to_frame

# Issue a warning every time this is run
warnings.warn(
    "\n\n"
    "=" * 60 + "\n"
    "WARNING: GENERATING SYNTHETIC DEMO FLOWS\n"
    "These are NOT real Census migration estimates!\n"
    "=" * 60 + "\n",
    UserWarning
)

# id -> (name, population, x, y, metro); coordinates are arbitrary units
COUNTIES = {
    "48453": ("Travis", 1_290_000, 0.0, 0.0, "Austin"),
    "48491": ("Williamson", 640_000, 0.2, 0.4, "Austin"),
    "48209": ("Hays", 250_000, -0.3, -0.3, "Austin"),
    "48201": ("Harris", 4_730_000, 2.3, -0.4, "Houston"),
    "48157": ("Fort Bend", 860_000, 2.0, -0.7, "Houston"),
    "48339": ("Montgomery", 650_000, 2.2, 0.2, "Houston"),
    "48113": ("Dallas", 2_610_000, 0.9, 3.0, "Dallas"),
    "48439": ("Tarrant", 2_110_000, 0.4, 3.0, "Dallas"),
    "48085": ("Collin", 1_110_000, 1.1, 3.4, "Dallas"),
    "48029": ("Bexar", 2_010_000, -1.2, -1.2, "San Antonio"),
    "48091": ("Comal", 170_000, -0.8, -0.8, "San Antonio"),
    "48141": ("El Paso", 870_000, -8.0, 1.0, "El Paso"),
    "48303": ("Lubbock", 310_000, -4.0, 4.5, "Lubbock"),
    "06037": ("Los Angeles", 9_720_000, -20.0, 2.0, "Los Angeles"),
    "04013": ("Maricopa", 4_500_000, -14.0, 2.5, "Phoenix"),
    "08031": ("Denver", 710_000, -9.0, 9.0, "Denver"),
    "22071": ("Orleans", 380_000, 6.0, -0.8, "New Orleans"),
    "40109": ("Oklahoma", 800_000, 0.5, 6.0, "Oklahoma City"),
}

# Origins sending an outsized share to one destination
DOMINANT = {"48491": "48453", "48209": "48453", "48091": "48029", "48157": "48201"}


def generate_demo_flows(seed: int = 42, origin_anchor_share: float = 0.4):
    """
    Generate raw flow observations as both query roles would report them.

    Parameters
    ----------
    seed : int
        Random seed for reproducibility
    origin_anchor_share : float
        Share of anchors also queried in the origin role

    Returns
    -------
    List[RawFlowEdge]
        Raw observations, including duplicates from both roles
    """
    rng = np.random.default_rng(seed)
    ids = sorted(COUNTIES)
    year = 2022

    flows = {}
    for origin in ids:
        _, pop_o, xo, yo, _ = COUNTIES[origin]
        for destination in ids:
            if destination == origin:
                continue
            _, pop_d, xd, yd, _ = COUNTIES[destination]
            distance = max(np.hypot(xo - xd, yo - yd), 0.3)
            mass = pop_o * pop_d / distance ** 2 / 5e9
            magnitude = int(round(mass * rng.lognormal(0, 0.6)))
            if DOMINANT.get(origin) == destination:
                magnitude *= 6
            if magnitude > 0:
                flows[(origin, destination)] = magnitude

    origin_anchors = set(rng.choice(ids, size=int(len(ids) * origin_anchor_share), replace=False))

    edges = []
    for (origin, destination), magnitude in sorted(flows.items()):
        edges.append(RawFlowEdge(
            origin, destination, float(magnitude),
            SourceTag(destination, AnchorRole.DESTINATION, year),
        ))
        if origin in origin_anchors:
            # Outbound estimates differ from inbound ones by sampling noise
            drift = int(rng.integers(-3, 4))
            edges.append(RawFlowEdge(
                origin, destination, float(max(magnitude + drift, 1)),
                SourceTag(origin, AnchorRole.ORIGIN, year),
            ))

    print(f"Generated {len(edges)} DEMO observations of {len(flows)} flows "
          f"({len(origin_anchors)} anchors also queried as origin)")
    return edges


def generate_demo_data():
    """Generate demo flows and a metro mapping, saved with clear warnings."""
    data_dir = Path(__file__).parent.parent / "data"
    demo_dir = data_dir / "demo"
    demo_dir.mkdir(parents=True, exist_ok=True)

    print("\n" + "=" * 60)
    print("GENERATING DEMO FLOWS FOR TESTING ONLY")
    print("These are NOT real Census estimates!")
    print("=" * 60 + "\n")

    edges = generate_demo_flows()

    edges_path = demo_dir / "DEMO_RAW_EDGES_NOT_REAL.csv"
    raw_edges_to_frame(edges).to_csv(edges_path, index=False)
    print(f"\nSaved: {edges_path}")

    regions = pd.DataFrame(
        [{"entity_id": fips, "region": info[4]} for fips, info in sorted(COUNTIES.items())]
    )
    regions_path = demo_dir / "DEMO_METRO_REGIONS.csv"
    regions.to_csv(regions_path, index=False)
    print(f"Saved: {regions_path}")

    metadata = {
        "generated_at": datetime.now().isoformat(),
        "WARNING": "THIS IS SYNTHETIC DEMO DATA - NOT REAL CENSUS ESTIMATES",
        "purpose": "Testing analysis pipeline only",
        "n_counties": len(COUNTIES),
        "n_observations": len(edges),
        "dominant_destinations": DOMINANT,
    }
    metadata_path = demo_dir / "DEMO_METADATA.json"
    with open(metadata_path, "w") as f:
        json.dump(metadata, f, indent=2)
    print(f"Saved: {metadata_path}")

    print("\n" + "=" * 60)
    print("DEMO DATA GENERATED")
    print("Remember: This is for TESTING ONLY!")
    print("=" * 60)


if __name__ == "__main__":
    generate_demo_data()
