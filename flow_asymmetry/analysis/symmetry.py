"""
Pairwise migration symmetry: when A->B differs from B->A.

Only pairs with both directions present in the FlowTable are compared, so the
index is never computed against a direction the source simply did not
return.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
import pandas as pd

from flow_asymmetry.data.assembly import FlowTable

PAIR_COLUMNS = [
    "entity_a",
    "entity_b",
    "flow_a_to_b",
    "flow_b_to_a",
    "total_flow",
    "asymmetry_index",
    "abs_asymmetry",
    "flow_ratio",
    "dominant_origin",
]


def pairwise_asymmetry(table: FlowTable, min_total: float = 10.0) -> pd.DataFrame:
    """
    Asymmetry index for every pair observed in both directions.

    asymmetry_index = (a_to_b - b_to_a) / (a_to_b + b_to_a), with entity_a
    the lexicographically smaller id: +1 means all flow runs A->B, -1 all
    B->A, 0 perfectly symmetric. flow_ratio is the larger flow over the
    smaller (floored at 1).

    Parameters
    ----------
    table : FlowTable
        Canonical flows
    min_total : float
        Pairs with less combined flow are omitted

    Returns
    -------
    pd.DataFrame
        PAIR_COLUMNS ordered by abs_asymmetry descending
    """
    rows = []
    for edge in table:
        a, b = edge.origin_id, edge.destination_id
        if a >= b:
            continue
        reverse = table.get(b, a)
        if reverse is None:
            continue

        ab, ba = edge.magnitude, reverse.magnitude
        total = ab + ba
        if total < min_total:
            continue

        index = (ab - ba) / total
        if ab > ba:
            dominant = a
        elif ba > ab:
            dominant = b
        else:
            dominant = None

        rows.append({
            "entity_a": a,
            "entity_b": b,
            "flow_a_to_b": ab,
            "flow_b_to_a": ba,
            "total_flow": total,
            "asymmetry_index": index,
            "abs_asymmetry": abs(index),
            "flow_ratio": max(ab, ba) / max(min(ab, ba), 1.0),
            "dominant_origin": dominant,
        })

    frame = pd.DataFrame(rows, columns=PAIR_COLUMNS)
    return frame.sort_values(["abs_asymmetry", "entity_a", "entity_b"], ascending=[False, True, True]).reset_index(drop=True)


def summarize_pair_asymmetry(pairs: pd.DataFrame) -> Dict[str, Optional[float]]:
    """
    Distribution summary of pairwise asymmetry.

    Categories: highly asymmetric (> 0.8), moderately (0.5-0.8], roughly
    symmetric (<= 0.2).
    """
    if pairs.empty:
        return {"total_pairs": 0}

    abs_asym = pairs["abs_asymmetry"].to_numpy(dtype=float)
    return {
        "total_pairs": int(len(pairs)),
        "mean_asymmetry_index": float(np.mean(pairs["asymmetry_index"])),
        "mean_abs_asymmetry": float(np.mean(abs_asym)),
        "median_abs_asymmetry": float(np.median(abs_asym)),
        "highly_asymmetric": int(np.sum(abs_asym > 0.8)),
        "moderately_asymmetric": int(np.sum((abs_asym > 0.5) & (abs_asym <= 0.8))),
        "roughly_symmetric": int(np.sum(abs_asym <= 0.2)),
        "perfectly_symmetric": int(np.sum(pairs["asymmetry_index"].to_numpy() == 0)),
        "max_abs_asymmetry": float(np.max(abs_asym)),
    }
