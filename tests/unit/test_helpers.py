"""
Unit tests for the JSON writer and share formatting.
"""

import json

import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from flow_asymmetry.utils.helpers import format_share, write_json


class TestWriteJson:
    """Summaries and manifests are written as strict JSON."""

    def test_numpy_sets_and_nan(self, tmp_path):
        path = write_json(
            {
                "mean_cv": np.float64(1.25),
                "n_groups": np.int64(4),
                "undefined_gini": float("nan"),
                "anchors": {"48453", "06037"},
                "nested": {"pairs": [np.float32(0.5), float("inf")]},
            },
            tmp_path / "out" / "summary.json",
        )

        with open(path) as f:
            data = json.load(f)
        assert data["mean_cv"] == 1.25
        assert data["n_groups"] == 4
        assert data["undefined_gini"] is None
        assert data["anchors"] == ["06037", "48453"]
        assert data["nested"]["pairs"] == [0.5, None]


class TestFormatShare:
    """Shares render as percentages."""

    def test_formatting(self):
        assert format_share(0.714) == "71.4%"
        assert format_share(1.0, decimal_places=0) == "100%"

    def test_undefined(self):
        assert format_share(None) == "n/a"
        assert format_share(float("nan")) == "n/a"
