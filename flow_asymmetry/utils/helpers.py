"""
Small helpers shared by the exporters and the command line.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)


def _to_json_safe(value: Any) -> Any:
    """Recursively convert numpy values, sets and NaN into plain JSON types."""
    if isinstance(value, dict):
        return {(k if isinstance(k, str) else str(k)): _to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_safe(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_to_json_safe(v) for v in value)
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        # undefined CV or Gini
        return None
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def write_json(data: Dict[str, Any], path: Union[str, Path], indent: int = 2) -> Path:
    """
    Write a summary or manifest as strict JSON.

    Undefined metrics (NaN, inf) are written as null so the file loads in
    any JSON parser, not only Python's.

    Parameters
    ----------
    data : Dict[str, Any]
        Mapping to serialize; may hold numpy scalars and sets
    path : Union[str, Path]
        Output path; parent directories are created

    Returns
    -------
    Path
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(_to_json_safe(data), f, indent=indent, allow_nan=False)
    logger.info(f"Saved JSON to {path}")
    return path


def format_share(share: Optional[float], decimal_places: int = 1) -> str:
    """Format a 0-1 share as a percentage; undefined shares print as n/a."""
    if share is None or (isinstance(share, float) and math.isnan(share)):
        return "n/a"
    return f"{share * 100:.{decimal_places}f}%"
