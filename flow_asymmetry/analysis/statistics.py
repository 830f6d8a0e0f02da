"""
Core statistical functions for the migration flow asymmetry research.

This module provides:
- Concentration metrics over a group's weight vector (CV, Gini, top ratio)
- Descriptive statistics
- Kruskal-Wallis comparison of asymmetry across regions
- Volume-asymmetry regression

The concentration metrics are pure, order-independent functions of the
weights; sorting happens internally only where the formula needs it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np
import statsmodels.api as sm
from scipy import stats


@dataclass
class StatisticalResult:
    """Container for statistical test results."""

    test_name: str
    statistic: float
    p_value: float
    effect_size: float
    effect_size_name: str
    ci_lower: float
    ci_upper: float
    df: Optional[float] = None
    n: Optional[int] = None
    additional_info: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {
            "test_name": self.test_name,
            "statistic": self.statistic,
            "p_value": self.p_value,
            "effect_size": self.effect_size,
            "effect_size_name": self.effect_size_name,
            "ci_lower": self.ci_lower,
            "ci_upper": self.ci_upper,
        }
        if self.df is not None:
            result["df"] = self.df
        if self.n is not None:
            result["n"] = self.n
        if self.additional_info:
            result.update(self.additional_info)
        return result

    def to_apa(self) -> str:
        """Format result in APA style."""
        df_str = f"({self.df:.0f})" if self.df is not None else ""

        if self.p_value < 0.001:
            p_str = "p < .001"
        else:
            p_str = f"p = {self.p_value:.3f}"

        if "Kruskal" in self.test_name:
            return f"H{df_str} = {self.statistic:.2f}, {p_str}, {self.effect_size_name} = {self.effect_size:.3f}"
        elif "OLS" in self.test_name:
            return f"t{df_str} = {self.statistic:.2f}, {p_str}, {self.effect_size_name} = {self.effect_size:.3f}"
        else:
            return f"{self.test_name}: statistic = {self.statistic:.2f}, {p_str}, {self.effect_size_name} = {self.effect_size:.3f}"


def _as_weights(weights: Sequence[float]) -> np.ndarray:
    w = np.asarray(weights, dtype=float)
    if w.ndim != 1:
        raise ValueError("weights must be one-dimensional")
    if np.any(w < 0):
        raise ValueError("weights must be non-negative")
    return w


def coefficient_of_variation(weights: Sequence[float]) -> Optional[float]:
    """
    Coefficient of variation: sample standard deviation over mean.

    Parameters
    ----------
    weights : Sequence[float]
        Non-negative flow magnitudes of one group

    Returns
    -------
    Optional[float]
        CV, or None when fewer than two weights or the mean is zero

    Notes
    -----
    Uses the sample standard deviation (ddof=1). Scale-free: multiplying
    every weight by the same positive constant leaves it unchanged.
    """
    w = _as_weights(weights)
    if len(w) < 2:
        return None
    mean = float(np.mean(w))
    if mean == 0:
        return None
    return float(np.std(w, ddof=1)) / mean


def gini_coefficient(weights: Sequence[float]) -> Optional[float]:
    """
    Gini coefficient of a group's weights.

    For ascending weights w_1 <= ... <= w_n:

        G = 2 * sum(i * w_i) / (n * sum(w)) - (n + 1) / n

    Parameters
    ----------
    weights : Sequence[float]
        Non-negative flow magnitudes of one group

    Returns
    -------
    Optional[float]
        G in [0, 1 - 1/n], or None when fewer than two weights or the
        total is zero

    Notes
    -----
    Reported without small-sample correction: all-equal weights give 0,
    one destination holding everything gives (n - 1) / n.
    """
    w = _as_weights(weights)
    n = len(w)
    if n < 2:
        return None
    total = float(np.sum(w))
    if total == 0:
        return None

    w_sorted = np.sort(w)
    index = np.arange(1, n + 1)
    gini = (2.0 * float(np.sum(index * w_sorted))) / (n * total) - (n + 1) / n
    # Clamp floating-point noise at the exact bounds
    return float(min(max(gini, 0.0), 1.0 - 1.0 / n))


def top_concentration_ratio(weights: Sequence[float]) -> Optional[float]:
    """
    Share of the group total captured by its largest weight.

    Returns
    -------
    Optional[float]
        max / total in (0, 1]; None for an empty or all-zero group
    """
    w = _as_weights(weights)
    if len(w) == 0:
        return None
    total = float(np.sum(w))
    if total == 0:
        return None
    return float(np.max(w)) / total


def top_destination(weights_by_destination: Dict[str, float]) -> Optional[str]:
    """
    Destination holding the largest weight.

    Ties go to the lexicographically first destination id.
    """
    if not weights_by_destination:
        return None
    return min(weights_by_destination, key=lambda d: (-weights_by_destination[d], d))


def descriptive_statistics(
    data: np.ndarray,
    decimal_places: int = 3
) -> Dict[str, float]:
    """
    Compute descriptive statistics.

    Parameters
    ----------
    data : np.ndarray
        Data array; NaNs are ignored
    decimal_places : int, default=3
        Number of decimal places for rounding

    Returns
    -------
    Dict[str, float]
        Descriptive statistics (empty values are NaN)
    """
    data = np.asarray(data, dtype=float)
    data = data[~np.isnan(data)]

    if len(data) == 0:
        empty = {key: float("nan") for key in ("mean", "std", "median", "min", "max", "q1", "q3")}
        empty["n"] = 0
        return empty

    return {
        "n": len(data),
        "mean": round(float(np.mean(data)), decimal_places),
        "std": round(float(np.std(data, ddof=1)), decimal_places) if len(data) > 1 else float("nan"),
        "median": round(float(np.median(data)), decimal_places),
        "min": round(float(np.min(data)), decimal_places),
        "max": round(float(np.max(data)), decimal_places),
        "q1": round(float(np.percentile(data, 25)), decimal_places),
        "q3": round(float(np.percentile(data, 75)), decimal_places),
    }


def kruskal_wallis_test(groups: Dict[str, Sequence[float]]) -> StatisticalResult:
    """
    Kruskal-Wallis H test for a difference in distribution across groups.

    Parameters
    ----------
    groups : Dict[str, Sequence[float]]
        Label -> observations (e.g. region -> CVs); needs at least two groups

    Returns
    -------
    StatisticalResult
        H statistic, p-value and epsilon-squared effect size

    Notes
    -----
    Epsilon-squared = H / (n - 1), bounded in [0, 1].
    """
    samples = [np.asarray(v, dtype=float) for v in groups.values()]
    if len(samples) < 2:
        raise ValueError("Kruskal-Wallis test needs at least two groups")

    n = sum(len(s) for s in samples)
    h_stat, p_value = stats.kruskal(*samples)
    epsilon_sq = float(h_stat) / (n - 1) if n > 1 else float("nan")

    return StatisticalResult(
        test_name="Kruskal-Wallis H test",
        statistic=float(h_stat),
        p_value=float(p_value),
        effect_size=epsilon_sq,
        effect_size_name="epsilon^2",
        ci_lower=np.nan,
        ci_upper=np.nan,
        df=len(samples) - 1,
        n=n,
        additional_info={"groups": list(groups.keys())},
    )


def volume_asymmetry_regression(
    total_magnitudes: Sequence[float],
    cvs: Sequence[float],
    alpha: float = 0.05,
) -> StatisticalResult:
    """
    OLS of CV on log10(total magnitude).

    Descriptive only: answers whether high-volume origins spread their flows
    more or less evenly than low-volume ones.

    Parameters
    ----------
    total_magnitudes : Sequence[float]
        Positive group totals
    cvs : Sequence[float]
        Coefficient of variation of each group
    alpha : float, default=0.05
        Significance level for the slope confidence interval

    Returns
    -------
    StatisticalResult
        Slope t-statistic and p-value, R-squared as effect size, slope CI
    """
    x = np.log10(np.asarray(total_magnitudes, dtype=float))
    y = np.asarray(cvs, dtype=float)
    if len(x) != len(y):
        raise ValueError("total_magnitudes and cvs must have equal length")
    if len(x) < 3:
        raise ValueError("Regression needs at least three groups")

    model = sm.OLS(y, sm.add_constant(x)).fit()
    ci = model.conf_int(alpha=alpha)

    return StatisticalResult(
        test_name="OLS slope (CV ~ log10 total)",
        statistic=float(model.tvalues[1]),
        p_value=float(model.pvalues[1]),
        effect_size=float(model.rsquared),
        effect_size_name="R^2",
        ci_lower=float(ci[1][0]),
        ci_upper=float(ci[1][1]),
        df=float(model.df_resid),
        n=int(model.nobs),
        additional_info={"slope": float(model.params[1]), "intercept": float(model.params[0])},
    )
