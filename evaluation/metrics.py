"""
Cohort Summary Metrics
----------------------
Descriptive statistics for a scored cohort, used by the pipeline report.
"""

import numpy as np
import polars as pl


def summarize_scores(
    scored: pl.DataFrame,
    score_col: str,
    category_col: str,
) -> dict:
    """Distribution of the index score and its ordinal category.

    Returns
    -------
    dict with:
        "n_patients" : int
        "mean_score", "median_score", "max_score" : float (nan if no scores)
        "n_missing_score" : int
        "category_counts" : dict[int, int]  - ordinal category -> patients (0..3)
    """
    scores = scored[score_col].drop_nulls().to_numpy().astype(np.float64)
    categories = scored[category_col].drop_nulls().to_numpy()

    return {
        "n_patients": len(scored),
        "mean_score": float(np.mean(scores)) if len(scores) > 0 else float("nan"),
        "median_score": float(np.median(scores)) if len(scores) > 0 else float("nan"),
        "max_score": float(np.max(scores)) if len(scores) > 0 else float("nan"),
        "n_missing_score": scored[score_col].null_count(),
        "category_counts": {k: int(np.sum(categories == k)) for k in range(4)},
    }


def category_prevalence(
    scored: pl.DataFrame,
    condition_cols: list[str],
) -> dict[str, float]:
    """Fraction of patients flagged for each condition column, highest first."""
    n = len(scored)
    if n == 0:
        return {c: 0.0 for c in condition_cols}
    prevalence = {c: float(scored[c].sum()) / n for c in condition_cols}
    return dict(sorted(prevalence.items(), key=lambda kv: -kv[1]))
