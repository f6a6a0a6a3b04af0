"""
Index Scores
------------
Weighted linear score over the final indicator matrix, plus its ordinal
category:

    score = sum(indicator[c] * weight[c])   over all declared categories

    score <= 0 -> 0,  0 < score <= 1 -> 1,  1 < score <= 2 -> 2,  score > 2 -> 3

An undefined score stays undefined (null), it is never coerced to 0.
"""

import math
from typing import Optional

import polars as pl

from config import SCORE_CATEGORY_CUTPOINTS
from scoring.weights import check_weight_table


def categorize_score(
    score: Optional[float],
    cutpoints: tuple = SCORE_CATEGORY_CUTPOINTS,
) -> Optional[int]:
    """Ordinal category for one score; None for a missing or NaN score."""
    if score is None or math.isnan(score):
        return None
    for category, upper in enumerate(cutpoints):
        if score <= upper:
            return category
    return len(cutpoints)


def score_category_expr(
    score: pl.Expr,
    cutpoints: tuple = SCORE_CATEGORY_CUTPOINTS,
) -> pl.Expr:
    """Vectorised categorize_score."""
    # NaN compares greater than every number in polars; treat it as missing
    score = score.fill_nan(None)
    expr = pl.when(score.is_null()).then(pl.lit(None, dtype=pl.Int8))
    for category, upper in enumerate(cutpoints):
        expr = expr.when(score <= upper).then(pl.lit(category, dtype=pl.Int8))
    return expr.otherwise(pl.lit(len(cutpoints), dtype=pl.Int8))


def score_indicators(
    matrix: pl.DataFrame,
    weights: dict[str, float],
    category_ids: list[str],
    score_col: str,
    category_col: str,
) -> pl.DataFrame:
    """Add the weighted score and its ordinal category to a matrix.

    Parameters
    ----------
    matrix : pl.DataFrame
        Post-override indicator matrix.
    weights : dict[str, float]
        Category id -> coefficient, site overrides already applied.
    category_ids : list[str]
        Categories contributing to the score; each must have a weight.
    score_col, category_col : str
        Output column names.

    Returns
    -------
    pl.DataFrame
        `matrix` with score_col (Float64) and category_col (Int8) added.
    """
    check_weight_table(weights, category_ids)

    terms = [pl.col(cid).cast(pl.Float64) * float(weights[cid]) for cid in category_ids]
    score = pl.sum_horizontal(terms, ignore_nulls=False)

    return matrix.with_columns(score.alias(score_col)).with_columns(
        score_category_expr(pl.col(score_col)).alias(category_col)
    )
