"""
Temporal Union
--------------
Combine the indicator matrix coded over the full lookback window with the one
coded over the pre-treatment window (C3).

The two matrices use disjoint category namespaces, so the union is a full
outer join on the patient key: a patient with no qualifying records in one
window gets zeros for that window's categories rather than being dropped.
Null key components match each other, so a partially keyed patient stays one
row.
"""

import polars as pl

from features.indicators import INDICATOR_DTYPE
from features.rule_table import ConfigurationError


def union_indicator_matrices(
    all_time: pl.DataFrame,
    pre_treatment: pl.DataFrame,
    id_cols: list[str],
) -> pl.DataFrame:
    """Full outer join of two indicator matrices on the patient key.

    Parameters
    ----------
    all_time : pl.DataFrame
        Matrix coded over the full lookback window.
    pre_treatment : pl.DataFrame
        Matrix coded over records predating the treatment/registration event.
    id_cols : list[str]
        Patient key columns present in both.

    Returns
    -------
    pl.DataFrame
        id_cols, then the all-time categories, then the pre-treatment
        categories; sorted by patient key, no nulls in indicator columns.
    """
    all_time_cats = [c for c in all_time.columns if c not in id_cols]
    pre_cats = [c for c in pre_treatment.columns if c not in id_cols]

    shared = set(all_time_cats) & set(pre_cats)
    if shared:
        raise ConfigurationError(
            f"Temporal union: category namespaces overlap on {sorted(shared)}"
        )

    return (
        all_time.join(
            pre_treatment, on=id_cols, how="full", coalesce=True, nulls_equal=True
        )
        .with_columns(
            [
                pl.col(c).fill_null(0).cast(INDICATOR_DTYPE)
                for c in all_time_cats + pre_cats
            ]
        )
        .select(*id_cols, *all_time_cats, *pre_cats)
        .sort(id_cols)
    )
