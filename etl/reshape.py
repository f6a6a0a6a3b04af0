"""
Wide-to-Long Reshape
--------------------
Convert encounter records with several diagnosis columns (DIAG01, DIAG02, ...)
into one row per code, the long format the index functions consume.
"""

from typing import Optional

import polars as pl

from config import DEFAULT_CLINICAL_CODE_COL

_ROW_COL = "__encounter_row"
_SOURCE_COL = "__source_col"


def wide_to_long(
    wide: pl.DataFrame,
    code_prefix: str,
    code_col: str = DEFAULT_CLINICAL_CODE_COL,
    keep_cols: Optional[list[str]] = None,
) -> pl.DataFrame:
    """Emit one row per non-blank diagnosis code.

    Parameters
    ----------
    wide : pl.DataFrame
        One row per encounter.
    code_prefix : str
        Shared prefix of the diagnosis code columns, e.g. 'DIAG'.
    code_col : str
        Name of the output code column.
    keep_cols : list[str], optional
        Columns carried onto every long row (patient key fields etc.).
        Defaults to every column not starting with `code_prefix`.

    Returns
    -------
    pl.DataFrame
        keep_cols + code_col. Encounters with no codes keep a single row with
        a null code so that their patients are not lost.
    """
    code_cols = [c for c in wide.columns if c.startswith(code_prefix)]
    if not code_cols:
        raise ValueError(f"No columns start with code prefix {code_prefix!r}")
    if keep_cols is None:
        keep_cols = [c for c in wide.columns if c not in code_cols]

    indexed = wide.select(
        *keep_cols, *[pl.col(c).cast(pl.Utf8) for c in code_cols]
    ).with_row_index(_ROW_COL)

    long = (
        indexed.unpivot(
            on=code_cols,
            index=[_ROW_COL, *keep_cols],
            variable_name=_SOURCE_COL,
            value_name=code_col,
        )
        .drop(_SOURCE_COL)
        .with_columns(pl.col(code_col).str.strip_chars())
        .filter(pl.col(code_col).is_not_null() & (pl.col(code_col) != ""))
    )

    # Encounters without a single code: one placeholder row each
    empty = (
        indexed.join(long.select(_ROW_COL).unique(), on=_ROW_COL, how="anti")
        .select(_ROW_COL, *keep_cols)
        .with_columns(pl.lit(None, dtype=pl.Utf8).alias(code_col))
    )

    return (
        pl.concat([long, empty.select(long.columns)])
        .sort(_ROW_COL, maintain_order=True)
        .drop(_ROW_COL)
    )
