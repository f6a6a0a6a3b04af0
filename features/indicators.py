"""
Indicator Matrix
----------------
Collapse classified long-format records into a dense per-patient matrix:
one row per patient key, one 0/1 column per declared category.

Every patient seen in the input gets a row, including patients none of whose
codes matched a category.
"""

import polars as pl

from config import CATEGORY_COL
from features.classifier import classify_records
from features.rule_table import CategoryDefinition, ConfigurationError, category_ids

INDICATOR_DTYPE = pl.Int8


def check_input_columns(
    records: pl.DataFrame,
    code_col: str,
    id_cols: list[str],
) -> None:
    """Raise ConfigurationError if the code or id columns are unusable."""
    if not id_cols:
        raise ConfigurationError("id_cols: at least one patient identifier column is required")
    if len(set(id_cols)) != len(id_cols):
        raise ConfigurationError(f"id_cols: duplicate identifier columns {list(id_cols)}")
    missing = [c for c in [code_col, *id_cols] if c not in records.columns]
    if missing:
        raise ConfigurationError(f"Input is missing columns: {missing}")
    if code_col in id_cols:
        raise ConfigurationError(f"clinical_code_col {code_col!r} is also an id column")


def build_indicator_matrix(
    classified: pl.DataFrame,
    table: list[CategoryDefinition],
    id_cols: list[str],
    category_col: str = CATEGORY_COL,
) -> pl.DataFrame:
    """Build the dense patient x category indicator matrix.

    Parameters
    ----------
    classified : pl.DataFrame
        Output of classify_records (null category = no match).
    table : list[CategoryDefinition]
        Rule table whose categories become columns, in table order.
    id_cols : list[str]
        Patient key columns.
    category_col : str
        Column holding the matched category id.

    Returns
    -------
    pl.DataFrame
        id_cols + one Int8 column per category, sorted by patient key.
    """
    ids = category_ids(table)
    clashes = set(ids) & set(id_cols)
    if clashes:
        raise ConfigurationError(f"Category ids clash with id columns: {sorted(clashes)}")

    # Distinct (patient, category) pairs: indicators are binary, not counts
    pairs = classified.select(*id_cols, category_col).unique()

    return (
        pairs.group_by(id_cols, maintain_order=True)
        .agg(
            [
                (pl.col(category_col) == cid).any().cast(INDICATOR_DTYPE).alias(cid)
                for cid in ids
            ]
        )
        .sort(id_cols)
    )


def code_indicator_matrix(
    records: pl.DataFrame,
    table: list[CategoryDefinition],
    code_col: str,
    id_cols: list[str],
    verbose: bool = False,
) -> pl.DataFrame:
    """Classify long-format records and aggregate them to a dense matrix."""
    classified = classify_records(records, table, code_col, verbose=verbose)
    matrix = build_indicator_matrix(classified, table, id_cols)
    if verbose:
        print(f"  Indicator matrix: {len(matrix):,} patients x {len(table)} categories")
    return matrix


def assert_dense(matrix: pl.DataFrame, category_ids: list[str]) -> None:
    """Raise AssertionError unless every category column exists and holds only 0/1."""
    missing = [c for c in category_ids if c not in matrix.columns]
    if missing:
        raise AssertionError(f"Missing category columns: {missing}")
    for cid in category_ids:
        column = matrix[cid]
        if column.null_count() > 0:
            raise AssertionError(f"Null indicators in {cid}")
        if not column.is_in([0, 1]).all():
            raise AssertionError(f"Non-binary indicators in {cid}")
