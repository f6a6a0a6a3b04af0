"""
Code Classifier
---------------
Maps one clinical code to at most one category of a rule table.

Matching is a literal starts-with test on the normalised code. Categories are
tried in table order and the first category with a matching prefix wins.
Codes matching no category (including blank/null codes) are left
unclassified and contribute to no indicator.
"""

from typing import Optional

import polars as pl

from config import CATEGORY_COL
from features.rule_table import CategoryDefinition, clean_code

_NORMALIZED_COL = "__code_normalized"


def normalize_code(code) -> Optional[str]:
    """Strip whitespace and '.' separators and uppercase; None if unusable."""
    if not isinstance(code, str):
        return None
    cleaned = clean_code(code)
    return cleaned or None


def classify_code(code, table: list[CategoryDefinition]) -> Optional[str]:
    """Return the category id of the first matching definition, or None.

    Parameters
    ----------
    code : str
        Raw ICD-10 code, e.g. 'I219' or 'I21.9'.
    table : list[CategoryDefinition]
        Rule table in priority order.
    """
    normalized = normalize_code(code)
    if normalized is None:
        return None
    for definition in table:
        if normalized.startswith(definition.prefixes):
            return definition.category_id
    return None


def _normalized_code_expr(code_col: str) -> pl.Expr:
    cleaned = (
        pl.col(code_col)
        .cast(pl.Utf8)
        .str.strip_chars()
        .str.to_uppercase()
        .str.replace_all(".", "", literal=True)
    )
    return pl.when(cleaned.str.len_chars() > 0).then(cleaned).otherwise(None)


def _category_expr(table: list[CategoryDefinition]) -> pl.Expr:
    """when/then chain in table order: the first true branch wins."""
    code = pl.col(_NORMALIZED_COL)
    expr = None
    for definition in table:
        matched = pl.any_horizontal(
            [code.str.starts_with(prefix) for prefix in definition.prefixes]
        )
        expr = pl.when(matched) if expr is None else expr.when(matched)
        expr = expr.then(pl.lit(definition.category_id))
    return expr.otherwise(pl.lit(None, dtype=pl.Utf8))


def classify_records(
    records: pl.DataFrame,
    table: list[CategoryDefinition],
    code_col: str,
    category_col: str = CATEGORY_COL,
    verbose: bool = False,
) -> pl.DataFrame:
    """Classify every record of a long-format frame.

    Parameters
    ----------
    records : pl.DataFrame
        One clinical code per row.
    table : list[CategoryDefinition]
        Rule table in priority order.
    code_col : str
        Column holding the raw codes.
    category_col : str
        Name of the output column (null where no category matched).
    verbose : bool
        Print match and malformed-code counts.

    Returns
    -------
    pl.DataFrame
        `records` with `category_col` added.
    """
    classified = (
        records.with_columns(_normalized_code_expr(code_col).alias(_NORMALIZED_COL))
        .with_columns(_category_expr(table).alias(category_col))
    )

    if verbose:
        n_malformed = classified[_NORMALIZED_COL].null_count()
        n_matched = len(classified) - classified[category_col].null_count()
        print(f"  Classified {len(classified):,} records: {n_matched:,} matched")
        if n_malformed:
            print(f"  Skipped {n_malformed:,} blank or malformed codes")

    return classified.drop(_NORMALIZED_COL)
