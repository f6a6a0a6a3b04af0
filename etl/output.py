"""
Index Output
------------
Presentation of scored indicator matrices: category ids become display
column names derived from the category labels, and the output toggles select
which columns are returned.

Column names are prefix + label with spaces and colons replaced by
underscores, cut to 32 characters (31 if the 32nd would be an underscore).
"""

import polars as pl

from config import COLUMN_NAME_REPLACE_CHARS, MAX_COLUMN_NAME_LENGTH
from features.rule_table import CategoryDefinition, ConfigurationError


def output_column_name(
    label: str,
    prefix: str,
    max_length: int = MAX_COLUMN_NAME_LENGTH,
) -> str:
    """'Liver disease: moderate or severe' -> 'M3_Liver_disease__moderate_or_se'."""
    name = prefix + label
    for char in COLUMN_NAME_REPLACE_CHARS:
        name = name.replace(char, "_")
    if len(name) >= max_length and name[max_length - 1] == "_":
        return name[: max_length - 1]
    return name[:max_length]


def output_column_names(
    rule_tables: list[list[CategoryDefinition]],
    prefix: str,
) -> dict[str, str]:
    """Category id -> output column name; colliding names are fatal."""
    names = {}
    for table in rule_tables:
        for definition in table:
            names[definition.category_id] = output_column_name(definition.label, prefix)

    seen = {}
    for cid, name in names.items():
        if name in seen:
            raise ConfigurationError(
                f"Categories {seen[name]!r} and {cid!r} both map to column {name!r}"
            )
        seen[name] = cid
    return names


def format_index_output(
    scored: pl.DataFrame,
    id_cols: list[str],
    rule_tables: list[list[CategoryDefinition]],
    column_prefix: str,
    score_cols: list[str],
    return_condition_cols: bool = True,
    return_score: bool = True,
    sort_condition_cols: bool = False,
) -> pl.DataFrame:
    """Rename category columns and apply the output toggles.

    Parameters
    ----------
    scored : pl.DataFrame
        id_cols + category id columns + score columns.
    id_cols : list[str]
        Patient key columns, always returned first.
    rule_tables : list[list[CategoryDefinition]]
        Tables whose categories appear in `scored`, in output order.
    column_prefix : str
        Index prefix for condition columns, e.g. 'M3_'.
    score_cols : list[str]
        Score and score-category columns.
    return_condition_cols, return_score : bool
        Output toggles; at least one must be True.
    sort_condition_cols : bool
        Order condition columns alphabetically (case-insensitive) by output name.

    Returns
    -------
    pl.DataFrame
    """
    if not return_condition_cols and not return_score:
        raise ConfigurationError(
            "return_condition_cols and return_score are both False: nothing to return"
        )

    names = output_column_names(rule_tables, column_prefix)
    clashes = set(names.values()) & (set(id_cols) | set(score_cols))
    if clashes:
        raise ConfigurationError(f"Output column names clash: {sorted(clashes)}")

    condition_cols = [names[c] for c in names if c in scored.columns]
    if sort_condition_cols:
        condition_cols = sorted(condition_cols, key=str.lower)

    selected = list(id_cols)
    if return_condition_cols:
        selected.extend(condition_cols)
    if return_score:
        selected.extend(score_cols)

    return scored.rename({c: n for c, n in names.items() if c in scored.columns}).select(selected)
