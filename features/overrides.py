"""
Override Resolution
-------------------
Adjustment rules applied to an indicator matrix after aggregation.

Rules are plain dicts applied strictly in list order, because later rules read
the output of earlier ones. Supported kinds:

  - complication_merge:    uncomplicated + detector -> complicated, clear uncomplicated
  - mutual_exclusion:      keep set -> clear the other
  - exclusion_suppression: detector set -> target cleared
  - registry_merge:        OR cancer-registry sites/metastatic flags into the matrix
  - dominance:             dominant set -> every subordinate cleared

Site-specific suppression (C3) is applied to the weight table instead, see
scoring/weights.py.
"""

from typing import Optional

import polars as pl

from config import CATEGORY_COL
from features.classifier import classify_records
from features.indicators import INDICATOR_DTYPE, build_indicator_matrix
from features.rule_table import ConfigurationError

_REGISTRY_SUFFIX = "__registry"


def _is_set(col: str) -> pl.Expr:
    return pl.col(col) == 1


def _cleared_when(condition: pl.Expr, col: str) -> pl.Expr:
    return (
        pl.when(condition)
        .then(pl.lit(0))
        .otherwise(pl.col(col))
        .cast(INDICATOR_DTYPE)
        .alias(col)
    )


def _complication_merge(matrix: pl.DataFrame, rule: dict, context: dict) -> pl.DataFrame:
    both = _is_set(rule["uncomplicated"]) & _is_set(rule["detector"])
    # Both columns are computed from the pre-rule values
    return matrix.with_columns(
        pl.when(both)
        .then(pl.lit(1))
        .otherwise(pl.col(rule["complicated"]))
        .cast(INDICATOR_DTYPE)
        .alias(rule["complicated"]),
        _cleared_when(both, rule["uncomplicated"]),
    )


def _mutual_exclusion(matrix: pl.DataFrame, rule: dict, context: dict) -> pl.DataFrame:
    return matrix.with_columns(_cleared_when(_is_set(rule["keep"]), rule["clear"]))


def _exclusion_suppression(matrix: pl.DataFrame, rule: dict, context: dict) -> pl.DataFrame:
    return matrix.with_columns(_cleared_when(_is_set(rule["detector"]), rule["target"]))


def _dominance(matrix: pl.DataFrame, rule: dict, context: dict) -> pl.DataFrame:
    dominant = _is_set(rule["dominant"])
    return matrix.with_columns(
        [_cleared_when(dominant, col) for col in rule["subordinates"]]
    )


def _registry_merge(matrix: pl.DataFrame, rule: dict, context: dict) -> pl.DataFrame:
    registry = context.get("registry")
    if registry is None:
        return matrix
    return merge_registry_cancers(
        matrix,
        registry,
        id_cols=context["id_cols"],
        rule_table=context["rule_table"],
        cancer_categories=rule["categories"],
        metastatic_category=rule["metastatic"],
        site_col=rule.get("site_col", "site_code"),
        metastatic_col=rule.get("metastatic_col", "metastatic"),
    )


_RULE_HANDLERS = {
    "complication_merge": (_complication_merge, ("uncomplicated", "complicated", "detector")),
    "mutual_exclusion": (_mutual_exclusion, ("keep", "clear")),
    "exclusion_suppression": (_exclusion_suppression, ("detector", "target")),
    "dominance": (_dominance, ("dominant", "subordinates")),
    "registry_merge": (_registry_merge, ("categories", "metastatic")),
}


def _referenced_columns(rule: dict, keys: tuple) -> list[str]:
    cols = []
    for key in keys:
        value = rule[key]
        cols.extend(value if isinstance(value, (list, tuple)) else [value])
    return cols


def validate_override_rules(rules: list[dict], columns: list[str]) -> None:
    """Raise ConfigurationError for unknown rule kinds or unknown columns."""
    available = set(columns)
    for position, rule in enumerate(rules):
        kind = rule.get("rule")
        if kind not in _RULE_HANDLERS:
            raise ConfigurationError(f"Override rule {position}: unknown kind {kind!r}")
        _, keys = _RULE_HANDLERS[kind]
        missing_keys = [k for k in keys if k not in rule]
        if missing_keys:
            raise ConfigurationError(
                f"Override rule {position} ({kind}): missing parameters {missing_keys}"
            )
        unknown = [c for c in _referenced_columns(rule, keys) if c not in available]
        if unknown:
            raise ConfigurationError(
                f"Override rule {position} ({kind}): unknown categories {unknown}"
            )


def resolve_overrides(
    matrix: pl.DataFrame,
    rules: list[dict],
    context: Optional[dict] = None,
) -> pl.DataFrame:
    """Apply override rules in order.

    Parameters
    ----------
    matrix : pl.DataFrame
        Dense indicator matrix (including any detector columns).
    rules : list[dict]
        Rule dicts, each with a "rule" kind key plus its parameters.
    context : dict, optional
        Run-time inputs needed by registry_merge: "registry", "id_cols",
        "rule_table".

    Returns
    -------
    pl.DataFrame
        Matrix after every rule has been applied.
    """
    validate_override_rules(rules, matrix.columns)
    context = context or {}
    for rule in rules:
        handler, _ = _RULE_HANDLERS[rule["rule"]]
        matrix = handler(matrix, rule, context)
    return matrix


# Accepted string encodings of the registry metastatic flag (upper-cased)
METASTATIC_TRUE_FLAGS = ("Y", "YES", "T", "TRUE", "1")
METASTATIC_FALSE_FLAGS = ("N", "NO", "F", "FALSE", "0", "")


def check_registry(
    registry: pl.DataFrame,
    id_cols: list[str],
    site_col: str = "site_code",
    metastatic_col: str = "metastatic",
) -> None:
    """Raise ConfigurationError if the registry columns are unusable.

    The metastatic flag may be boolean, numeric (non-zero is true) or a
    string from METASTATIC_TRUE_FLAGS / METASTATIC_FALSE_FLAGS in any case.
    """
    missing = [c for c in [*id_cols, site_col, metastatic_col] if c not in registry.columns]
    if missing:
        raise ConfigurationError(f"Registry input is missing columns: {missing}")

    dtype = registry.schema[metastatic_col]
    if dtype in (pl.Boolean, pl.Null) or dtype.is_numeric():
        return
    if dtype != pl.String:
        raise ConfigurationError(
            f"Registry column {metastatic_col!r} has unsupported type {dtype}"
        )
    values = (
        registry[metastatic_col].drop_nulls().str.strip_chars().str.to_uppercase().unique()
    )
    unknown = sorted(
        v for v in values.to_list() if v not in METASTATIC_TRUE_FLAGS + METASTATIC_FALSE_FLAGS
    )
    if unknown:
        raise ConfigurationError(
            f"Registry column {metastatic_col!r} has unrecognised flag values: {unknown}"
        )


def _metastatic_flag_expr(col: str, dtype: pl.DataType) -> pl.Expr:
    if dtype == pl.String:
        flag = (
            pl.col(col).str.strip_chars().str.to_uppercase()
            .is_in(list(METASTATIC_TRUE_FLAGS))
        )
    elif dtype.is_numeric():
        flag = pl.col(col) != 0
    else:
        flag = pl.col(col).cast(pl.Boolean)
    return flag.fill_null(False)


def merge_registry_cancers(
    matrix: pl.DataFrame,
    registry: pl.DataFrame,
    id_cols: list[str],
    rule_table: list,
    cancer_categories: list[str],
    metastatic_category: str,
    site_col: str = "site_code",
    metastatic_col: str = "metastatic",
) -> pl.DataFrame:
    """OR cancer-registry evidence into the diagnosis-derived cancer indicators.

    Registry rows carry the patient key, the ICD-10 code of the registered
    primary site, and a metastatic-extent flag. The site code is classified
    with the index rule table; hits in the cancer category group set that
    category, and a true metastatic flag sets the metastatic category.
    Registry evidence only ever sets indicators. Patients absent from the
    matrix are not added.
    """
    check_registry(registry, id_cols, site_col, metastatic_col)

    targets = [*cancer_categories, metastatic_category]
    target_table = [d for d in rule_table if d.category_id in targets]

    classified = classify_records(registry, rule_table, site_col)
    site_hits = classified.filter(pl.col(CATEGORY_COL).is_in(targets)).select(
        *id_cols, CATEGORY_COL
    )
    metastatic_hits = classified.filter(
        _metastatic_flag_expr(metastatic_col, registry.schema[metastatic_col])
    ).select(*id_cols, pl.lit(metastatic_category).alias(CATEGORY_COL))

    registry_matrix = build_indicator_matrix(
        pl.concat([site_hits, metastatic_hits]), target_table, id_cols
    ).rename({cid: cid + _REGISTRY_SUFFIX for cid in targets})

    merged = matrix.join(registry_matrix, on=id_cols, how="left", nulls_equal=True)
    return merged.with_columns(
        [
            pl.max_horizontal(
                pl.col(cid), pl.col(cid + _REGISTRY_SUFFIX).fill_null(0)
            ).cast(INDICATOR_DTYPE).alias(cid)
            for cid in targets
        ]
    ).drop([cid + _REGISTRY_SUFFIX for cid in targets])


def drop_columns(matrix: pl.DataFrame, columns: list[str]) -> pl.DataFrame:
    """Remove detector columns once resolution has finished."""
    return matrix.drop([c for c in columns if c in matrix.columns])
