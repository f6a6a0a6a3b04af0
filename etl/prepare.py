"""
Diagnosis Record Preparation
----------------------------
Caller-side selection of the records the index functions consume. The
engine itself never filters by code type or date.

  - select_diagnosis_codes: national collections diagnosis + event tables ->
    long-format ICD-10 principal/additional diagnoses with person ids
  - restrict_before: keep only records dated before a per-person reference
    event (e.g. the cancer admission) for the C3 pre-treatment window
"""

from typing import Optional

import polars as pl

from config import (
    DIAG_CLINICAL_CODE_COL,
    DIAG_SYS_CODE_COL,
    DIAG_TYPE_CODE_COL,
    ICD10_MIN_SYS_CODE,
    IDI_EVENT_COLS,
    IDI_ID_COLS,
    INCLUDED_DIAGNOSIS_TYPES,
)


def select_diagnosis_codes(
    diags: pl.DataFrame,
    events: pl.DataFrame,
    sys_code_col: str = DIAG_SYS_CODE_COL,
    type_code_col: str = DIAG_TYPE_CODE_COL,
    clinical_code_col: str = DIAG_CLINICAL_CODE_COL,
    id_cols: Optional[list[str]] = None,
    event_cols: Optional[list[str]] = None,
) -> pl.DataFrame:
    """Select ICD-10 A/B diagnosis codes and attach person identifiers.

    Parameters
    ----------
    diags : pl.DataFrame
        Diagnosis table, one row per coded diagnosis, keyed by event.
    events : pl.DataFrame
        Event table carrying person identifiers and event ids.
    sys_code_col : str
        Clinical coding system; values above ICD10_MIN_SYS_CODE are ICD-10.
    type_code_col : str
        Diagnosis type; only INCLUDED_DIAGNOSIS_TYPES are kept.
    clinical_code_col : str
        The ICD-10 code itself.
    id_cols : list[str], optional
        Person identifiers to carry. Defaults to config.IDI_ID_COLS.
    event_cols : list[str], optional
        Event identifiers used to link diags to events.

    Returns
    -------
    pl.DataFrame
        Distinct (person ids, code) rows.
    """
    id_cols = list(id_cols if id_cols is not None else IDI_ID_COLS)
    event_cols = list(event_cols if event_cols is not None else IDI_EVENT_COLS)

    event_ids = events.select(
        [c for c in [*id_cols, *event_cols] if c in events.columns]
    ).unique()
    join_on = [c for c in event_ids.columns if c in diags.columns]
    if not join_on:
        raise ValueError("diags and events share no identifier columns to join on")

    selected = diags.filter(
        (pl.col(sys_code_col).cast(pl.Int64, strict=False) > ICD10_MIN_SYS_CODE)
        & pl.col(type_code_col).is_in(sorted(INCLUDED_DIAGNOSIS_TYPES))
    )
    joined = selected.join(event_ids, on=join_on, how="left")

    keep = [c for c in [*id_cols, clinical_code_col] if c in joined.columns]
    return joined.select(keep).unique(maintain_order=True)


def restrict_before(
    records: pl.DataFrame,
    time_col: str,
    reference: pl.DataFrame,
    id_cols: list[str],
    reference_col: str,
    inclusive: bool = False,
) -> pl.DataFrame:
    """Keep records dated before each person's reference event.

    People without a reference date are dropped. `inclusive` decides whether
    records on the reference instant itself count as before it.
    """
    joined = records.join(
        reference.select(*id_cols, reference_col), on=id_cols, how="inner",
        nulls_equal=True,
    )
    if inclusive:
        before = pl.col(time_col) <= pl.col(reference_col)
    else:
        before = pl.col(time_col) < pl.col(reference_col)
    return joined.filter(before).drop(reference_col)
