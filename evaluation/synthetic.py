"""
Synthetic Diagnosis Generator
-----------------------------
Generates long-format synthetic diagnosis histories for exercising the index
pipelines without real data.

Each patient draws a random number of codes. Most are built from the prefixes
of a rule table (prefix + random trailing digits, so they match exactly one
declared prefix), a share are noise codes that match no category, and a few
are blank or null to mimic malformed records. Patients who draw no codes keep
a single null-code row so they still appear in the input.
"""

import numpy as np
import polars as pl

from config import (
    DEFAULT_CLINICAL_CODE_COL,
    RANDOM_SEED,
    SYNTHETIC_CODES_PER_PATIENT,
    SYNTHETIC_MALFORMED_FRAC,
    SYNTHETIC_NOISE_FRAC,
)

# Chapters with no category in the M3 or C3 tables
NOISE_PREFIXES = ["R69", "Z00", "S01", "V43", "W19", "O80"]

CODE_LENGTH = 4


def _complete_code(prefix: str, rng: np.random.Generator) -> str:
    """Pad a prefix with random digits up to CODE_LENGTH characters."""
    n_digits = max(CODE_LENGTH - len(prefix), 0)
    return prefix + "".join(str(d) for d in rng.integers(0, 10, size=n_digits))


def generate_synthetic_diagnoses(
    rule_table: list,
    n_patients: int = 500,
    seed: int = RANDOM_SEED,
    codes_per_patient: tuple = SYNTHETIC_CODES_PER_PATIENT,
    noise_frac: float = SYNTHETIC_NOISE_FRAC,
    malformed_frac: float = SYNTHETIC_MALFORMED_FRAC,
    id_col: str = "patient_id",
    code_col: str = DEFAULT_CLINICAL_CODE_COL,
) -> pl.DataFrame:
    """Generate a synthetic long-format diagnosis table.

    Parameters
    ----------
    rule_table : list[CategoryDefinition]
        Categories to draw matching codes from.
    n_patients : int
        Number of patients.
    seed : int
        Random seed for reproducibility.
    codes_per_patient : tuple
        (min, max) inclusive number of codes per patient.
    noise_frac : float
        Probability that a code is drawn from NOISE_PREFIXES.
    malformed_frac : float
        Probability that a code is blank or null.
    id_col, code_col : str
        Output column names.

    Returns
    -------
    pl.DataFrame
        Columns id_col (int) and code_col (str, nullable).
    """
    rng = np.random.default_rng(seed)
    lo, hi = codes_per_patient

    ids = []
    codes = []
    for patient in range(1, n_patients + 1):
        n_codes = int(rng.integers(lo, hi + 1))
        if n_codes == 0:
            ids.append(patient)
            codes.append(None)
            continue

        for _ in range(n_codes):
            u = rng.random()
            if u < malformed_frac:
                code = None if rng.random() < 0.5 else "  "
            elif u < malformed_frac + noise_frac:
                code = _complete_code(NOISE_PREFIXES[rng.integers(len(NOISE_PREFIXES))], rng)
            else:
                definition = rule_table[rng.integers(len(rule_table))]
                prefix = definition.prefixes[rng.integers(len(definition.prefixes))]
                code = _complete_code(prefix, rng)
            ids.append(patient)
            codes.append(code)

    return pl.DataFrame(
        {id_col: ids, code_col: codes},
        schema={id_col: pl.Int64, code_col: pl.Utf8},
    )
