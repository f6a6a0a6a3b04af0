"""
Comorbidity Index Configuration
-------------------------------
Central configuration for paths, input column defaults, and scoring constants.
Index-specific code lists and weights live in indices/.
"""

from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent
DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

# ---------------------------------------------------------------------------
# Input columns
# ---------------------------------------------------------------------------
# Person-level identifiers (never per-event ids: history is pooled per person)
DEFAULT_ID_COLS = ("MASTER_ENC", "snz_uid", "snz_moh_uid")
DEFAULT_CLINICAL_CODE_COL = "CLIN_CD"

# Column added by the classifier to long-format records
CATEGORY_COL = "category"

# ---------------------------------------------------------------------------
# Cancer sites (C3)
# ---------------------------------------------------------------------------
SUPPORTED_CANCER_SITES = (
    "BLADDER",
    "BREAST",
    "COLON",
    "KIDNEY",
    "OVARIAN",
    "UTERINE",
    "RECTAL",
    "STOMACH",
    "LIVER",
    "LUNG",
    "PROSTATE",
    "HEADNECK",
)

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
# score <= 0 -> 0, <= 1 -> 1, <= 2 -> 2, > 2 -> 3
SCORE_CATEGORY_CUTPOINTS = (0.0, 1.0, 2.0)

# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
MAX_COLUMN_NAME_LENGTH = 32
COLUMN_NAME_REPLACE_CHARS = (" ", ":")

# ---------------------------------------------------------------------------
# IDI national collections preparation
# ---------------------------------------------------------------------------
DIAG_SYS_CODE_COL = "moh_dia_clinical_sys_code"
DIAG_TYPE_CODE_COL = "moh_dia_diagnosis_type_code"
DIAG_CLINICAL_CODE_COL = "moh_dia_clinical_code"
IDI_ID_COLS = ("snz_uid", "snz_moh_uid")
IDI_EVENT_COLS = ("moh_evt_event_id_nbr",)

# Clinical coding systems above this value are ICD-10 editions
ICD10_MIN_SYS_CODE = 6
# A = principal diagnosis, B = other relevant diagnosis
INCLUDED_DIAGNOSIS_TYPES = {"A", "B"}

# ---------------------------------------------------------------------------
# Synthetic cohort
# ---------------------------------------------------------------------------
RANDOM_SEED = 42
SYNTHETIC_CODES_PER_PATIENT = (0, 12)   # inclusive range of codes drawn
SYNTHETIC_NOISE_FRAC = 0.3              # share of codes matching no category
SYNTHETIC_MALFORMED_FRAC = 0.02         # share of blank/null codes
