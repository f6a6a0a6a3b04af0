"""
Cancer Site Codes
-----------------
Site-specific malignancy code sets for the C3 index.

For a primary cancer site, "other malignancy" is the master list of
malignancy prefixes minus the site's own primary prefixes, so the primary
tumour is not counted as a second pre-existing cancer. The difference is taken
over exact prefix strings, never numeric ranges.
"""

from config import SUPPORTED_CANCER_SITES
from features.rule_table import ConfigurationError

# Primary malignancy prefixes per site. LUNG, PROSTATE and HEADNECK are
# additions to the published C3 site list.
PRIMARY_MALIGNANCY = {
    "BLADDER": ("C67",),
    "BREAST": ("C50",),
    "COLON": ("C18", "C19"),
    "KIDNEY": ("C64", "C65"),
    "OVARIAN": ("C56",),
    "UTERINE": ("C53", "C54", "C55"),
    "RECTAL": ("C20",),
    "STOMACH": ("C16",),
    "LIVER": ("C22",),
    "LUNG": ("C34",),
    "PROSTATE": ("C61",),
    # Two non-adjacent stretches: lip/oral/pharynx and nasal/sinus/larynx
    "HEADNECK": ("C0", "C10", "C11", "C12", "C13", "C14", "C30", "C31", "C32"),
}

# Master list of commonly counted other malignancies
ALL_MALIGNANCY = (
    "C0",
    "C10", "C11", "C12", "C13", "C14", "C15", "C16", "C17", "C18", "C19",
    "C20", "C21", "C23", "C24", "C25", "C26",
    "C30", "C31", "C32", "C33", "C37", "C38", "C39",
    "C43", "C45", "C46", "C47", "C48", "C49",
    "C50", "C51", "C52", "C53", "C54", "C55", "C56", "C57", "C58",
    "C60", "C61", "C62", "C63", "C64", "C65", "C66", "C67", "C68", "C69",
    "C70", "C72", "C73", "C74", "C75",
    "C81", "C82", "C83", "C84", "C85", "C88",
    "C90", "C91", "C92", "C93", "C94", "C95",
)

# C3 categories whose weight is zeroed for a site: conditions that may be
# direct sequelae of the primary cancer itself
SITE_SUPPRESSED_CATEGORIES = {
    "COLON": ("anemia", "intestinal_disorders"),
    "RECTAL": ("anemia", "intestinal_disorders"),
    "LIVER": ("anemia", "coagulopathies", "upper_gi_disorders", "liver_disease"),
    "STOMACH": ("anemia", "coagulopathies", "upper_gi_disorders", "liver_disease"),
    "KIDNEY": ("renal_disease", "urinary_tract_disorder"),
    "BLADDER": ("renal_disease", "urinary_tract_disorder"),
}


def parse_cancer_site(value) -> str:
    """Normalise a cancer site argument; unsupported values are fatal."""
    site = value.strip().upper() if isinstance(value, str) else None
    if site not in SUPPORTED_CANCER_SITES:
        raise ConfigurationError(
            f"cancer_site {value!r} is not a supported cancer site "
            f"(expected one of: {', '.join(SUPPORTED_CANCER_SITES)})"
        )
    return site


def derive_site_codes(cancer_site: str) -> dict[str, tuple[str, ...]]:
    """Primary and other-malignancy prefix sets for a cancer site.

    Returns
    -------
    dict with keys:
        "primary" : tuple[str, ...]
        "other" : tuple[str, ...]  - ALL_MALIGNANCY minus primary, master order kept
    """
    site = parse_cancer_site(cancer_site)
    primary = PRIMARY_MALIGNANCY[site]
    other = tuple(p for p in ALL_MALIGNANCY if p not in primary)
    return {"primary": primary, "other": other}


def site_suppressed_categories(cancer_site: str) -> tuple[str, ...]:
    return SITE_SUPPRESSED_CATEGORIES.get(parse_cancer_site(cancer_site), ())
