"""
Weight Tables
-------------
Category id -> coefficient mappings for index scores.

A weight of exactly 0 is a legitimate value (non-contributory or
site-suppressed categories); a category missing from the table is an error.
"""

import math

from features.rule_table import ConfigurationError


def check_weight_table(weights: dict[str, float], category_ids: list[str]) -> None:
    """Raise ConfigurationError unless every category has a finite weight."""
    missing = [c for c in category_ids if c not in weights]
    if missing:
        raise ConfigurationError(f"Weight table has no coefficient for: {missing}")
    for cid in category_ids:
        value = weights[cid]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ConfigurationError(f"Weight for {cid!r} is not a finite number: {value!r}")


def suppress_weights(weights: dict[str, float], categories) -> dict[str, float]:
    """Return a copy of `weights` with the named coefficients set to 0.

    The indicators themselves are untouched, so the raw value stays
    available for inspection while contributing nothing to the score.
    """
    unknown = [c for c in categories if c not in weights]
    if unknown:
        raise ConfigurationError(f"Cannot suppress weights for unknown categories: {unknown}")
    suppressed = dict(weights)
    for cid in categories:
        suppressed[cid] = 0.0
    return suppressed
