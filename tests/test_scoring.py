"""
Tests for weight tables and the weighted index score.
"""

import sys
from pathlib import Path

import polars as pl
import pytest

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from features.rule_table import ConfigurationError
from scoring.score import categorize_score, score_category_expr, score_indicators
from scoring.weights import check_weight_table, suppress_weights


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def weights():
    return {"a": 0.5, "b": 1.25, "c": -0.25, "d": 0.0}


@pytest.fixture
def matrix():
    return pl.DataFrame({
        "patient_id": [1, 2, 3, 4],
        "a": [0, 1, 1, 0],
        "b": [0, 0, 1, 0],
        "c": [0, 0, 1, 1],
        "d": [0, 1, 1, 1],
    }).with_columns([pl.col(c).cast(pl.Int8) for c in "abcd"])


# ---------------------------------------------------------------------------
# Score category tests
# ---------------------------------------------------------------------------

class TestCategorizeScore:
    @pytest.mark.parametrize("score, expected", [
        (-0.5, 0),
        (0.0, 0),
        (0.01, 1),
        (1.0, 1),
        (1.5, 2),
        (2.0, 2),
        (2.0001, 3),
        (7.3, 3),
    ])
    def test_thresholds(self, score, expected):
        assert categorize_score(score) == expected

    def test_missing_score_stays_missing(self):
        assert categorize_score(None) is None
        assert categorize_score(float("nan")) is None

    def test_expression_matches_scalar(self):
        scores = [-1.0, 0.0, 0.5, 1.0, 1.7, 2.0, 2.5, None, float("nan")]
        df = pl.DataFrame({"s": scores}, schema={"s": pl.Float64})
        out = df.select(score_category_expr(pl.col("s")).alias("cat"))["cat"].to_list()
        assert out == [categorize_score(s) for s in scores]


# ---------------------------------------------------------------------------
# Weight table tests
# ---------------------------------------------------------------------------

class TestWeights:
    def test_missing_weight_rejected(self, weights):
        with pytest.raises(ConfigurationError, match="no coefficient"):
            check_weight_table(weights, ["a", "b", "e"])

    def test_zero_weight_allowed(self, weights):
        check_weight_table(weights, ["a", "d"])

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), "0.5", None, True])
    def test_non_numeric_weight_rejected(self, bad):
        with pytest.raises(ConfigurationError, match="finite"):
            check_weight_table({"a": bad}, ["a"])

    def test_suppress_weights_returns_copy(self, weights):
        suppressed = suppress_weights(weights, ["a", "b"])
        assert suppressed["a"] == 0.0 and suppressed["b"] == 0.0
        assert suppressed["c"] == weights["c"]
        assert weights["a"] == 0.5

    def test_suppress_unknown_category_rejected(self, weights):
        with pytest.raises(ConfigurationError):
            suppress_weights(weights, ["zzz"])


# ---------------------------------------------------------------------------
# Score tests
# ---------------------------------------------------------------------------

class TestScoreIndicators:
    def test_weighted_sum(self, matrix, weights):
        scored = score_indicators(matrix, weights, list("abcd"), "score", "cat")
        assert scored["score"].to_list() == pytest.approx([0.0, 0.5, 1.5, -0.25])
        assert scored["cat"].to_list() == [0, 1, 2, 0]

    def test_empty_patient_scores_zero(self, matrix, weights):
        scored = score_indicators(matrix, weights, list("abcd"), "score", "cat")
        assert scored.filter(pl.col("patient_id") == 1)["score"].item() == 0.0

    def test_linearity(self, matrix, weights):
        # Each indicator flip moves the score by exactly its weight
        base = score_indicators(matrix, weights, list("abcd"), "score", "cat")
        flipped = matrix.with_columns((1 - pl.col("b")).cast(pl.Int8).alias("b"))
        moved = score_indicators(flipped, weights, list("abcd"), "score", "cat")
        deltas = (moved["score"] - base["score"]).to_list()
        signs = [1 - 2 * b for b in matrix["b"].to_list()]
        assert deltas == pytest.approx([s * weights["b"] for s in signs])

    def test_suppressed_weight_keeps_indicator(self, matrix, weights):
        scored = score_indicators(
            matrix, suppress_weights(weights, ["a"]), list("abcd"), "score", "cat"
        )
        assert scored["a"].to_list() == matrix["a"].to_list()
        assert scored["score"].to_list() == pytest.approx([0.0, 0.0, 1.0, -0.25])

    def test_null_indicator_gives_null_score(self, weights):
        matrix = pl.DataFrame(
            {"patient_id": [1, 2], "a": [1, None], "b": [0, 1]},
            schema={"patient_id": pl.Int64, "a": pl.Int8, "b": pl.Int8},
        )
        scored = score_indicators(matrix, weights, ["a", "b"], "score", "cat")
        assert scored["score"].to_list()[1] is None
        assert scored["cat"].to_list() == [1, None]

    def test_missing_weight_is_fatal(self, matrix):
        with pytest.raises(ConfigurationError):
            score_indicators(matrix, {"a": 1.0}, list("abcd"), "score", "cat")
