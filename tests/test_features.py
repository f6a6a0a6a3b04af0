"""
Tests for the coding layer: rule tables, the prefix classifier, indicator
aggregation, cancer site code sets, override rules and the temporal union.
"""

import sys
from pathlib import Path

import polars as pl
import pytest

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import SUPPORTED_CANCER_SITES
from features.rule_table import (
    CategoryDefinition,
    ConfigurationError,
    find_overlapping_prefixes,
    make_rule_table,
    split_prefixes,
    validate_rule_table,
)
from features.classifier import classify_code, classify_records, normalize_code
from features.indicators import (
    assert_dense,
    build_indicator_matrix,
    check_input_columns,
    code_indicator_matrix,
)
from features.sites import (
    ALL_MALIGNANCY,
    PRIMARY_MALIGNANCY,
    derive_site_codes,
    parse_cancer_site,
    site_suppressed_categories,
)
from features.overrides import (
    check_registry,
    drop_columns,
    merge_registry_cancers,
    resolve_overrides,
    validate_override_rules,
)
from features.temporal import union_indicator_matrices


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def table():
    """Small rule table with a deliberate overlap: 'I2' shadows 'I21'."""
    return make_rule_table([
        ("broad", "Broad ischaemic", "I2"),
        ("narrow", "Narrow MI", "I21|I22"),
        ("diabetes", "Diabetes", ["E10", "E11"]),
    ], name="test table")


@pytest.fixture
def records():
    return pl.DataFrame({
        "patient_id": [1, 1, 1, 2, 2, 3, 4],
        "CLIN_CD": ["I219", "E119", "E119", "Z000", None, "e10.9", "  "],
    })


def _matrix(rows: dict) -> pl.DataFrame:
    """Build an Int8 indicator matrix keyed by patient_id."""
    return pl.DataFrame(rows).with_columns(
        [pl.col(c).cast(pl.Int8) for c in rows if c != "patient_id"]
    )


# ---------------------------------------------------------------------------
# Rule table tests
# ---------------------------------------------------------------------------

class TestRuleTable:
    def test_split_prefixes_accepts_strings_and_sequences(self):
        assert split_prefixes("I21|I22| I23") == ("I21", "I22", "I23")
        assert split_prefixes(["C18", "C19"]) == ("C18", "C19")

    def test_table_keeps_declaration_order(self, table):
        assert [d.category_id for d in table] == ["broad", "narrow", "diabetes"]
        assert isinstance(table[0], CategoryDefinition)

    def test_empty_table_rejected(self):
        with pytest.raises(ConfigurationError):
            make_rule_table([])

    def test_duplicate_category_rejected(self):
        with pytest.raises(ConfigurationError, match="duplicate"):
            make_rule_table([("a", "A", "I21"), ("a", "A again", "I22")])

    def test_blank_prefix_rejected(self):
        with pytest.raises(ConfigurationError, match="blank"):
            make_rule_table([("a", "A", "I21||I22")])

    def test_repeated_prefix_rejected(self):
        with pytest.raises(ConfigurationError, match="repeats"):
            make_rule_table([("a", "A", "I21|I21")])

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            make_rule_table([("", "Unnamed", "I21")])

    def test_prefixes_cleaned_like_codes(self):
        lowered = make_rule_table([("mi", "MI", "i21"), ("dm", "Diabetes", ["e11.9 "])])
        assert lowered[0].prefixes == ("I21",)
        assert lowered[1].prefixes == ("E119",)
        assert classify_code("I219", lowered) == "mi"
        assert classify_code("E11.9", lowered) == "dm"

    def test_uncleaned_prefix_rejected(self):
        with pytest.raises(ConfigurationError, match="cleaned form"):
            validate_rule_table([CategoryDefinition("mi", "MI", ("i21",))])
        with pytest.raises(ConfigurationError, match="cleaned form"):
            validate_rule_table([CategoryDefinition("mi", "MI", ("I21.9",))])

    def test_find_overlapping_prefixes(self, table):
        overlaps = find_overlapping_prefixes(table)
        assert ("I21", "broad", "narrow") in overlaps
        assert ("I22", "broad", "narrow") in overlaps
        assert all(later != "diabetes" for _, _, later in overlaps)


# ---------------------------------------------------------------------------
# Classifier tests
# ---------------------------------------------------------------------------

class TestClassifier:
    def test_normalize_code(self):
        assert normalize_code(" i21.9 ") == "I219"
        assert normalize_code("") is None
        assert normalize_code("   ") is None
        assert normalize_code(None) is None
        assert normalize_code(219) is None

    def test_first_declared_wins(self, table):
        # 'I219' matches both 'I2' and 'I21'; 'broad' is declared first
        assert classify_code("I219", table) == "broad"

    def test_matching_is_anchored(self, table):
        # 'E10' occurs inside the code but not at the start
        assert classify_code("ZE10", table) is None

    def test_no_match_and_malformed(self, table):
        assert classify_code("Z000", table) is None
        assert classify_code("", table) is None
        assert classify_code(None, table) is None

    def test_classify_records_matches_scalar(self, table, records):
        classified = classify_records(records, table, "CLIN_CD")
        expected = [classify_code(c, table) for c in records["CLIN_CD"].to_list()]
        assert classified["category"].to_list() == expected

    def test_classify_records_keeps_input_columns(self, table, records):
        classified = classify_records(records, table, "CLIN_CD")
        assert classified.columns == ["patient_id", "CLIN_CD", "category"]
        assert len(classified) == len(records)

    def test_verbose_reports_malformed(self, table, records, capsys):
        classify_records(records, table, "CLIN_CD", verbose=True)
        out = capsys.readouterr().out
        assert "Classified 7 records" in out
        assert "Skipped 2 blank or malformed codes" in out


# ---------------------------------------------------------------------------
# Indicator matrix tests
# ---------------------------------------------------------------------------

class TestIndicatorMatrix:
    def test_dense_including_unmatched_patients(self, table, records):
        matrix = code_indicator_matrix(records, table, "CLIN_CD", ["patient_id"])
        assert matrix["patient_id"].to_list() == [1, 2, 3, 4]
        assert matrix.columns == ["patient_id", "broad", "narrow", "diabetes"]
        assert_dense(matrix, ["broad", "narrow", "diabetes"])

        rows = {r["patient_id"]: r for r in matrix.iter_rows(named=True)}
        assert (rows[1]["broad"], rows[1]["narrow"], rows[1]["diabetes"]) == (1, 0, 1)
        # Patients with only unmatched or malformed codes: all zeros
        assert (rows[2]["broad"], rows[2]["narrow"], rows[2]["diabetes"]) == (0, 0, 0)
        assert (rows[4]["broad"], rows[4]["narrow"], rows[4]["diabetes"]) == (0, 0, 0)
        assert rows[3]["diabetes"] == 1

    def test_assert_dense_raises(self):
        with pytest.raises(AssertionError, match="Missing"):
            assert_dense(_matrix({"patient_id": [1], "a": [1]}), ["a", "b"])
        with pytest.raises(AssertionError, match="Non-binary"):
            assert_dense(_matrix({"patient_id": [1], "a": [2]}), ["a"])
        with pytest.raises(AssertionError, match="Null"):
            assert_dense(_matrix({"patient_id": [1, 2], "a": [1, None]}), ["a"])

    def test_null_key_component_groups_together(self, table):
        records = pl.DataFrame({
            "site": ["a", "a", "a"],
            "pid": [None, None, 1],
            "CLIN_CD": ["I219", "E119", "E119"],
        }, schema={"site": pl.Utf8, "pid": pl.Int64, "CLIN_CD": pl.Utf8})
        matrix = code_indicator_matrix(records, table, "CLIN_CD", ["site", "pid"])
        assert len(matrix) == 2
        row = matrix.filter(pl.col("pid").is_null()).row(0, named=True)
        assert (row["broad"], row["diabetes"]) == (1, 1)

    def test_repeated_codes_are_binary(self, table, records):
        matrix = code_indicator_matrix(records, table, "CLIN_CD", ["patient_id"])
        assert matrix.filter(pl.col("patient_id") == 1)["diabetes"].item() == 1

    def test_indicator_dtype(self, table, records):
        matrix = code_indicator_matrix(records, table, "CLIN_CD", ["patient_id"])
        assert matrix.schema["broad"] == pl.Int8

    def test_composite_key(self, table):
        records = pl.DataFrame({
            "site": ["a", "a", "b"],
            "pid": [1, 1, 1],
            "CLIN_CD": ["I219", "E119", "E110"],
        })
        matrix = code_indicator_matrix(records, table, "CLIN_CD", ["site", "pid"])
        assert len(matrix) == 2
        assert matrix.filter(pl.col("site") == "b")["broad"].item() == 0

    def test_missing_columns_rejected(self, records):
        with pytest.raises(ConfigurationError, match="missing"):
            check_input_columns(records, "DIAG", ["patient_id"])
        with pytest.raises(ConfigurationError):
            check_input_columns(records, "CLIN_CD", [])
        with pytest.raises(ConfigurationError):
            check_input_columns(records, "CLIN_CD", ["CLIN_CD"])

    def test_category_clashing_with_id_rejected(self, records):
        clash = make_rule_table([("patient_id", "Oops", "I21")])
        classified = classify_records(records, clash, "CLIN_CD")
        with pytest.raises(ConfigurationError, match="clash"):
            build_indicator_matrix(classified, clash, ["patient_id"])


# ---------------------------------------------------------------------------
# Cancer site tests
# ---------------------------------------------------------------------------

class TestSites:
    @pytest.mark.parametrize("site", SUPPORTED_CANCER_SITES)
    def test_other_is_master_minus_primary(self, site):
        codes = derive_site_codes(site)
        assert codes["primary"] == PRIMARY_MALIGNANCY[site]
        assert set(codes["other"]).isdisjoint(codes["primary"])
        assert set(codes["other"]) == set(ALL_MALIGNANCY) - set(codes["primary"])
        # Master order is kept
        assert list(codes["other"]) == [p for p in ALL_MALIGNANCY if p in codes["other"]]

    def test_colon_other_excludes_only_colon(self):
        other = derive_site_codes("COLON")["other"]
        assert "C18" not in other and "C19" not in other
        assert "C20" in other and "C17" in other

    def test_headneck_spans_two_stretches(self):
        other = derive_site_codes("HEADNECK")["other"]
        for prefix in ("C0", "C10", "C14", "C30", "C32"):
            assert prefix not in other
        assert "C15" in other and "C33" in other

    def test_site_is_case_insensitive(self):
        assert parse_cancer_site(" colon ") == "COLON"

    @pytest.mark.parametrize("value", ["PANCREAS", "", None, 3])
    def test_unsupported_site_rejected(self, value):
        with pytest.raises(ConfigurationError, match="not a supported cancer site"):
            derive_site_codes(value)

    def test_suppressed_categories(self):
        assert "anemia" in site_suppressed_categories("RECTAL")
        assert "renal_disease" in site_suppressed_categories("bladder")
        assert site_suppressed_categories("BREAST") == ()


# ---------------------------------------------------------------------------
# Override resolution tests
# ---------------------------------------------------------------------------

class TestOverrides:
    def test_complication_merge(self):
        matrix = _matrix({
            "patient_id": [1, 2, 3],
            "dm": [1, 1, 0],
            "dm_comp": [0, 0, 0],
            "detector": [1, 0, 1],
        })
        rule = {"rule": "complication_merge", "uncomplicated": "dm",
                "complicated": "dm_comp", "detector": "detector"}
        out = resolve_overrides(matrix, [rule])
        assert out["dm"].to_list() == [0, 1, 0]
        assert out["dm_comp"].to_list() == [1, 0, 0]

    def test_mutual_exclusion(self):
        matrix = _matrix({"patient_id": [1, 2], "dm": [1, 1], "dm_comp": [1, 0]})
        rule = {"rule": "mutual_exclusion", "keep": "dm_comp", "clear": "dm"}
        out = resolve_overrides(matrix, [rule])
        assert out["dm"].to_list() == [0, 1]
        assert out["dm_comp"].to_list() == [1, 0]

    def test_exclusion_suppression(self):
        matrix = _matrix({"patient_id": [1, 2], "htn": [1, 1], "excl": [1, 0]})
        rule = {"rule": "exclusion_suppression", "detector": "excl", "target": "htn"}
        assert resolve_overrides(matrix, [rule])["htn"].to_list() == [0, 1]

    def test_dominance(self):
        matrix = _matrix({
            "patient_id": [1, 2],
            "mets": [1, 0],
            "colorectal": [1, 1],
            "breast": [1, 0],
        })
        rule = {"rule": "dominance", "dominant": "mets",
                "subordinates": ["colorectal", "breast"]}
        out = resolve_overrides(matrix, [rule])
        assert out["colorectal"].to_list() == [0, 1]
        assert out["breast"].to_list() == [0, 0]
        assert out["mets"].to_list() == [1, 0]

    def test_rules_apply_in_order(self):
        # Merge produces dm_comp, which the following exclusion then reads
        matrix = _matrix({
            "patient_id": [1], "dm": [1], "dm_comp": [0], "detector": [1], "other": [1],
        })
        rules = [
            {"rule": "complication_merge", "uncomplicated": "dm",
             "complicated": "dm_comp", "detector": "detector"},
            {"rule": "exclusion_suppression", "detector": "dm_comp", "target": "other"},
        ]
        out = resolve_overrides(matrix, rules)
        assert out.row(0, named=True) == {
            "patient_id": 1, "dm": 0, "dm_comp": 1, "detector": 1, "other": 0,
        }

    def test_unknown_rule_kind_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown kind"):
            validate_override_rules([{"rule": "veto"}], ["a"])

    def test_unknown_category_rejected(self):
        rule = {"rule": "mutual_exclusion", "keep": "a", "clear": "zzz"}
        with pytest.raises(ConfigurationError, match="unknown categories"):
            validate_override_rules([rule], ["a", "b"])

    def test_missing_parameter_rejected(self):
        with pytest.raises(ConfigurationError, match="missing parameters"):
            validate_override_rules([{"rule": "dominance", "dominant": "a"}], ["a"])

    def test_registry_rule_without_registry_is_noop(self):
        matrix = _matrix({"patient_id": [1], "mets": [0], "breast": [0]})
        rule = {"rule": "registry_merge", "categories": ["breast"], "metastatic": "mets"}
        assert resolve_overrides(matrix, [rule]).equals(matrix)

    def test_drop_columns(self):
        matrix = _matrix({"patient_id": [1], "a": [1], "detector": [1]})
        assert drop_columns(matrix, ["detector", "absent"]).columns == ["patient_id", "a"]


class TestRegistryMerge:
    @pytest.fixture
    def cancer_table(self):
        return make_rule_table([
            ("colorectal", "Colorectal", "C18|C19|C20"),
            ("breast", "Breast", "C50"),
            ("mets", "Metastatic", "C77|C78|C79"),
            ("anemia", "Anemia", "D50"),
        ])

    def test_registry_sets_but_never_clears(self, cancer_table):
        matrix = _matrix({
            "patient_id": [1, 2, 3],
            "colorectal": [0, 1, 0],
            "breast": [0, 0, 0],
            "mets": [0, 0, 0],
            "anemia": [0, 0, 0],
        })
        registry = pl.DataFrame({
            "patient_id": [1, 3, 3, 99],
            "site_code": ["C50.9", "C189", "D509", "C50"],
            "metastatic": [False, True, False, True],
        })
        out = merge_registry_cancers(
            matrix, registry, ["patient_id"], cancer_table,
            cancer_categories=["colorectal", "breast"], metastatic_category="mets",
        ).sort("patient_id")
        assert out["patient_id"].to_list() == [1, 2, 3]
        assert out["breast"].to_list() == [1, 0, 0]
        assert out["colorectal"].to_list() == [0, 1, 1]
        assert out["mets"].to_list() == [0, 0, 1]
        # Non-cancer site codes do not leak into other categories
        assert out["anemia"].to_list() == [0, 0, 0]
        assert out.columns == matrix.columns

    def test_missing_registry_columns_rejected(self, cancer_table):
        matrix = _matrix({"patient_id": [1], "colorectal": [0], "breast": [0], "mets": [0]})
        registry = pl.DataFrame({"patient_id": [1], "site_code": ["C50"]})
        with pytest.raises(ConfigurationError, match="Registry"):
            merge_registry_cancers(
                matrix, registry, ["patient_id"], cancer_table,
                cancer_categories=["breast"], metastatic_category="mets",
            )

    @pytest.mark.parametrize("flags", [
        ["Y", "n", None],
        [" yes", "NO", ""],
        ["TRUE", "false", "f"],
        [1, 0, None],
        [2.0, 0.0, 0.0],
    ])
    def test_metastatic_flag_encodings(self, cancer_table, flags):
        matrix = _matrix({"patient_id": [1, 2, 3], "breast": [0, 0, 0], "mets": [0, 0, 0]})
        registry = pl.DataFrame({
            "patient_id": [1, 2, 3],
            "site_code": ["C61", "C61", "C61"],
            "metastatic": flags,
        })
        out = merge_registry_cancers(
            matrix, registry, ["patient_id"], cancer_table,
            cancer_categories=["breast"], metastatic_category="mets",
        ).sort("patient_id")
        assert out["mets"].to_list() == [1, 0, 0]

    def test_unrecognised_metastatic_flag_rejected(self):
        registry = pl.DataFrame({
            "patient_id": [1, 2],
            "site_code": ["C61", "C50"],
            "metastatic": ["Y", "maybe"],
        })
        with pytest.raises(ConfigurationError, match="'metastatic'.*MAYBE"):
            check_registry(registry, ["patient_id"])

    def test_unsupported_metastatic_dtype_rejected(self):
        registry = pl.DataFrame({
            "patient_id": [1],
            "site_code": ["C61"],
            "metastatic": [[1]],
        })
        with pytest.raises(ConfigurationError, match="unsupported type"):
            check_registry(registry, ["patient_id"])

    def test_null_key_component_matches(self, cancer_table):
        matrix = pl.DataFrame(
            {"site": ["a", "a"], "pid": [None, 1], "breast": [0, 0], "mets": [0, 0]},
            schema={"site": pl.Utf8, "pid": pl.Int64, "breast": pl.Int8, "mets": pl.Int8},
        )
        registry = pl.DataFrame(
            {"site": ["a"], "pid": [None], "site_code": ["C50"], "metastatic": [True]},
            schema={"site": pl.Utf8, "pid": pl.Int64, "site_code": pl.Utf8,
                    "metastatic": pl.Boolean},
        )
        out = merge_registry_cancers(
            matrix, registry, ["site", "pid"], cancer_table,
            cancer_categories=["breast"], metastatic_category="mets",
        )
        row = out.filter(pl.col("pid").is_null()).row(0, named=True)
        assert (row["breast"], row["mets"]) == (1, 1)
        assert out.filter(pl.col("pid") == 1)["breast"].item() == 0


# ---------------------------------------------------------------------------
# Temporal union tests
# ---------------------------------------------------------------------------

class TestTemporalUnion:
    def test_full_outer_union(self):
        all_time = _matrix({"patient_id": [1, 2], "a": [1, 0], "b": [0, 1]})
        pre = _matrix({"patient_id": [2, 3], "p": [1, 1]})
        out = union_indicator_matrices(all_time, pre, ["patient_id"])

        assert out.columns == ["patient_id", "a", "b", "p"]
        assert out["patient_id"].to_list() == [1, 2, 3]
        assert out["a"].to_list() == [1, 0, 0]
        assert out["b"].to_list() == [0, 1, 0]
        assert out["p"].to_list() == [0, 1, 1]
        assert_dense(out, ["a", "b", "p"])

    def test_overlapping_namespaces_rejected(self):
        all_time = _matrix({"patient_id": [1], "a": [1]})
        pre = _matrix({"patient_id": [1], "a": [0]})
        with pytest.raises(ConfigurationError, match="overlap"):
            union_indicator_matrices(all_time, pre, ["patient_id"])

    def test_null_key_matched_across_windows(self):
        all_time = _matrix({"patient_id": [None, 1], "a": [1, 1]})
        pre = pl.DataFrame(
            {"patient_id": [None], "p": [1]},
            schema={"patient_id": pl.Int64, "p": pl.Int8},
        )
        out = union_indicator_matrices(all_time, pre, ["patient_id"])

        assert out.height == 2
        null_row = out.filter(pl.col("patient_id").is_null()).row(0, named=True)
        assert (null_row["a"], null_row["p"]) == (1, 1)
        assert out.filter(pl.col("patient_id") == 1)["p"].item() == 0
