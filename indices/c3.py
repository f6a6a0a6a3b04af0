"""
C3 Cancer Care Comorbidity Index
--------------------------------
Code lists and weights for the C3 index, and the function that scores a
cancer cohort with it.

C3 codes two windows of each person's history:
  - the full lookback window, against the all-time conditions
  - the window before the cancer admission, against the pre-treatment
    conditions (conditions that could otherwise be sequelae of the cancer)

The pre-treatment "other malignancy" category depends on the primary cancer
site, and for some sites the weights of conditions that may be caused by the
cancer itself are zeroed.
"""

from typing import Optional

import polars as pl

from config import DEFAULT_CLINICAL_CODE_COL, DEFAULT_ID_COLS
from etl.output import format_index_output
from features.indicators import check_input_columns, code_indicator_matrix
from features.overrides import resolve_overrides, validate_override_rules
from features.rule_table import ConfigurationError, category_ids, make_rule_table
from features.sites import derive_site_codes, parse_cancer_site, site_suppressed_categories
from features.temporal import union_indicator_matrices
from scoring.score import score_indicators
from scoring.weights import check_weight_table, suppress_weights

# ---------------------------------------------------------------------------
# All-time conditions (priority order)
# ---------------------------------------------------------------------------
C3_CONDITIONS = make_rule_table([
    ("peripheral_vascular_disease", "Peripheral vascular disease",
     "I70|I71|I720|I731|I738|I739|I771|K551|K552|K558|K559"),
    ("venous_insufficiency", "Venous insufficiency",
     "I830|I832|I872"),
    ("cerebrovascular_disease", "Cerebrovascular disease",
     "G45|G46|I60|I61|I62|I63|I64|I65|I66|I67|I69"),
    ("dementia", "Dementia",
     "F00|F01|F020|F021|F022|F023|F03|F051|G30|G310|G311"),
    ("copd_and_asthma", "COPD and asthma",
     "E84|J40|J41|J42|J43|J44|J45|J46|J47|J60|J61|J62|J63|J64|J65|J66|J67|J684|"
     "J701|J703|J84|J961|J980|J982|J983|J984"),
    ("connective_tissue_disorders", "Connective tissue disorders",
     "L93|M05|M06|M08|M120|M123|M30|M31|M32|M33|M34|M350|M351|M352|M353|M354|"
     "M355|M356|M358|M359"),
    ("upper_gi_disorders", "Upper GI disorders",
     "K220|K221|K224|K225|K228|K229|K25|K26|K27|K28|K311|K312|K314|K316"),
    ("diabetes_no_complications", "Diabetes no complications",
     "E100|E101|E109|E110|E111|E119|E120|E121|E129|E130|E131|E139|E140|E141|E149"),
    ("diabetes_with_complications", "Diabetes with complications",
     "E102|E103|E104|E105|E106|E107|E108|E112|E113|E114|E115|E116|E117|E118|"
     "E122|E123|E124|E125|E126|E127|E128|E132|E133|E134|E135|E136|E137|E138|"
     "E142|E143|E144|E145|E146|E147|E148"),
    ("paralysis", "Paralysis",
     "G041|G114|G800|G801|G802|G81|G82|G830|G831|G832|G833|G834|G839"),
    ("renal_disease", "Renal disease",
     "I120|I131|N032|N033|N034|N035|N036|N037|N038|N039|N042|N043|N044|N045|N046|"
     "N047|N048|N049|N052|N053|N054|N055|N056|N057|N058|N059|N11|N18|N19|N250|"
     "N258|N259|Z49|Z940|Z992"),
    ("liver_disease", "Liver disease moderate or severe",
     "I85|I864|I982|K70|K711|K713|K714|K715|K717|K721|K729|K73|K74|K760|K762|K763|"
     "K764|K765|K766|K767|K768|K769|Z944"),
    ("angina", "Angina",
     "I20"),
    ("cardiac_valve_disorders", "Cardiac valve disorders",
     "I05|I06|I07|I08|I091|I098|I34|I35|I36|I37|I38|Q230|Q231|Q232|Q233|Q238|"
     "Q239|T820|Z952|Z953|Z954"),
    ("inflammatory_bowel_disease", "Inflammatory bowel disease",
     "K50|K51|K522|K528|K529"),
    ("neurological_excl_epilepsy", "Neurological excl epilepsy",
     "G10|G110|G111|G112|G113|G118|G119|G12|G13|G20|G21|G23|G255|G312|G318|G319|"
     "G35|G36|G37|G90|G934|R470"),
    ("epilepsy", "Epilepsy",
     "G400|G401|G402|G403|G404|G406|G407|G408|G409|G41"),
    ("peripheral_nerve_or_muscular", "Peripheral nerve or muscular disorder",
     "G60|G61|G620|G621|G622|G628|G629|G64|G70|G71|G720|G721|G722|G723|G724|G728|"
     "G729|G731"),
    ("major_psychiatric_disorders", "Major psychiatric disorders",
     "F20|F22|F25|F28|F29|F302|F31|F321|F322|F323|F328|F329|F33|F39"),
    ("coagulopathies", "Coagulopathies and other blood disorders",
     "D55|D56|D57|D58|D590|D591|D592|D593|D594|D598|D599|D60|D61|D64|D66|D67|D680|"
     "D681|D682|D688|D689|D691|D692|D693|D694|D696|D698|D699|D70|D71|D72|D74|D750|"
     "D752|D758|D759"),
    ("obesity", "Obesity",
     "E66"),
    ("alcohol_abuse", "Alcohol abuse",
     "F101|F102|F103|F104|F105|F106|F107|F108|F109|K292|Z502|Z714"),
    ("endocrine_disorders", "Endocrine disorders",
     "E01|E02|E03|E05|E062|E063|E065|E07|E163|E164|E168|E169|E20|E210|E212|E213|"
     "E214|E215|E22|E230|E232|E233|E236|E237|E240|E241|E243|E244|E248|E249|E25|"
     "E26|E27|E31|E32|E345|E348|E349"),
    ("urinary_tract_disorder", "Urinary tract disorder",
     "N301|N302|N31|N32|N35|N36"),
    ("osteoporosis_and_bone_disorders", "Osteoporosis and bone disorders",
     "M80|M810|M811|M815|M818|M819|M831|M832|M833|M834|M835|M838|M839|M85|M863|"
     "M864|M865|M866|M88"),
    ("metabolic_disorder", "Metabolic disorder",
     "E70|E71|E72|E74|E75|E76|E77|E78|E791|E798|E799|E80|E83|E85|E88"),
    ("chronic_viral_hepatitis", "Chronic viral hepatitis",
     "B18|B942|Z225"),
    ("sleep_disorder", "Sleep disorder",
     "F51|G470|G471|G472|G473"),
    ("inner_ear_disorders", "Inner ear disorders",
     "H80|H81|H83|H90|H910|H911|H913|H918|H919|H930|H931|H932|H933"),
    ("eye_problems", "Eye problems",
     "H16|H181|H184|H185|H186|H201|H212|H301|H311|H312|H313|H314|H330|H332|H333|"
     "H334|H335|H34|H35|H43|H46|H47|H49|H50|H51|H530|H531|H532|H533|H534|H536|"
     "H538|H539|H54|Q12|Q13|Q14|Q15"),
    ("other_cardiac_conditions", "Other cardiac conditions",
     "I248|I249|I250|I251|I253|I254|I256|I258|I259|I310|I311|I421|I422|I424"),
    ("intestinal_disorders", "Intestinal disorders",
     "K57|K592|K593|K90"),
    ("joint_and_spinal_disorders", "Joint and spinal disorders",
     "M07|M13|M150|M151|M152|M154|M158|M159|M400|M402|M403|M404|M405|M41|M42|M43|"
     "M45|M460|M461|M462|M47|M480|M481|M482|M485|M488|M489|G950|G951"),
], name="C3 conditions")

# ---------------------------------------------------------------------------
# Pre-treatment conditions; other_malignancy is filled in per cancer site
# ---------------------------------------------------------------------------
OTHER_MALIGNANCY_CATEGORY = "other_malignancy"

C3_PRE_TREATMENT_ENTRIES = [
    ("myocardial_infarction", "Myocardial infarction",
     "I21|I22|I23|I241|I252"),
    ("congestive_heart_failure", "Congestive heart failure",
     "I099|I110|I130|I132|I255|I420|I425|I426|I427|I428|I429|I43|I50"),
    (OTHER_MALIGNANCY_CATEGORY, "Other malignancy",
     None),
    ("hypertension", "Hypertension",
     "I10|I119|I129|I139"),
    ("cardiac_arrhythmia", "Cardiac arrhythmia",
     "I441|I442|I443|I456|I459|I47|I48|I49|T821|Z450|Z950"),
    ("pulmonary_circulation_disorder", "Pulmonary circulation disorder",
     "I26|I27|I280|I281|I288|I289"),
    ("anxiety_and_behavioral_disorders", "Anxiety and behavioral disorders",
     "F40|F41|F42|F44|F45|F48|F50|F55|F59|F60|F61|F63|F64|F65|F66|F68|F69"),
    ("anemia", "Anemia",
     "D50|D51|D52|D53"),
    ("nutritional_disorders", "Nutritional disorders",
     "E40|E41|E42|E43|E44|E45|E46|E50|E51|E52|E53|E54|E55|E56|E58|E59|E60|E61|"
     "E63|E64"),
]

C3_OVERRIDE_RULES = [
    {"rule": "mutual_exclusion",
     "keep": "diabetes_with_complications",
     "clear": "diabetes_no_complications"},
]

C3_WEIGHTS = {
    "alcohol_abuse": 1.08,
    "anemia": 0.59,
    "angina": 0.51,
    "anxiety_and_behavioral_disorders": 0.57,
    "cardiac_arrhythmia": 0.77,
    "cardiac_valve_disorders": 1.10,
    "cerebrovascular_disease": 1.09,
    "chronic_viral_hepatitis": 0.39,
    "coagulopathies": 0.75,
    "congestive_heart_failure": 1.26,
    "connective_tissue_disorders": 0.51,
    "copd_and_asthma": 1.09,
    "dementia": 1.35,
    "diabetes_no_complications": -0.03,
    "diabetes_with_complications": 0.88,
    "endocrine_disorders": 0.77,
    "epilepsy": 1.04,
    "eye_problems": 0.63,
    "hypertension": 0.72,
    "inflammatory_bowel_disease": 0.52,
    "inner_ear_disorders": 0.54,
    "intestinal_disorders": 0.11,
    "joint_and_spinal_disorders": 0.69,
    "liver_disease": 0.92,
    "major_psychiatric_disorders": 0.79,
    "metabolic_disorder": 0.61,
    "myocardial_infarction": 0.93,
    "neurological_excl_epilepsy": 1.06,
    "nutritional_disorders": 1.16,
    "obesity": 0.83,
    "osteoporosis_and_bone_disorders": 0.49,
    "other_cardiac_conditions": 0.62,
    "other_malignancy": 0.17,
    "paralysis": 1.03,
    "peripheral_nerve_or_muscular": 1.20,
    "peripheral_vascular_disease": 0.98,
    "pulmonary_circulation_disorder": 0.95,
    "renal_disease": 1.38,
    "sleep_disorder": 1.41,
    "upper_gi_disorders": 0.11,
    "urinary_tract_disorder": 0.12,
    "venous_insufficiency": 0.70,
}

C3_COLUMN_PREFIX = "C3_"
C3_SCORE_COL = "C3score_allsites"
C3_CATEGORY_COL = "C3cat_allsites"


def c3_pre_treatment_conditions(cancer_site: str) -> list:
    """Pre-treatment rule table with other_malignancy derived for the site."""
    other = derive_site_codes(cancer_site)["other"]
    entries = [
        (cid, label, other if cid == OTHER_MALIGNANCY_CATEGORY else prefixes)
        for cid, label, prefixes in C3_PRE_TREATMENT_ENTRIES
    ]
    return make_rule_table(entries, name="C3 pre-treatment conditions")


def c3_site_weights(cancer_site: str) -> dict[str, float]:
    """C3 weights with the site's suppressed conditions zeroed."""
    return suppress_weights(C3_WEIGHTS, site_suppressed_categories(cancer_site))


def c3index_scoring(
    records: pl.DataFrame,
    records_precancer: pl.DataFrame,
    cancer_site: str,
    clinical_code_col: str = DEFAULT_CLINICAL_CODE_COL,
    id_cols: Optional[list[str]] = None,
    return_condition_cols: bool = True,
    return_score: bool = True,
    verbose: bool = False,
) -> pl.DataFrame:
    """Code and score a cancer cohort with the C3 index.

    Parameters
    ----------
    records : pl.DataFrame
        Long-format ICD-10 codes for all events in the lookback period.
    records_precancer : pl.DataFrame
        The same history restricted to events before the cancer admission.
        The boundary at the cancer date is the caller's choice.
    cancer_site : str
        Primary cancer site, one of config.SUPPORTED_CANCER_SITES (any case).
    clinical_code_col : str
        Column holding the ICD-10 codes in both frames.
    id_cols : list[str], optional
        Person identifier column(s). Defaults to config.DEFAULT_ID_COLS.
    return_condition_cols : bool
        Include the condition indicator columns.
    return_score : bool
        Include C3score_allsites and C3cat_allsites.
    verbose : bool
        Print progress.

    Returns
    -------
    pl.DataFrame
        One row per person found in either window, condition columns in
        alphabetical order.
    """
    if not return_condition_cols and not return_score:
        raise ConfigurationError(
            "return_condition_cols and return_score are both False: nothing to compute"
        )
    site = parse_cancer_site(cancer_site)
    id_cols = list(id_cols if id_cols is not None else DEFAULT_ID_COLS)
    check_input_columns(records, clinical_code_col, id_cols)
    check_input_columns(records_precancer, clinical_code_col, id_cols)

    pre_treatment_conditions = c3_pre_treatment_conditions(site)
    condition_ids = category_ids(C3_CONDITIONS) + category_ids(pre_treatment_conditions)
    weights = c3_site_weights(site)
    check_weight_table(weights, condition_ids)
    validate_override_rules(C3_OVERRIDE_RULES, id_cols + condition_ids)

    if verbose:
        print(f"C3 ({site}): coding {len(records):,} all-time and "
              f"{len(records_precancer):,} pre-treatment records")

    all_time = code_indicator_matrix(
        records, C3_CONDITIONS, clinical_code_col, id_cols, verbose=verbose
    )
    pre_treatment = code_indicator_matrix(
        records_precancer, pre_treatment_conditions, clinical_code_col, id_cols,
        verbose=verbose,
    )
    matrix = union_indicator_matrices(all_time, pre_treatment, id_cols)
    matrix = resolve_overrides(matrix, C3_OVERRIDE_RULES)

    scored = score_indicators(
        matrix, weights, condition_ids, C3_SCORE_COL, C3_CATEGORY_COL
    )

    if verbose:
        suppressed = site_suppressed_categories(site)
        if suppressed:
            print(f"  Weights zeroed for {site}: {', '.join(suppressed)}")
        print(f"  Scored {len(scored):,} people, mean {C3_SCORE_COL} "
              f"{scored[C3_SCORE_COL].mean() or 0.0:.3f}")

    return format_index_output(
        scored,
        id_cols=id_cols,
        rule_tables=[C3_CONDITIONS, pre_treatment_conditions],
        column_prefix=C3_COLUMN_PREFIX,
        score_cols=[C3_SCORE_COL, C3_CATEGORY_COL],
        return_condition_cols=return_condition_cols,
        return_score=return_score,
        sort_condition_cols=True,
    )
