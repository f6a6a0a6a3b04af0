"""
M3 Multimorbidity Index
-----------------------
Code lists, override rules and weights for the M3 index, and the function
that scores a long-format diagnosis history with it.

Steps:
  1. Code each record to at most one of 61 M3 conditions
  2. Code the same records against the diabetes-complication detector and
     the osteoporosis/hypertension exclusion detectors
  3. Resolve complications and exclusions, merge cancer-registry evidence,
     let metastatic cancer dominate the site-specific cancers
  4. Score and categorise
"""

from typing import Optional

import polars as pl

from config import DEFAULT_CLINICAL_CODE_COL, DEFAULT_ID_COLS
from etl.output import format_index_output
from features.indicators import check_input_columns, code_indicator_matrix
from features.overrides import (
    check_registry,
    drop_columns,
    resolve_overrides,
    validate_override_rules,
)
from features.rule_table import ConfigurationError, category_ids, make_rule_table
from scoring.score import score_indicators
from scoring.weights import check_weight_table

# ---------------------------------------------------------------------------
# Conditions (priority order)
# ---------------------------------------------------------------------------
M3_CONDITIONS = make_rule_table([
    ("myocardial_infarction", "Myocardial infarction",
     "I21|I22|I23|I241|I252"),
    ("congestive_heart_failure", "Congestive heart failure",
     "I099|I110|I130|I132|I255|I420|I425|I426|I427|I428|I429|I43|I50"),
    ("peripheral_vascular", "Peripheral vascular",
     "I70|I731|I738|I739|I74|I771|K551|K552|K558|K559"),
    ("aortic_aneurysm", "Aortic and other aneurysms",
     "I71|I72"),
    ("venous_insufficiency", "Venous insufficiency",
     "I830|I832|I872"),
    ("cerebrovascular_disease", "Cerebrovascular disease",
     "I60|I61|I62|I63|I64|I65|I66|I67|I69|G45|G46"),
    ("dementia", "Dementia",
     "F00|F01|F020|F021|F022|F023|F03|F051|G30|G310|G311"),
    ("brain_damage_disorders", "Mental and behavioural disorders due to brain damage",
     "F04|F06|F070|F071|F078|F079|F09|G931"),
    ("chronic_pulmonary", "Chronic pulmonary",
     "E84|J40|J41|J42|J43|J44|J45|J46|J47|J60|J61|J62|J63|J64|J65|J66|J67|J684|"
     "J701|J703|J84|J961|J980|J982|J983|J984"),
    ("connective_tissue", "Connective tissue",
     "L93|M05|M06|M08|M120|M123|M30|M31|M32|M33|M34|M350|M351|M352|M353|M354|"
     "M355|M356|M358|M359"),
    ("gi_ulcer_upper_gi", "GI ulcer upper GI",
     "K220|K221|K224|K225|K228|K229|K25|K26|K27|K28|K311|K312|K314|K316"),
    ("diabetes_uncomplicated", "Diabetes uncomplicated",
     "E100|E101|E109|E110|E111|E119|E120|E121|E129|E130|E131|E139|E140|E141|E149"),
    ("diabetes_complicated", "Diabetes complicated",
     "E102|E103|E104|E105|E106|E107|E108|E112|E113|E114|E115|E116|E117|E118|"
     "E122|E123|E124|E125|E126|E127|E128|E132|E133|E134|E135|E136|E137|E138|"
     "E142|E143|E144|E145|E146|E147|E148"),
    ("paralysis", "Paralysis",
     "G041|G114|G800|G801|G802|G81|G82|G830|G831|G832|G833|G834|G839"),
    ("chronic_renal", "Chronic renal",
     "I120|I129|I131|I139|Q60|Q611|Q612|Q613|N032|N033|N034|N035|N036|N037|N038|"
     "N039|N042|N043|N044|N045|N046|N047|N048|N049|N052|N053|N054|N055|N056|N057|"
     "N058|N059|N11|N18|N19|N250|N258|N259|Z49|Z940|Z992"),
    ("colorectal_cancer", "Colorectal cancer",
     "C18|C19|C20|C21"),
    ("breast_cancer", "Breast cancer",
     "C50"),
    ("prostate_cancer", "Prostate cancer",
     "C61"),
    ("lung_cancer", "Lung cancer",
     "C33|C34"),
    ("lymphomas_leukaemias", "Lymphomas and leukaemias",
     "C81|C82|C83|C84|C85|C91|C92|C93|C94|C95|C96"),
    ("upper_gi_cancers", "Upper gastrointestinal cancers",
     "C15|C16|C17|C22|C23|C24|C25"),
    ("malignant_melanoma", "Malignant melanoma",
     "C43"),
    ("gynaecological_cancers", "Gynaecological cancers",
     "C51|C52|C53|C54|C55|C56|C57|C58"),
    ("other_cancers", "Other cancers",
     "C0|C10|C11|C12|C13|C14|C26|C30|C31|C32|C37|C38|C39|C40|C41|C45|C46|C47|"
     "C48|C49|C60|C62|C63|C64|C65|C66|C67|C68|C69|C70|C71|C72|C73|C74|C75|C76|"
     "C88|C90"),
    ("metastatic_cancer", "Metastatic cancer",
     "C77|C78|C79"),
    ("liver_disease", "Liver disease: moderate or severe",
     "I85|I864|I982|K70|K711|K713|K714|K715|K717|K721|K729|K73|K74|K760|K762|K763|"
     "K764|K765|K766|K767|K768|K769|Z944"),
    ("aids", "AIDS",
     "B20|B21|B22|B23|B24|F024|Z21"),
    ("angina", "Angina",
     "I20"),
    ("hypertension_uncomplicated", "Hypertension uncomplicated",
     "I10"),
    ("cardiac_arrhythmia", "Cardiac arrhythmia",
     "I441|I442|I443|I456|I459|I47|I48|I49|T821|Z450|Z950"),
    ("pulmonary_circulation_disorder", "Pulmonary circulation disorder",
     "I26|I27|I280|I281|I288|I289"),
    ("cardiac_valve", "Cardiac valve",
     "I05|I06|I07|I08|I091|I098|I34|I35|I36|I37|I38|T820|Q230|Q231|Q232|Q233|"
     "Q238|Q239|Z952|Z953|Z954"),
    ("inflammatory_bowel_disease", "Bowel disease inflammatory",
     "K50|K51|K522|K528|K529"),
    ("other_neurological_disorders", "Other neurological disorders exc epilepsy",
     "G10|G110|G111|G112|G113|G118|G119|G12|G13|G20|G21|G23|G255|G312|G318|G319|"
     "G35|G36|G37|G90|G934|R470"),
    ("epilepsy", "Epilepsy",
     "G400|G401|G402|G403|G404|G406|G407|G408|G409|G41"),
    ("muscular_peripheral_nerve_disorder", "Muscular peripheral nerve disorder",
     "G60|G61|G620|G621|G622|G628|G629|G64|G70|G71|G720|G721|G722|G723|G724|G728|"
     "G729|G731"),
    ("major_psychiatric_disorder", "Major psychiatric disorder",
     "F20|F22|F25|F28|F29|F302|F31|F321|F322|F323|F328|F329|F33|F39"),
    ("anxiety_behavioural_disorders", "Anxiety and Behavioural disorders",
     "F40|F41|F42|F44|F45|F48|F50|F55|F59|F60|F61|F63|F64|F65|F66|F68|F69"),
    ("coagulopathy", "Coagulopathy and other blood disorder",
     "D55|D56|D57|D58|D590|D591|D592|D593|D594|D598|D599|D60|D61|D64|D66|D67|D680|"
     "D681|D682|D688|D689|D691|D692|D693|D694|D696|D698|D699|D70|D71|D72|D74|D750|"
     "D752|D758|D759"),
    ("anemia_deficiency", "Anemia deficiency",
     "D50|D51|D52|D53"),
    ("obesity", "Obesity",
     "E66"),
    ("alcohol_abuse", "Alcohol abuse",
     "F101|F102|F103|F104|F105|F106|F107|F108|F109|Z502|Z714"),
    ("drug_abuse", "Drug abuse",
     "F11|F12|F13|F14|F15|F16|F18|F19|Z503|Z715|Z722"),
    ("pancreatitis", "Pancreatitis",
     "K85|K860|K861|K868"),
    ("endocrine_disorder", "Endocrine disorder",
     "E01|E02|E03|E05|E062|E063|E065|E07|E163|E164|E168|E169|E20|E210|E212|E213|"
     "E214|E215|E22|E230|E232|E233|E236|E237|E240|E241|E243|E244|E248|E249|E25|"
     "E26|E27|E31|E32|E345|E348|E349"),
    ("urinary_tract_problem", "Urinary tract problem chronic",
     "N301|N302|N31|N32|N35|N36"),
    ("tuberculosis", "Tuberculosis",
     "A15|A16|A17|A18|A19|B90"),
    ("bone_disorders", "Bone disorders",
     "M80|M830|M831|M832|M833|M834|M835|M838|M839|M85|M863|M864|M865|M866|M88"),
    ("osteoporosis_uncomplicated", "Osteoporosis Uncomplicated",
     "M810|M811|M815|M818|M819"),
    ("immune_system_disorder", "Immune system disorder",
     "D80|D81|D82|D83|D84|D86|D89"),
    ("metabolic_disorder", "Metabolic disorder",
     "E70|E71|E72|E74|E75|E76|E77|E78|E791|E798|E799|E80|E83|E85"),
    ("mental_retardation", "Mental retardation",
     "F70|F71|F72|F73|F78|F79|F842|F843|F844|E000|E001|E002|E009|Q90"),
    ("chronic_viral_hepatitis", "Hepatitis Chronic viral",
     "B18|B942|Z225"),
    ("sleep_disorder", "Sleep disorder",
     "F51|G470|G471|G472|G473"),
    ("inner_ear_disorder", "Inner ear disorder",
     "H80|H81|H83|H90|H910|H911|H913|H918|H919|H930|H931|H932|H933"),
    ("chronic_infection_nos", "Infection Chronic NOS",
     "A30|A31|A52|B91|B92|B941|B948|B949"),
    ("malnutrition", "Malnutrition nutritional",
     "E40|E41|E42|E43|E44|E45|E46|E50|E51|E52|E53|E54|E55|E56|E58|E59|E60|E61|"
     "E63|E64"),
    ("eye_problem", "Eye problem long term",
     "H16|H181|H184|H185|H186|H201|H212|H301|H311|H312|H313|H314|H330|H332|H333|"
     "H334|H335|H34|H35|H43|H46|H47|H49|H50|H51|H530|H531|H532|H533|H534|H536|"
     "H538|H539|H54|Q12|Q13|Q14|Q15"),
    ("cardiac_disease_other", "Cardiac disease other",
     "I119|I248|I249|I250|I251|I253|I254|I256|I258|I259|I310|I311|I421|I422|I424"),
    ("intestinal_disorder", "Intestinal disorder",
     "K57|K592|K593|K90"),
    ("joint_spinal_disorder", "Joint spinal disorder",
     "M07|M13|M150|M151|M152|M154|M158|M159|M400|M402|M403|M404|M405|M41|M42|M43|"
     "M45|M460|M461|M462|M47|M480|M481|M482|M485|M488|M489|G950|G951"),
], name="M3 conditions")

# ---------------------------------------------------------------------------
# Complication and exclusion detectors (coded independently of the conditions)
# ---------------------------------------------------------------------------
M3_COMPLICATION_DETECTORS = make_rule_table([
    ("diabetes_complications", "Diabetes complications",
     "I20|I21|I22|I23|I24|I25|I6|I7|N03|N04|N18|G603|G62|G638|H35|H36|L97"),
], name="M3 complication detectors")

M3_EXCLUSION_DETECTORS = make_rule_table([
    ("osteoporosis_exclusions", "Osteoporosis exclusions",
     "M80|S220|S320|S52|S720"),
    ("hypertension_exclusions", "Hypertension exclusions",
     "I11|I12|I13|I20|I21|I22|I23|I24|I25|I6|I70|I71|I72|N03|N04|N18"),
], name="M3 exclusion detectors")

M3_DETECTOR_TABLES = [M3_COMPLICATION_DETECTORS, M3_EXCLUSION_DETECTORS]

# Site-specific cancers subsumed by metastatic cancer
M3_CANCER_CATEGORIES = [
    "colorectal_cancer",
    "breast_cancer",
    "prostate_cancer",
    "lung_cancer",
    "lymphomas_leukaemias",
    "upper_gi_cancers",
    "malignant_melanoma",
    "gynaecological_cancers",
    "other_cancers",
]
M3_METASTATIC_CATEGORY = "metastatic_cancer"

# Cancer registry input columns
M3_REGISTRY_SITE_COL = "site_code"
M3_REGISTRY_METASTATIC_COL = "metastatic"

M3_OVERRIDE_RULES = [
    {"rule": "complication_merge",
     "uncomplicated": "diabetes_uncomplicated",
     "complicated": "diabetes_complicated",
     "detector": "diabetes_complications"},
    {"rule": "mutual_exclusion",
     "keep": "diabetes_complicated",
     "clear": "diabetes_uncomplicated"},
    {"rule": "exclusion_suppression",
     "detector": "osteoporosis_exclusions",
     "target": "osteoporosis_uncomplicated"},
    {"rule": "exclusion_suppression",
     "detector": "hypertension_exclusions",
     "target": "hypertension_uncomplicated"},
    {"rule": "registry_merge",
     "categories": M3_CANCER_CATEGORIES,
     "metastatic": M3_METASTATIC_CATEGORY,
     "site_col": M3_REGISTRY_SITE_COL,
     "metastatic_col": M3_REGISTRY_METASTATIC_COL},
    {"rule": "dominance",
     "dominant": M3_METASTATIC_CATEGORY,
     "subordinates": M3_CANCER_CATEGORIES},
]

# ---------------------------------------------------------------------------
# Weights (negative published coefficients are held at 0)
# ---------------------------------------------------------------------------
M3_WEIGHTS = {
    "aids": 0.452647425,
    "alcohol_abuse": 0.576907507,
    "anemia_deficiency": 0.180927466,
    "angina": 0.0,  # -0.082399267
    "anxiety_behavioural_disorders": 0.121481351,
    "aortic_aneurysm": 0.260195993,
    "bone_disorders": 0.132827597,
    "inflammatory_bowel_disease": 0.086960591,
    "breast_cancer": 0.411891435,
    "cardiac_arrhythmia": 0.173859876,
    "cardiac_disease_other": 0.0,  # -0.104225698
    "cardiac_valve": 0.256577208,
    "cerebrovascular_disease": 0.097803808,
    "chronic_pulmonary": 0.6253395,
    "chronic_renal": 0.334155906,
    "coagulopathy": 0.265142145,
    "colorectal_cancer": 0.372878764,
    "congestive_heart_failure": 0.539809861,
    "connective_tissue": 0.290446442,
    "dementia": 1.021975368,
    "diabetes_complicated": 0.271607393,
    "diabetes_uncomplicated": 0.299383867,
    "drug_abuse": 0.558979499,
    "endocrine_disorder": 0.112673001,
    "epilepsy": 0.594991823,
    "eye_problem": 0.179923774,
    "gi_ulcer_upper_gi": 0.152986438,
    "gynaecological_cancers": 0.70658858,
    "chronic_viral_hepatitis": 0.569092852,
    "hypertension_uncomplicated": 0.117746303,
    "immune_system_disorder": 0.398529751,
    "chronic_infection_nos": 0.0,  # -0.237983891
    "inner_ear_disorder": 0.06090681,
    "intestinal_disorder": 0.0,  # -0.254089697
    "joint_spinal_disorder": 0.095585857,
    "liver_disease": 0.474321939,
    "lung_cancer": 1.972481401,
    "lymphomas_leukaemias": 1.190108503,
    "major_psychiatric_disorder": 0.212789563,
    "malignant_melanoma": 0.342233292,
    "malnutrition": 0.331335106,
    "brain_damage_disorders": 0.039711074,
    "mental_retardation": 1.405761403,
    "metabolic_disorder": 0.006265195,
    "metastatic_cancer": 2.468586878,
    "muscular_peripheral_nerve_disorder": 0.208276284,
    "myocardial_infarction": 0.197491908,
    "obesity": 0.248243722,
    "osteoporosis_uncomplicated": 0.083506878,
    "other_cancers": 1.103452294,
    "other_neurological_disorders": 0.564391512,
    "pancreatitis": 0.0,  # -0.103132585
    "paralysis": 0.281895685,
    "peripheral_vascular": 0.349250005,
    "prostate_cancer": 0.432343447,
    "pulmonary_circulation_disorder": 0.398432833,
    "sleep_disorder": 0.245749995,
    "tuberculosis": 0.0,  # -0.104290289
    "upper_gi_cancers": 1.941498638,
    "urinary_tract_problem": 0.046548658,
    "venous_insufficiency": 0.214050369,
}

M3_COLUMN_PREFIX = "M3_"
M3_SCORE_COL = "M3Score"
M3_CATEGORY_COL = "M3cat"


def m3index_scoring(
    records: pl.DataFrame,
    clinical_code_col: str = DEFAULT_CLINICAL_CODE_COL,
    id_cols: Optional[list[str]] = None,
    return_condition_cols: bool = True,
    return_score: bool = True,
    registry: Optional[pl.DataFrame] = None,
    verbose: bool = False,
) -> pl.DataFrame:
    """Code and score a long-format diagnosis history with the M3 index.

    Parameters
    ----------
    records : pl.DataFrame
        One ICD-10 code per row for every event in the lookback period,
        carrying per-person identifiers (not per-event ids, so that all past
        admissions of a person are pooled).
    clinical_code_col : str
        Column holding the ICD-10 codes.
    id_cols : list[str], optional
        Person identifier column(s). Defaults to config.DEFAULT_ID_COLS.
    return_condition_cols : bool
        Include the 61 condition indicator columns.
    return_score : bool
        Include M3Score and M3cat.
    registry : pl.DataFrame, optional
        Cancer registry rows (id_cols, site_code, metastatic) OR-ed into the
        cancer conditions before metastatic dominance is applied.
    verbose : bool
        Print progress.

    Returns
    -------
    pl.DataFrame
        One row per person.
    """
    if not return_condition_cols and not return_score:
        raise ConfigurationError(
            "return_condition_cols and return_score are both False: nothing to compute"
        )
    id_cols = list(id_cols if id_cols is not None else DEFAULT_ID_COLS)
    check_input_columns(records, clinical_code_col, id_cols)
    condition_ids = category_ids(M3_CONDITIONS)
    detector_ids = [cid for table in M3_DETECTOR_TABLES for cid in category_ids(table)]
    check_weight_table(M3_WEIGHTS, condition_ids)
    validate_override_rules(M3_OVERRIDE_RULES, id_cols + condition_ids + detector_ids)
    if registry is not None:
        check_registry(registry, id_cols, M3_REGISTRY_SITE_COL, M3_REGISTRY_METASTATIC_COL)

    if verbose:
        print(f"M3: coding {len(records):,} records")

    matrix = code_indicator_matrix(
        records, M3_CONDITIONS, clinical_code_col, id_cols, verbose=verbose
    )
    for table in M3_DETECTOR_TABLES:
        detectors = code_indicator_matrix(records, table, clinical_code_col, id_cols)
        matrix = matrix.join(detectors, on=id_cols, how="left", nulls_equal=True)

    matrix = resolve_overrides(
        matrix,
        M3_OVERRIDE_RULES,
        context={"registry": registry, "id_cols": id_cols, "rule_table": M3_CONDITIONS},
    )
    matrix = drop_columns(matrix, detector_ids).sort(id_cols)

    scored = score_indicators(
        matrix, M3_WEIGHTS, condition_ids, M3_SCORE_COL, M3_CATEGORY_COL
    )

    if verbose:
        print(f"  Scored {len(scored):,} people, mean {M3_SCORE_COL} "
              f"{scored[M3_SCORE_COL].mean() or 0.0:.3f}")

    return format_index_output(
        scored,
        id_cols=id_cols,
        rule_tables=[M3_CONDITIONS],
        column_prefix=M3_COLUMN_PREFIX,
        score_cols=[M3_SCORE_COL, M3_CATEGORY_COL],
        return_condition_cols=return_condition_cols,
        return_score=return_score,
    )
