#!/usr/bin/env python3
"""
Comorbidity Index Pipeline
--------------------------
Orchestrates: load diagnoses -> (reshape) -> code, resolve and score -> report.

Usage:
    python run_pipeline.py --index m3 --input diags.parquet --id-cols snz_uid
    python run_pipeline.py --index c3 --cancer-site colon \\
        --input all.parquet --precancer-input pre.parquet --id-cols snz_uid
    python run_pipeline.py --index m3 --input admissions.csv --wide-prefix DIAG
    python run_pipeline.py --index m3 --synthetic 1000     # No data needed
"""

import argparse
import json
import sys
import time
from pathlib import Path

import polars as pl

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from config import DEFAULT_CLINICAL_CODE_COL, DEFAULT_ID_COLS, PROCESSED_DIR, RANDOM_SEED
from features.rule_table import ConfigurationError


def parse_args():
    parser = argparse.ArgumentParser(description="M3 / C3 comorbidity index scoring")
    parser.add_argument("--index", choices=["m3", "c3"], required=True,
                        help="Comorbidity index to compute")
    parser.add_argument("--input", type=Path, default=None,
                        help="Long-format (or wide, see --wide-prefix) diagnoses, CSV or parquet")
    parser.add_argument("--precancer-input", type=Path, default=None,
                        help="C3 only: diagnoses restricted to before the cancer admission")
    parser.add_argument("--cancer-site", default=None,
                        help="C3 only: primary cancer site, e.g. COLON")
    parser.add_argument("--registry", type=Path, default=None,
                        help="M3 only: cancer registry with site_code and metastatic columns")
    parser.add_argument("--code-col", default=DEFAULT_CLINICAL_CODE_COL,
                        help="Column holding ICD-10 codes")
    parser.add_argument("--id-cols", nargs="+", default=list(DEFAULT_ID_COLS),
                        help="Person identifier column(s)")
    parser.add_argument("--wide-prefix", default=None,
                        help="Input is one row per encounter; diagnosis columns share this prefix")
    parser.add_argument("--no-condition-cols", action="store_true",
                        help="Do not return condition indicator columns")
    parser.add_argument("--no-score", action="store_true",
                        help="Do not return score columns")
    parser.add_argument("--output", type=Path, default=None,
                        help="Output path (.csv or .parquet)")
    parser.add_argument("--synthetic", type=int, default=None,
                        help="Score N synthetic patients instead of reading --input")
    parser.add_argument("--quiet", action="store_true",
                        help="Only print errors")
    return parser.parse_args()


def read_table(path: Path) -> pl.DataFrame:
    if path.suffix == ".parquet":
        return pl.read_parquet(path)
    return pl.read_csv(path, infer_schema_length=10000)


def write_table(df: pl.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".parquet":
        df.write_parquet(path)
    else:
        df.write_csv(path)


def step_load(args, verbose):
    """Load (or generate) the long-format diagnosis records."""
    if verbose:
        print("\n" + "=" * 60)
        print("STEP 1: Load Diagnoses")
        print("=" * 60)

    if args.synthetic:
        from evaluation.synthetic import generate_synthetic_diagnoses
        from indices.c3 import C3_CONDITIONS, c3_pre_treatment_conditions
        from indices.m3 import M3_CONDITIONS

        args.id_cols = ["patient_id"]
        if args.index == "m3":
            records = generate_synthetic_diagnoses(
                M3_CONDITIONS, n_patients=args.synthetic, code_col=args.code_col
            )
            precancer = None
        else:
            site = args.cancer_site or "COLON"
            records = generate_synthetic_diagnoses(
                C3_CONDITIONS, n_patients=args.synthetic, code_col=args.code_col
            )
            precancer = generate_synthetic_diagnoses(
                c3_pre_treatment_conditions(site), n_patients=args.synthetic,
                seed=RANDOM_SEED + 1, code_col=args.code_col,
            )
        if verbose:
            print(f"  Generated {len(records):,} synthetic records "
                  f"for {args.synthetic:,} patients")
        return records, precancer

    if args.input is None:
        raise ConfigurationError("--input is required unless --synthetic is given")

    records = read_table(args.input)
    precancer = read_table(args.precancer_input) if args.precancer_input else None

    if args.wide_prefix:
        from etl.reshape import wide_to_long

        keep = [c for c in args.id_cols if c in records.columns]
        records = wide_to_long(records, args.wide_prefix, args.code_col, keep_cols=keep)
        if precancer is not None:
            precancer = wide_to_long(precancer, args.wide_prefix, args.code_col, keep_cols=keep)

    if verbose:
        print(f"  Loaded {len(records):,} records from {args.input}")
        if precancer is not None:
            print(f"  Loaded {len(precancer):,} pre-treatment records "
                  f"from {args.precancer_input}")
    return records, precancer


def step_score(args, records, precancer, verbose):
    """Code conditions, resolve overrides and score."""
    if verbose:
        print("\n" + "=" * 60)
        print(f"STEP 2: Score {args.index.upper()} Index")
        print("=" * 60)

    return_condition_cols = not args.no_condition_cols
    return_score = not args.no_score

    if args.index == "m3":
        from indices.m3 import m3index_scoring

        registry = read_table(args.registry) if args.registry else None
        return m3index_scoring(
            records,
            clinical_code_col=args.code_col,
            id_cols=args.id_cols,
            return_condition_cols=return_condition_cols,
            return_score=return_score,
            registry=registry,
            verbose=verbose,
        )

    from indices.c3 import c3index_scoring

    if precancer is None:
        raise ConfigurationError("--precancer-input is required for the C3 index")
    if args.cancer_site is None and not args.synthetic:
        raise ConfigurationError("--cancer-site is required for the C3 index")
    return c3index_scoring(
        records,
        precancer,
        cancer_site=args.cancer_site or "COLON",
        clinical_code_col=args.code_col,
        id_cols=args.id_cols,
        return_condition_cols=return_condition_cols,
        return_score=return_score,
        verbose=verbose,
    )


def step_report(args, result, verbose):
    """Print a summary and save the scored table."""
    from evaluation.metrics import category_prevalence, summarize_scores
    from indices.c3 import C3_CATEGORY_COL, C3_COLUMN_PREFIX, C3_SCORE_COL
    from indices.m3 import M3_CATEGORY_COL, M3_COLUMN_PREFIX, M3_SCORE_COL

    if args.index == "m3":
        score_col, category_col, prefix = M3_SCORE_COL, M3_CATEGORY_COL, M3_COLUMN_PREFIX
    else:
        score_col, category_col, prefix = C3_SCORE_COL, C3_CATEGORY_COL, C3_COLUMN_PREFIX

    summary = {"index": args.index.upper(), "n_patients": len(result)}

    if verbose:
        print("\n" + "=" * 60)
        print("RESULTS SUMMARY")
        print("=" * 60)

    if score_col in result.columns:
        summary.update(summarize_scores(result, score_col, category_col))
        if verbose:
            print(f"  Patients: {summary['n_patients']:,}")
            print(f"  Mean score: {summary['mean_score']:.3f} "
                  f"(median {summary['median_score']:.3f}, max {summary['max_score']:.3f})")
            print(f"  {'Category':<10} {'Patients':>10}")
            for k, count in summary["category_counts"].items():
                print(f"  {k:<10} {count:>10,}")

    condition_cols = [c for c in result.columns if c.startswith(prefix)]
    if condition_cols:
        prevalence = category_prevalence(result, condition_cols)
        summary["prevalence"] = prevalence
        if verbose:
            print("\n--- Most prevalent conditions ---")
            for name, frac in list(prevalence.items())[:10]:
                print(f"  {name:<34} {frac:>7.1%}")

    output_path = args.output or PROCESSED_DIR / f"{args.index}_scores.parquet"
    write_table(result, output_path)
    summary_path = output_path.with_name(output_path.stem + "_summary.json")
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2, default=str)
    if verbose:
        print(f"\n  Scores saved to {output_path}")
        print(f"  Summary saved to {summary_path}")


def main():
    args = parse_args()
    verbose = not args.quiet
    t_start = time.time()

    if verbose:
        print("=" * 60)
        print(f"Comorbidity Index Pipeline: {args.index.upper()}")
        print("=" * 60)

    try:
        records, precancer = step_load(args, verbose)
        result = step_score(args, records, precancer, verbose)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    step_report(args, result, verbose)

    if verbose:
        print(f"\n  Total pipeline time: {time.time() - t_start:.1f}s")


if __name__ == "__main__":
    main()
