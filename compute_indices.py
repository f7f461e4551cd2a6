# compute_indices.py
"""
Main CLI script.

Usage:
    python compute_indices.py                         # uses default seed_samples.csv
    python compute_indices.py myfile.csv              # uses myfile.csv
    python compute_indices.py myfile.csv other.json   # uses another config
"""

import logging
import os
import sys

import pandas as pd

from hmpi_errors import EmptyDatasetError, HMPIError
from hmpi_standards import load_config, standards_from_config
from hmpi_stats import overview
from hmpi_utils import compute_indices_for_df, detect_metals_in_df, samples_from_df

DEFAULT_CSV = "seed_samples.csv"
DEFAULT_CONFIG = "config.json"
OUT_CSV_SUFFIX = "_with_indices.csv"


def print_overview(summary):
    if summary is None:
        print("No valid samples; no summary available.")
        return
    print("\n--- Overview ---")
    print(f"Samples: {summary['total_samples']}")
    for index, mean in summary["means"].items():
        if mean is not None:
            print(f"Mean {index.upper()}: {mean:.2f}")
    print("HPI distribution:")
    for label, bucket in summary["distribution"].items():
        print(f"  {label}: {bucket['count']} ({bucket['percentage']:.1f}%)")
    print(f"Most polluted metal: {summary['most_polluted_metal']}")
    if summary["trend"]:
        pct = summary["trend_percentage"]
        pct_text = f" ({pct:.1f}%)" if pct is not None else ""
        print(f"HPI trend: {summary['trend']}{pct_text}")
    print(f"Compliance rate: {summary['compliance_rate']:.1f}%")
    if summary["critical_locations"]:
        print("Critical locations:", ", ".join(summary["critical_locations"]))


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # determine input csv / config paths
    input_csv = argv[0] if len(argv) >= 1 else DEFAULT_CSV
    config_path = argv[1] if len(argv) >= 2 else DEFAULT_CONFIG

    if not os.path.exists(input_csv):
        print(f"Error: input CSV '{input_csv}' not found in current folder ({os.getcwd()}).")
        return 1

    # load config
    try:
        cfg = load_config(config_path)
        standards = standards_from_config(cfg)
    except FileNotFoundError:
        print(f"Error: config '{config_path}' not found.")
        return 1
    except HMPIError as e:
        print(f"Error: invalid standards in '{config_path}': {e}")
        return 1

    # read csv
    df = pd.read_csv(input_csv)

    # info: which metals are present
    metal_columns, missing = detect_metals_in_df(df, cfg)
    print("Standards:", standards.name)
    print("Metal columns found:", metal_columns)
    if missing:
        print("Warning: no column for", ", ".join(missing))

    # compute
    df_out = compute_indices_for_df(df, cfg)

    # write output file
    base, ext = os.path.splitext(input_csv)
    out_file = f"{base}{OUT_CSV_SUFFIX}"
    df_out.to_csv(out_file, index=False)
    print(f"\nDone. Results written to: {out_file}")

    # print quick preview
    preview_cols = ["sample_id", "location", "HPI", "HPI_category", "HEI", "CD", "NPI",
                    "NPI_category", "overall_quality"]
    preview_cols = [c for c in preview_cols if c in df_out.columns]
    print("\n--- Sample of computed results ---")
    print(df_out[preview_cols].head(10).to_string(index=False))

    n_failed = int(df_out["error"].notna().sum())
    if n_failed:
        print(f"\n{n_failed} row(s) could not be computed; see the 'error' column.")

    # summary over the rows that validated
    valid = df.loc[df_out["error"].isna()]
    try:
        samples = samples_from_df(valid, cfg)
    except EmptyDatasetError:
        samples = []
    except HMPIError as e:
        print(f"Summary skipped: {e}")
        samples = []
    print_overview(overview(samples, standards))
    return 0


if __name__ == "__main__":
    sys.exit(main())
