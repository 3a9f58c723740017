"""
Validation and summary statistics for recalculated z-scores.

Everything here only reads the table; nothing is modified.
"""

import numpy as np
import pandas as pd

from utils import finite_values
from zscore_by_arena import valid_arena_mask


def describe_values(values):
    """Mean, std (ddof=1), min, max and median of the finite values."""
    x = finite_values(values)
    if len(x) == 0:
        return {"mean": np.nan, "std": np.nan, "min": np.nan, "max": np.nan, "median": np.nan}
    return {
        "mean": float(np.mean(x)),
        "std": float(np.std(x, ddof=1)) if len(x) > 1 else np.nan,
        "min": float(np.min(x)),
        "max": float(np.max(x)),
        "median": float(np.median(x)),
    }


def summarize_zscores(df, group_info,
                      arena_col="arena_type",
                      value_col="mua_rate",
                      zscore_col="mua_zscore"):
    """
    Collect the counts and distribution statistics reported after z-scoring.

    Parameters
    ----------
    df : pd.DataFrame
        Table returned by recalculate_zscores.
    group_info : pd.DataFrame
        Per-group summary returned by recalculate_zscores.

    Returns
    -------
    dict
    """
    valid = valid_arena_mask(df, arena_col).to_numpy()
    sizes = group_info["n_rows"].to_numpy(dtype=float) if len(group_info) else np.array([])

    size_stats = describe_values(sizes)
    raw_values = pd.to_numeric(df.loc[valid, value_col], errors="coerce")

    return {
        "n_rows": int(len(df)),
        "n_valid_arena": int(valid.sum()),
        "n_excluded": int((~valid).sum()),
        "n_zscored": int(df[zscore_col].notna().sum()),
        "n_groups": int(len(group_info)),
        "n_insufficient": int((group_info["status"] == "insufficient").sum()),
        "n_constant": int((group_info["status"] == "constant").sum()),
        "group_size": {k: size_stats[k] for k in ("mean", "median", "min", "max")},
        "zscore": describe_values(df[zscore_col]),
        "raw": describe_values(raw_values),
    }


def print_group_examples(group_info, n=5):
    print("  Example groups:")
    for label in group_info["group"].head(n):
        print(f"    {label}")


def _print_stats(stats, keys, indent="  "):
    for k in keys:
        print(f"{indent}{k.capitalize()}: {stats[k]:.4g}")


def print_summary(summary, value_col="mua_rate", zscore_col="mua_zscore"):
    """Print the end-of-run report."""
    print("\n" + "=" * 60)
    print("SUMMARY REPORT")
    print("=" * 60)
    print(f"Total rows in table: {summary['n_rows']}")
    print(f"Rows with valid arena type: {summary['n_valid_arena']}")
    print(f"Rows excluded (no arena): {summary['n_excluded']}")
    print(f"Rows with calculated z-scores: {summary['n_zscored']}")
    print(f"Number of unique session-arena groups: {summary['n_groups']}")
    print(f"  with insufficient data: {summary['n_insufficient']}")
    print(f"  with constant values (z = 0): {summary['n_constant']}")

    print("\nGroup size statistics:")
    _print_stats(summary["group_size"], ("mean", "median", "min", "max"))

    print(f"\nOriginal {value_col} statistics (valid arena rows):")
    _print_stats(summary["raw"], ("mean", "std", "min", "max"))

    print(f"\nSummary statistics for {zscore_col}:")
    _print_stats(summary["zscore"], ("mean", "std", "min", "max", "median"))

    # Only ~0/~1 within each group; pooled values drift with unequal group sizes
    print("\nVALIDATION: z-score properties (should be ~0 mean, ~1 std within each group)")
    print(f"  Overall mean of {zscore_col}: {summary['zscore']['mean']:.4g}")
    print(f"  Overall std of {zscore_col}: {summary['zscore']['std']:.4g}")
    print("=" * 60)
