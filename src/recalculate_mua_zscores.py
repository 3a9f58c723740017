"""
Recalculate MUA z-scores by arena type and session for the GLM table.

This script runs the full recalculation:
  1. Load the GLM table, optionally adding per-minute behavioural states
     from DeepLabCut tracking files
  2. Identify valid rows (arena type set) and session-arena groups
  3. Z-score the MUA rate within each session-arena group
  4. Validate and summarize the new z-scores
  5. Validation plots (distributions + example session)
  6. Back up the data file and save the updated table
  7. Summary report
  8. Optional mixed model of the new z-scores on arena type

Usage:
    python src/recalculate_mua_zscores.py data/Final_Table_for_GLM.pickle --table-key Final_GLM_Table

Configurable parameters are collected at the top of the script in PARAMS dict.
"""

import argparse
from pathlib import Path
import sys

import matplotlib.pyplot as plt

# Add src to path so we can import local modules
SRC_DIR = Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from figure_config import configure_matplotlib, FIGSFOLDER, HIST_BINS
from extract_behav_parameters import extract_behav_states, merge_behav_states
from mixed_models import fit_arena_mixedlm
from table_io import load_table, backup_file, save_table
from zscore_by_arena import recalculate_zscores, valid_arena_mask
from zscore_plots import plot_zscore_distributions, plot_example_session, save_figure
from zscore_report import summarize_zscores, print_group_examples, print_summary

# ──────────────────────────────────────────────────────────────────────
# CONFIGURABLE PARAMETERS: edit these to change defaults
# ──────────────────────────────────────────────────────────────────────
PARAMS = {
    # ── Paths ──
    "data_path": Path("data/Final_Table_for_GLM_cleanMUA_NewZ.pickle"),
    "table_key": None,  # key of the table when the pickle holds a dict, e.g. "Final_GLM_Table"
    "figs_folder": FIGSFOLDER,
    "results_folder": Path("results"),

    # ── Columns ──
    "session_col": "session_id",
    "arena_col": "arena_type",
    "value_col": "mua_rate",
    "time_col": "time_min",
    "zscore_col": "mua_zscore",

    # ── Z-scoring ──
    "min_group_size": 2,
    "progress_every": 50,

    # ── Plots ──
    "make_plots": True,
    "save_figs": True,
    "show_figs": False,
    "hist_bins": HIST_BINS,
    "example_session": None,  # None = first session in sorted order

    # ── Behavioural states ──
    "behav_files": {},  # session -> DeepLabCut CSV; adds prop_moving and behav_state per minute
    "fps": 30.0,
    "behav_threshold": None,  # None = Otsu threshold per session

    # ── Saving ──
    "make_backup": True,
    "save_table": True,

    # ── Mixed model ──
    "fit_model": False,
    "model_covariates": [],
    "reference_arena": None,

    "verbose": True,
}


def _banner(title, verbose=True):
    if verbose:
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)


def run_pipeline(params=None):
    """
    Run the z-score recalculation.

    Returns
    -------
    dict
        df (updated table), group_info, summary, backup_path, figures,
        model (mixed model result or None).
    """
    if params is None:
        params = PARAMS
    params = {**PARAMS, **params}
    verbose = params["verbose"]

    cols = {k: params[k] for k in ("session_col", "arena_col", "value_col", "zscore_col")}
    data_path = Path(params["data_path"])

    # Phase 1: Load
    _banner("PHASE 1: Loading data", verbose)
    df, container = load_table(data_path, table_key=params["table_key"],
                               text_cols=(cols["session_col"], cols["arena_col"]))
    missing = [c for c in (cols["session_col"], cols["arena_col"], cols["value_col"]) if c not in df.columns]
    if missing:
        raise KeyError(f"Columns {missing} not found in {data_path}. Available columns: {list(df.columns)}")
    if verbose:
        print(f"  Loaded table with {len(df)} rows from {data_path}")

    if params["behav_files"]:
        if params["time_col"] not in df.columns:
            raise KeyError(f"Column '{params['time_col']}' is needed to add behavioural states")
        for session, dlc_file in params["behav_files"].items():
            binned, threshold = extract_behav_states(dlc_file, params["fps"],
                                                     state_threshold=params["behav_threshold"])
            df = merge_behav_states(df, binned, session,
                                    session_col=cols["session_col"], time_col=params["time_col"])
            if verbose:
                print(f"  Added behavioural states for {session} from {dlc_file} "
                      f"({len(binned)} minutes, threshold {threshold:.3f})")

    # Phase 2: Valid rows
    _banner("PHASE 2: Analyzing data structure", verbose)
    valid = valid_arena_mask(df, cols["arena_col"])
    if verbose:
        print(f"  Found {int(valid.sum())} rows with valid {cols['arena_col']}")
        print(f"  Excluding {int((~valid).sum())} rows where animal is not in any arena")

    # Phase 3: Z-scores
    _banner("PHASE 3: Calculating z-scores for each session-arena group", verbose)
    df_new, group_info = recalculate_zscores(
        df,
        min_group_size=params["min_group_size"],
        progress_every=params["progress_every"],
        verbose=verbose,
        **cols,
    )
    if verbose:
        print(f"  Found {len(group_info)} unique session-arena combinations")
        print_group_examples(group_info)

    # Phase 4: Validation
    _banner("PHASE 4: Validating results", verbose)
    summary = summarize_zscores(df_new, group_info, arena_col=cols["arena_col"],
                                value_col=cols["value_col"], zscore_col=cols["zscore_col"])
    if verbose:
        print(f"  Calculated z-scores for {summary['n_zscored']} out of "
              f"{summary['n_valid_arena']} valid arena rows")

    # Phase 5: Plots
    figures = {}
    if params["make_plots"]:
        _banner("PHASE 5: Creating validation plots", verbose)
        configure_matplotlib()
        figures["distributions"], _ = plot_zscore_distributions(
            df_new, arena_col=cols["arena_col"], value_col=cols["value_col"],
            zscore_col=cols["zscore_col"], bins=params["hist_bins"])

        example = plot_example_session(
            df_new, session=params["example_session"], time_col=params["time_col"], **cols)
        if example is not None:
            figures["example_session"] = example[0]

        if params["save_figs"]:
            for name, f in figures.items():
                for p in save_figure(f, f"{cols['zscore_col']}_{name}", Path(params["figs_folder"])):
                    if verbose:
                        print(f"  Saved figure: {p}")
        if params["show_figs"]:
            plt.show()
        else:
            for f in figures.values():
                plt.close(f)

    # Phase 6: Backup and save
    backup_path = None
    if params["save_table"]:
        _banner("PHASE 6: Saving updated table", verbose)
        if params["make_backup"]:
            # A failed backup only warns; the save below still goes ahead
            backup_path = backup_file(data_path, verbose=verbose)
        save_table(df_new, data_path, container=container,
                   table_key=params["table_key"], verbose=verbose)

    # Phase 7: Summary
    if verbose:
        print_summary(summary, value_col=cols["value_col"], zscore_col=cols["zscore_col"])

    # Phase 8: Mixed model
    model = None
    if params["fit_model"]:
        _banner("PHASE 8: Mixed model of z-scores on arena type", verbose)
        model = fit_arena_mixedlm(
            df_new,
            ycol=cols["zscore_col"],
            arena_col=cols["arena_col"],
            session_col=cols["session_col"],
            covariates=params["model_covariates"],
            reference_arena=params["reference_arena"],
            verbose=verbose,
        )
        if model is not None:
            results_folder = Path(params["results_folder"])
            results_folder.mkdir(parents=True, exist_ok=True)
            coefs_path = results_folder / f"mixedlm_{cols['zscore_col']}.csv"
            model["coefs"].to_csv(coefs_path, index=False)
            if verbose:
                print(f"  Coefficients saved to {coefs_path}")

    if verbose:
        print("\nScript completed successfully!")

    return {
        "df": df_new,
        "group_info": group_info,
        "summary": summary,
        "backup_path": backup_path,
        "figures": figures,
        "model": model,
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Recalculate MUA z-scores within each session x arena type group",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example:
  python recalculate_mua_zscores.py ../data/Final_Table_for_GLM.pickle --table-key Final_GLM_Table \\
    --session-col SessionName --arena-col ArenaType --value-col MUA_mean_Hz_replicated --zscore-col MUA_Z_New
        """)

    parser.add_argument("data_path", type=Path,
                       help="Path to the table (.pickle, .pkl or .csv); overwritten with the result")
    parser.add_argument("--table-key", type=str, default=PARAMS["table_key"],
                       help="Key of the table when the pickle holds a dict")
    parser.add_argument("--session-col", type=str, default=PARAMS["session_col"])
    parser.add_argument("--arena-col", type=str, default=PARAMS["arena_col"])
    parser.add_argument("--value-col", type=str, default=PARAMS["value_col"])
    parser.add_argument("--time-col", type=str, default=PARAMS["time_col"])
    parser.add_argument("--zscore-col", type=str, default=PARAMS["zscore_col"])
    parser.add_argument("--min-group-size", type=int, default=PARAMS["min_group_size"],
                       help=f"Minimum rows and valid values per group (default: {PARAMS['min_group_size']})")
    parser.add_argument("--figs-folder", type=Path, default=PARAMS["figs_folder"])
    parser.add_argument("--results-folder", type=Path, default=PARAMS["results_folder"])
    parser.add_argument("--no-plots", action="store_true", help="Skip validation plots")
    parser.add_argument("--show", action="store_true", help="Show figures interactively")
    parser.add_argument("--no-backup", action="store_true", help="Do not back up the data file before saving")
    parser.add_argument("--behav-file", action="append", default=[], metavar="SESSION=PATH",
                       help="DeepLabCut CSV for a session; adds prop_moving and behav_state (repeatable)")
    parser.add_argument("--fps", type=float, default=PARAMS["fps"],
                       help=f"Video frame rate for --behav-file (default: {PARAMS['fps']})")
    parser.add_argument("--fit-model", action="store_true",
                       help="Fit a mixed model of the z-scores on arena type (random intercept per session)")
    parser.add_argument("--covariates", nargs="*", default=PARAMS["model_covariates"],
                       help="Extra fixed-effect columns for the mixed model")
    parser.add_argument("--reference-arena", type=str, default=PARAMS["reference_arena"])
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors")
    return parser, parser.parse_args(argv)


def main(argv=None):
    parser, args = parse_args(argv)

    behav_files = {}
    for item in args.behav_file:
        session, sep, dlc_file = item.partition("=")
        if not sep or not session or not dlc_file:
            parser.error(f"--behav-file expects SESSION=PATH, got '{item}'")
        behav_files[session] = Path(dlc_file)

    params = {
        **PARAMS,
        "data_path": args.data_path,
        "table_key": args.table_key,
        "session_col": args.session_col,
        "arena_col": args.arena_col,
        "value_col": args.value_col,
        "time_col": args.time_col,
        "zscore_col": args.zscore_col,
        "min_group_size": args.min_group_size,
        "figs_folder": args.figs_folder,
        "results_folder": args.results_folder,
        "make_plots": not args.no_plots,
        "show_figs": args.show,
        "make_backup": not args.no_backup,
        "behav_files": behav_files,
        "fps": args.fps,
        "fit_model": args.fit_model,
        "model_covariates": args.covariates,
        "reference_arena": args.reference_arena,
        "verbose": not args.quiet,
    }

    try:
        run_pipeline(params)
    except (FileNotFoundError, ValueError, KeyError) as e:
        print(f"Error: {e}")
        parser.exit(1)


if __name__ == "__main__":
    main()
