"""
Validation plots for the recalculated z-scores.

Two figures for visual QA: histograms of the raw and z-scored MUA, and the
time course of one example session before and after normalization.
"""

import re
from pathlib import Path

import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from figure_config import (COLORS, HIST_BINS, DIST_FIGSIZE, SESSION_FIGSIZE,
                           SAVE_PDF, SAVE_PNG, PNG_DPI, arena_colors)
from zscore_by_arena import valid_arena_mask


def plot_zscore_distributions(df,
                              arena_col="arena_type",
                              value_col="mua_rate",
                              zscore_col="mua_zscore",
                              bins=HIST_BINS):
    """
    Histograms of the original values and the new z-scores, valid arena rows only.

    :param df: table with value_col and zscore_col
    :param bins: number of histogram bins
    :return: (fig, axs) tuple
    """
    valid = valid_arena_mask(df, arena_col).to_numpy()
    raw = pd.to_numeric(df.loc[valid, value_col], errors="coerce").dropna()
    z = df.loc[valid, zscore_col].dropna()

    f, axs = plt.subplots(nrows=2, figsize=DIST_FIGSIZE)

    for ax, values, color, title, xlabel in zip(
            axs, [raw, z], COLORS,
            [f"Original {value_col} (valid arena rows only)", "New z-scores (by session and arena type)"],
            [value_col, "Z-score"]):
        if len(values):
            sns.histplot(x=values.to_numpy(dtype=float), bins=bins, color=color, ax=ax)
        ax.set_title(title)
        ax.set_xlabel(xlabel)
        ax.set_ylabel("Frequency")
        ax.grid(True)
        sns.despine(ax=ax)

    f.tight_layout()
    return f, axs


def plot_example_session(df,
                         session=None,
                         session_col="session_id",
                         arena_col="arena_type",
                         value_col="mua_rate",
                         zscore_col="mua_zscore",
                         time_col="time_min"):
    """
    Time course of one session, one line per arena type, before and after z-scoring.

    :param session: session to plot; defaults to the first session in sorted order
    :return: (fig, axs) tuple, or None if the table has no sessions
    """
    if session is None:
        sessions = sorted(df[session_col].dropna().unique(), key=str)
        if not sessions:
            return None
        session = sessions[0]

    session_df = df.loc[(df[session_col] == session).to_numpy() & valid_arena_mask(df, arena_col).to_numpy()]
    arenas = sorted(session_df[arena_col].unique(), key=str)
    colors = arena_colors(arenas)

    f, axs = plt.subplots(nrows=2, figsize=SESSION_FIGSIZE, sharex=True)
    f.suptitle(f"Example session: {session}")

    for ax, ycol, ylabel, title in zip(axs,
                                       [value_col, zscore_col],
                                       [value_col, "Z-score"],
                                       [f"Original {value_col} by arena type", "New z-scores by arena type"]):
        for arena in arenas:
            d = session_df[session_df[arena_col] == arena].sort_values(time_col)
            ax.plot(d[time_col], d[ycol], "-o", markersize=3, color=colors[arena], label=str(arena))
        ax.set_ylabel(ylabel)
        ax.set_title(title)
        ax.grid(True)
        if arenas:
            ax.legend(loc="best", frameon=False)
        sns.despine(ax=ax)

    axs[-1].set_xlabel("Time (min)")
    f.tight_layout()
    return f, axs


def safe_filename(name):
    return re.sub(r"[^\w\-.]+", "_", str(name)).strip("_")


def save_figure(fig, filename, folder, save_pdf=SAVE_PDF, save_png=SAVE_PNG, png_dpi=PNG_DPI):
    """
    Save figure in one or both formats (PDF and PNG).

    :param fig: matplotlib figure object
    :param filename: filename without extension
    :param folder: Path object pointing to output folder
    :return: list of written paths
    """
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    filename = safe_filename(filename)

    paths = []
    if save_pdf:
        pdf_path = folder / f"{filename}.pdf"
        fig.savefig(pdf_path, bbox_inches='tight')
        paths.append(pdf_path)

    if save_png:
        png_path = folder / f"{filename}.png"
        fig.savefig(png_path, bbox_inches='tight', dpi=png_dpi)
        paths.append(png_path)

    return paths
