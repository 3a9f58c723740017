"""
Configuration settings for the z-score validation figures.

Shared styling, colours and output paths so every figure produced by the
pipeline looks the same.
"""

from pathlib import Path
import matplotlib.pyplot as plt
from matplotlib import rcParams
import seaborn as sns

# ──────────────────────────────────────────────────────────────────────
# Matplotlib Configuration
# ──────────────────────────────────────────────────────────────────────

def configure_matplotlib():
    """Set up matplotlib for publication-quality figures."""
    sns.set_style("ticks")
    rcParams['font.family'] = 'sans-serif'
    rcParams['pdf.fonttype'] = 42
    plt.rcParams['savefig.dpi'] = 300
    plt.rcParams['savefig.transparent'] = True


# ──────────────────────────────────────────────────────────────────────
# Color Palette
# ──────────────────────────────────────────────────────────────────────

# Histogram colours: [raw MUA, z-scored MUA]
COLORS = ["#016895", "#C74632"]

# Palette used for one line per arena type
ARENA_PALETTE = "deep"


def arena_colors(arenas):
    """Map each arena type to a colour from ARENA_PALETTE."""
    arenas = list(arenas)
    return dict(zip(arenas, sns.color_palette(ARENA_PALETTE, n_colors=max(len(arenas), 1))))


# ──────────────────────────────────────────────────────────────────────
# Paths
# ──────────────────────────────────────────────────────────────────────

FIGSFOLDER = Path("results/figs")

# ──────────────────────────────────────────────────────────────────────
# Visualization Parameters
# ──────────────────────────────────────────────────────────────────────

HIST_BINS = 50
DIST_FIGSIZE = (6, 6)
SESSION_FIGSIZE = (7, 6)

# ──────────────────────────────────────────────────────────────────────
# Figure Control
# ──────────────────────────────────────────────────────────────────────

SAVE_PDF = True  # Save PDF for the thesis
SAVE_PNG = True  # Save PNG for quick checks
PNG_DPI = 300  # DPI for PNG export
