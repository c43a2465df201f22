# stat3_deg/core/visualization_utils.py
"""Plot constants shared by the exploratory and DE figures.

Values here are code-level defaults; style, figure size and DPI can be
overridden at runtime through `config.get_visualization_config()`.
"""

from typing import Any, Final

# Fonts
# ----------------------------------------------------
DEFAULT_FONT_FAMILY: Final[str] = "DejaVu Sans"
FONT_SIZE_FIGURE_TITLE: Final[int] = 15
FONT_SIZE_LABEL: Final[int] = 12
FONT_SIZE_ANNOTATION: Final[int] = 8

# Style and resolution
# ----------------------------------------------------
DEFAULT_STYLE: Final[str] = "seaborn-v0_8-whitegrid"
DEFAULT_DPI: Final[int] = 150
SAVE_DPI: Final[int] = 300

BASE_RC_PARAMS: Final[dict[str, Any]] = {
    "font.family": DEFAULT_FONT_FAMILY,
    "font.size": 10,
    "axes.titlesize": 13,
    "axes.labelsize": FONT_SIZE_LABEL,
    "axes.titleweight": "bold",
    "legend.fontsize": 9,
    "legend.frameon": False,
    "figure.titlesize": FONT_SIZE_FIGURE_TITLE,
    "figure.dpi": DEFAULT_DPI,
    "savefig.facecolor": "white",
    "savefig.transparent": False,
}

# Sample groups (treatment, batch) on RLE and PCA plots
PALETTE_QUALITATIVE: Final[str] = "Set2"

# MA plot
# ----------------------------------------------------
COLOR_UP: Final[str] = "#d7301f"
COLOR_DOWN: Final[str] = "#2166ac"
COLOR_NOT_SIGNIFICANT: Final[str] = "#bdbdbd"
COLOR_HIGHLIGHT: Final[str] = "#ff7f00"
ALPHA_SIGNIFICANT: Final[float] = 0.7
ALPHA_NOT_SIGNIFICANT: Final[float] = 0.3
SIZE_DEFAULT: Final[float] = 6.0
SIZE_HIGHLIGHT: Final[float] = 60.0

# Venn diagrams: one colour per set, in order
PALETTE_VENN: Final[list[str]] = ["#2166ac", "#d7301f", "#1a9850"]
