"""Figures for the review: forest, funnel, risk-of-bias and contribution plots.

Every function draws with matplotlib, writes the figure to the given
path and closes it.
"""

from .forest_plot import create_forest_plot
from .funnel_plot import create_funnel_plot
from .heatmap import create_contribution_heatmap
from .rob import create_traffic_light

__all__ = [
    "create_forest_plot",
    "create_funnel_plot",
    "create_contribution_heatmap",
    "create_traffic_light",
]
