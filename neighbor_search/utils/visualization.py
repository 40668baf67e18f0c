"""
Visualization utilities for benchmark results.
"""

from typing import Optional

import matplotlib.pyplot as plt
import pandas as pd


def plot_leaf_size_sweep(
    results: pd.DataFrame,
    value: str = "time_s",
    title: str = "Search cost vs leaf size",
    save_path: Optional[str] = None
):
    """
    Plot one benchmark column against leaf size, one line per mode.

    Parameters
    ----------
    results : pd.DataFrame
        Must contain 'mode', 'leaf_size' and ``value`` columns.
    value : str
        Column to plot, e.g. 'time_s', 'prunes' or 'evaluations'.
    title : str
        Plot title.
    save_path : str or None
        Path to save figure.
    """
    fig, ax = plt.subplots(figsize=(10, 6))

    for mode, group in results.groupby("mode"):
        group = group.sort_values("leaf_size")
        ax.plot(group["leaf_size"], group[value], marker="o", label=mode)

    ax.set_xlabel("Leaf size", fontsize=12)
    ax.set_ylabel(value, fontsize=12)
    ax.set_xscale("log")
    ax.set_title(title, fontsize=14)
    ax.legend(loc="best")
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig, ax
