"""
Plotting utilities for masked Kalman filter diagnostics.
Consistent matplotlib styling, diagnostics-log traces, and estimation error
plots with covariance bounds.
"""

import os

import numpy as np
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for saving
import matplotlib.pyplot as plt

from kalman_filter.core.constants import (
    PREDICTED_STATE_PREFIX, PREDICTED_OBSERVATION_PREFIX,
    ACTUAL_OBSERVATION_PREFIX, ESTIMATED_STATE_PREFIX,
)


# ---------------------------------------------------------------------------
# PlotStyle -- shared styling helpers
# ---------------------------------------------------------------------------

class PlotStyle:
    """Centralised styling and figure management for filter plots."""

    # Colorblind-friendly palette
    COLORS = {
        'predicted': '#2E86AB',    # Steel blue
        'measured': '#F18F01',     # Orange
        'estimated': '#2E7D32',    # Green
        'truth': '#3B1F2B',        # Dark purple
        'bound': '#C73E1D',        # Red
    }

    PALETTE = ['#2E86AB', '#F18F01', '#2E7D32', '#C73E1D', '#7B1FA2', '#00838F']

    @staticmethod
    def setup_style():
        """Set matplotlib rcParams for consistent figures."""
        plt.rcParams.update({
            'font.family': 'sans-serif',
            'font.size': 11,
            'axes.labelsize': 12,
            'axes.titlesize': 14,
            'axes.titleweight': 'bold',
            'legend.fontsize': 9,
            'figure.figsize': (10, 6),
            'figure.dpi': 100,
            'savefig.dpi': 150,
            'savefig.bbox': 'tight',
            'axes.grid': True,
            'axes.spines.top': False,
            'axes.spines.right': False,
            'axes.prop_cycle': plt.cycler(color=PlotStyle.PALETTE),
            'grid.color': '#E0E0E0',
            'grid.linewidth': 0.5,
            'lines.linewidth': 1.5,
        })

    @staticmethod
    def create_figure(nrows=1, ncols=1, figsize=None):
        """Return (fig, axes) with axes always a flat array."""
        fig, axes = plt.subplots(nrows, ncols, figsize=figsize, squeeze=False,
                                 layout='tight')
        return fig, axes.ravel()

    @staticmethod
    def save_figure(fig, filepath, dpi=150):
        """Save *fig* to *filepath*, creating directories as needed."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fig.savefig(filepath, dpi=dpi, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        plt.close(fig)


# ---------------------------------------------------------------------------
# Standalone plotting functions
# ---------------------------------------------------------------------------

def plot_diagnostics_log(df, n_x, n_z, filepath, title='Filter diagnostics'):
    """Plot a diagnostics log: one panel per state and one per channel.

    State panels show the predicted (xp) and estimated (xe) value per cycle.
    Channel panels show the predicted reading (zp) as a line and the actual
    readings (za) as markers; cycles where the channel dropped out are gaps.

    Parameters
    ----------
    df : pandas.DataFrame  -- as returned by database.diagnostics_log.load_log
    n_x, n_z : int
    filepath : str
    title : str
    """
    PlotStyle.setup_style()
    n_panels = n_x + n_z
    fig, axes = PlotStyle.create_figure(nrows=n_panels, ncols=1,
                                        figsize=(10, 2.6 * n_panels))
    cycles = np.arange(len(df))

    for i in range(n_x):
        ax = axes[i]
        ax.plot(cycles, df[f'{PREDICTED_STATE_PREFIX}{i}'], '--',
                color=PlotStyle.COLORS['predicted'], label='predicted')
        ax.plot(cycles, df[f'{ESTIMATED_STATE_PREFIX}{i}'],
                color=PlotStyle.COLORS['estimated'], label='estimated')
        ax.set_ylabel(f'x[{i}]')
        ax.legend(loc='upper right')

    for k in range(n_z):
        ax = axes[n_x + k]
        ax.plot(cycles, df[f'{PREDICTED_OBSERVATION_PREFIX}{k}'],
                color=PlotStyle.COLORS['predicted'], label='predicted')
        ax.plot(cycles, df[f'{ACTUAL_OBSERVATION_PREFIX}{k}'], '.',
                color=PlotStyle.COLORS['measured'], label='measured')
        ax.set_ylabel(f'z[{k}]')
        ax.legend(loc='upper right')

    axes[-1].set_xlabel('Cycle')
    fig.suptitle(title, fontsize=14)
    PlotStyle.save_figure(fig, filepath)


def plot_estimation_errors(times, errors, variances, labels, filepath,
                           title='Estimation error'):
    """Plot estimation errors with +/-3-sigma covariance bounds.

    Parameters
    ----------
    times : array-like (N,)
    errors : ndarray (N, n)   -- estimate minus truth per state
    variances : ndarray (N, n) -- covariance diagonal per state
    labels : list of str
    filepath : str
    title : str
    """
    PlotStyle.setup_style()
    errors = np.asarray(errors)
    sigma3 = 3.0 * np.sqrt(np.asarray(variances))
    n = errors.shape[1]
    fig, axes = PlotStyle.create_figure(nrows=n, ncols=1, figsize=(10, 3.2 * n))

    for i in range(n):
        axes[i].plot(times, errors[:, i], color=PlotStyle.COLORS['estimated'],
                     label='Error')
        axes[i].plot(times, sigma3[:, i], 'r--', linewidth=1.0, label='+3$\\sigma$')
        axes[i].plot(times, -sigma3[:, i], 'r--', linewidth=1.0, label='-3$\\sigma$')
        axes[i].fill_between(times, -sigma3[:, i], sigma3[:, i],
                             color='red', alpha=0.08)
        axes[i].set_ylabel(labels[i])
        axes[i].legend(loc='upper right')

    axes[-1].set_xlabel('Time [s]')
    fig.suptitle(title, fontsize=14)
    PlotStyle.save_figure(fig, filepath)
