"""
Validation figures and summary statistics.

This module contains functions for:
- Scaled kernel densities of upper - lower vegetation differences
- Box plots of rotated/extended segment differences on a shared axis
- Text summaries of difference statistics and treatment medians
"""

from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from atet.config import (
    VEGETATION_METRICS, TREATMENTS, NDVI_SCALE_COEFF, BOXPLOT_COLORS,
    DENSITY_PLOT_PX, BOX_PLOT_PX, PLOT_DPI, BASELINES
)
from atet.analysis import format_group_value, treatment_columns

sns.set_theme(style='ticks')


def figure_size(pixels, dpi=PLOT_DPI):
    """Figure size in inches for an exact pixel size at dpi."""
    return pixels[0] / dpi, pixels[1] / dpi


def scaled_density(values, n_points=512):
    """
    Gaussian kernel density scaled to a maximum of 1.

    Parameters
    ----------
    values : array-like
        Sample values (at least two distinct values).
    n_points : int, optional
        Number of evaluation points. Default 512.

    Returns
    -------
    tuple of (numpy.ndarray, numpy.ndarray)
        Evaluation grid and scaled density.
    """
    values = np.asarray(values, dtype=float)
    kde = stats.gaussian_kde(values)
    pad = 3 * values.std(ddof=1) * kde.factor
    grid = np.linspace(values.min() - pad, values.max() + pad, n_points)
    density = kde(grid)
    return grid, density / density.max()


def create_difference_density_plot(diff, metric, output_path):
    """
    Plot the scaled density of upper - lower differences.

    A red dashed line marks zero and a dashed line in the metric color marks
    the mean.

    Parameters
    ----------
    diff : Series
        Differences from analysis.vegetation_difference().
    metric : str
        Key of config.VEGETATION_METRICS.
    output_path : str or Path
        Output PNG path.

    Returns
    -------
    None
        Saves figure to file
    """
    style = VEGETATION_METRICS[metric]
    grid, density = scaled_density(diff)

    fig, ax = plt.subplots(figsize=figure_size(DENSITY_PLOT_PX))
    ax.fill_between(grid, density, color=style['fill'], alpha=0.5, linewidth=0)
    ax.plot(grid, density, color=style['color'], linewidth=0.8)
    ax.axvline(0, color='red', linestyle='--', linewidth=0.6)
    ax.axvline(diff.mean(), color=style['color'], linestyle='--', linewidth=0.6)

    ax.set_xlabel(style['label'], fontsize=6, fontweight='bold')
    ax.set_ylabel('Scaled transect density', fontsize=6, fontweight='bold')
    ax.tick_params(labelsize=5)

    plt.tight_layout()
    plt.savefig(output_path, dpi=PLOT_DPI)
    plt.close()

    print(f"Density plot saved to {output_path}")


def group_label(suffix, treatment):
    """Axis label of a column suffix, e.g. '-30' -> '-30°', '1_25' -> '1.25'."""
    if treatment == 'rotated':
        return f"{suffix}°"
    return suffix.replace('_', '.')


def treatment_long_format(table, treatment, coeff=NDVI_SCALE_COEFF):
    """
    Gather NDVI and VCH difference columns into long format.

    NDVI differences are multiplied by coeff so both metrics share the
    canopy height axis.

    Returns
    -------
    DataFrame
        ET_ID, Group, Difference and Type ('VCH' or 'NDVI') columns.
    """
    frames = []
    for prefix in BOXPLOT_COLORS:
        columns = treatment_columns(table, prefix)
        long_df = table.melt(id_vars='ET_ID', value_vars=columns,
                             var_name='Group', value_name='Difference')
        long_df['Group'] = [group_label(c[len(prefix) + 1:], treatment)
                            for c in long_df['Group']]
        if prefix == 'NDVI':
            long_df['Difference'] = long_df['Difference'] * coeff
        long_df['Type'] = prefix
        frames.append(long_df)
    return pd.concat(frames, ignore_index=True)


def create_treatment_boxplot(table, treatment, output_path, coeff=NDVI_SCALE_COEFF):
    """
    Box plot of VCH and NDVI differences per treatment group.

    Parameters
    ----------
    table : DataFrame
        Combined ("TwoDiff") table of the treatment.
    treatment : str
        Key of config.TREATMENTS.
    output_path : str or Path
        Output PNG path.
    coeff : float, optional
        NDVI scale coefficient of the secondary axis.

    Returns
    -------
    None
        Saves figure to file

    Notes
    -----
    Outliers are hidden. Boxes of the two metrics are dodged around each
    group position; the right axis shows NDVI differences (left / coeff).
    """
    config = TREATMENTS[treatment]
    long_df = treatment_long_format(table, treatment, coeff)
    labels = [group_label(format_group_value(v), treatment) for v in config['values']]
    labels = [label for label in labels if label in set(long_df['Group'])]

    fig, ax = plt.subplots(figsize=figure_size(BOX_PLOT_PX))
    offsets = {'VCH': -0.125, 'NDVI': 0.125}
    for prefix, (fill, color) in BOXPLOT_COLORS.items():
        subset = long_df[long_df['Type'] == prefix]
        data = [subset.loc[subset['Group'] == label, 'Difference'].dropna().values
                for label in labels]
        positions = np.arange(len(labels)) + offsets[prefix]
        ax.boxplot(data, positions=positions, widths=0.25, patch_artist=True,
                   showfliers=False,
                   boxprops=dict(facecolor=fill, edgecolor=color, linewidth=0.5),
                   medianprops=dict(color=color, linewidth=0.5),
                   whiskerprops=dict(color=color, linewidth=0.5),
                   capprops=dict(color=color, linewidth=0.5))

    ax.axhline(0, color='red', alpha=0.5, linestyle='--', linewidth=0.5)
    ax.set_xticks(np.arange(len(labels)))
    ax.set_xticklabels(labels)
    ax.set_xlabel(config['axis_label'], fontsize=6, fontweight='bold')
    ax.set_ylim(*config['ylim'])
    if config['yticks'] is not None:
        ax.set_yticks(config['yticks'])

    vch_color = BOXPLOT_COLORS['VCH'][1]
    ndvi_color = BOXPLOT_COLORS['NDVI'][1]
    ax.set_ylabel(VEGETATION_METRICS['CanopyHt']['label'], color=vch_color,
                  fontsize=6, fontweight='bold')
    ax.tick_params(axis='y', colors=vch_color)
    ax.spines['left'].set_color(vch_color)

    secondary = ax.secondary_yaxis('right', functions=(lambda y: y / coeff,
                                                       lambda y: y * coeff))
    secondary.set_ylabel(VEGETATION_METRICS['NDVI']['label'], color=ndvi_color,
                         fontsize=6, fontweight='bold')
    secondary.tick_params(axis='y', colors=ndvi_color, labelsize=5)
    secondary.spines['right'].set_color(ndvi_color)
    ax.tick_params(labelsize=5)

    plt.tight_layout()
    plt.savefig(output_path, dpi=PLOT_DPI)
    plt.close()

    print(f"Box plot saved to {output_path}")


def save_difference_summary(summaries, output_path):
    """
    Save difference summaries next to their baselines.

    Parameters
    ----------
    summaries : dict
        Summary dicts (analysis.summarize_difference) keyed by metric.
    output_path : str or Path
        Output file path for statistics text file

    Returns
    -------
    None
        Writes statistics to text file
    """
    output_path = Path(output_path)

    with open(output_path, 'w') as f:
        f.write("Upper - Lower Segment Differences\n")
        f.write("="*80 + "\n\n")

        for metric, summary in summaries.items():
            f.write(f"{metric}:\n")
            f.write(f"  N: {summary['n']:,}\n")
            f.write(f"  Mean: {summary['mean']:.6f}\n")
            f.write(f"  Median: {summary['median']:.6f}\n")
            f.write(f"  Negative: {summary['negative_pct']:.2f}%\n")
            if metric in BASELINES:
                baseline = BASELINES[metric]
                f.write(f"  Baseline mean: {baseline['mean']}\n")
                f.write(f"  Baseline negative: {baseline['negative_pct']}%\n")
            f.write("\n")

    print(f"Difference summary saved to {output_path}")


def summarize_treatment(table, treatment, output_path):
    """
    Save medians (sorted descending) and summary statistics of the VCH and
    NDVI difference columns of one treatment.

    Returns
    -------
    dict
        Median Series keyed by metric prefix.
    """
    output_path = Path(output_path)
    medians = {}

    with open(output_path, 'w') as f:
        f.write(f"Adjusted Transect Analysis: {treatment} ({len(table):,} transects)\n")
        f.write("="*80 + "\n\n")

        for prefix in BOXPLOT_COLORS:
            columns = treatment_columns(table, prefix)
            median = table[columns].median().sort_values(ascending=False)
            medians[prefix] = median

            f.write(f"{prefix} medians:\n")
            for column, value in median.items():
                f.write(f"  {column}: {value:.4f}\n")
            f.write(f"\n{prefix} summary:\n")
            f.write(table[columns].describe().to_string())
            f.write("\n\n")

    print(f"Treatment summary saved to {output_path}")
    return medians
