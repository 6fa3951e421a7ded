import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from atet.config import DENSITY_PLOT_PX, BOX_PLOT_PX
from atet.plotting import (
    figure_size, scaled_density, create_difference_density_plot, group_label,
    treatment_long_format, create_treatment_boxplot, save_difference_summary,
    summarize_treatment
)
from atet.analysis import summarize_difference


def _make_synthetic_two_diff(n=50, seed=0):
    rng = np.random.default_rng(seed)
    table = pd.DataFrame({'ET_ID': np.arange(1, n + 1)})
    for i, theta in enumerate([0, -30, 30]):
        table[f'NDVI_{theta}'] = rng.normal(-0.1 * (i + 1), 0.05, n)
    for i, theta in enumerate([0, -30, 30]):
        table[f'VCH_{theta}'] = rng.normal(-4.0 * (i + 1), 1.0, n)
    return table


def test_figure_size_gives_exact_pixels():
    assert figure_size((3000, 1500), dpi=600) == (5.0, 2.5)


def test_scaled_density_peaks_at_one():
    values = np.random.default_rng(1).normal(0, 1, 200)
    grid, density = scaled_density(values, n_points=128)

    assert len(grid) == len(density) == 128
    assert np.isclose(density.max(), 1.0)
    assert grid.min() < values.min() and grid.max() > values.max()


def test_density_plot_written_at_fixed_size(tmp_path):
    diff = pd.Series(np.random.default_rng(2).normal(-4, 3, 300))
    output_path = tmp_path / "vch_density.png"

    create_difference_density_plot(diff, 'CanopyHt', output_path)

    image = plt.imread(output_path)
    assert image.shape[:2] == (DENSITY_PLOT_PX[1], DENSITY_PLOT_PX[0])


def test_group_label():
    assert group_label('-30', 'rotated') == '-30°'
    assert group_label('1_25', 'extended') == '1.25'
    assert group_label('2', 'extended') == '2'


def test_treatment_long_format_scales_ndvi():
    table = pd.DataFrame({'ET_ID': [1], 'NDVI_0': [-0.1], 'NDVI_30': [0.2],
                          'VCH_0': [-3.0], 'VCH_30': [1.0]})

    long_df = treatment_long_format(table, 'rotated', coeff=38)

    assert list(long_df.columns) == ['ET_ID', 'Group', 'Difference', 'Type']
    assert long_df['Type'].tolist() == ['VCH', 'VCH', 'NDVI', 'NDVI']
    assert long_df['Group'].tolist() == ['0°', '30°', '0°', '30°']
    assert np.allclose(long_df['Difference'], [-3.0, 1.0, -3.8, 7.6])


def test_treatment_boxplot_written_at_fixed_size(tmp_path):
    output_path = tmp_path / "rotated_boxplot.png"

    create_treatment_boxplot(_make_synthetic_two_diff(), 'rotated', output_path)

    image = plt.imread(output_path)
    assert image.shape[:2] == (BOX_PLOT_PX[1], BOX_PLOT_PX[0])


def test_save_difference_summary(tmp_path):
    output_path = tmp_path / "summary.txt"
    summaries = {'NDVI': summarize_difference(pd.Series([-0.2, -0.1, 0.1]))}

    save_difference_summary(summaries, output_path)

    text = output_path.read_text()
    assert "NDVI:" in text
    assert "N: 3" in text
    assert "Negative: 66.67%" in text
    assert "Baseline mean" in text


def test_summarize_treatment_sorts_medians(tmp_path):
    output_path = tmp_path / "rotated_summary.txt"

    medians = summarize_treatment(_make_synthetic_two_diff(), 'rotated', output_path)

    assert set(medians) == {'VCH', 'NDVI'}
    assert medians['VCH'].index[0] == 'VCH_0'
    assert medians['VCH'].is_monotonic_decreasing
    assert "NDVI medians:" in output_path.read_text()
