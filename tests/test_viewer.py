import numpy as np
import geopandas as gpd
import plotly.graph_objects as go
import pytest
from shapely.geometry import Point

from atet.viewer import (
    add_difference_columns, aggregate_transects, legend_bins, color_for,
    legend_html, nearest_transect, transect_profile, profile_chart,
    parse_click_params, format_click_params
)
from atet.preprocessing import to_metric_crs


def _make_synthetic_transects():
    """Three transects in two watersheds of one range, in WGS84."""
    points = [Point(-123.50, 47.80), Point(-123.49, 47.80), Point(-123.30, 47.90)]
    return gpd.GeoDataFrame({
        'ET_ID': [1, 2, 3],
        'HYBAS_ID': [7, 7, 8],
        'MapName': ['Olympic Mountains'] * 3,
        'CF_elv': [1200.0, 1250.0, 1300.0],
        'nonF_elv': [1500.0, 1480.0, 1650.0],
        'L_CanopyHt': [20.0, 18.0, 25.0],
        'U_CanopyHt': [4.0, 6.0, 5.0],
        'L_NDVI': [0.8, 0.7, 0.75],
        'U_NDVI': [0.4, 0.5, 0.35],
    }, geometry=[p.buffer(0.001) for p in points], crs='EPSG:4326')


def test_add_difference_columns():
    diffs = add_difference_columns(_make_synthetic_transects())
    assert diffs['CanopyHt_diff'].tolist() == [-16.0, -12.0, -20.0]
    assert np.allclose(diffs['NDVI_diff'], [-0.4, -0.2, -0.4])


def test_aggregate_transects_by_watershed():
    layer = aggregate_transects(_make_synthetic_transects(), 'watershed').set_index('HYBAS_ID')

    assert layer.loc[7, 'n_transects'] == 2
    assert layer.loc[7, 'CanopyHt_diff'] == -14.0
    assert layer.loc[8, 'n_transects'] == 1


def test_aggregate_transects_by_mountain_range():
    layer = aggregate_transects(_make_synthetic_transects(), 'mountain')
    assert len(layer) == 1
    assert layer['n_transects'].iloc[0] == 3


def test_transect_level_keeps_attributes():
    layer = aggregate_transects(_make_synthetic_transects(), 'transect')
    assert len(layer) == 3
    assert (layer['n_transects'] == 1).all()
    assert 'CF_elv' in layer.columns and 'NDVI_diff' in layer.columns


def test_aggregate_transects_unknown_level():
    with pytest.raises(ValueError):
        aggregate_transects(_make_synthetic_transects(), 'country')


def test_legend_bins_are_symmetric():
    palette = ['#000', '#111', '#222', '#333']
    bins = legend_bins([-2.0, -1.0, 1.0, 2.0, np.nan], palette)

    assert len(bins) == 4
    assert np.isclose(bins[0][0], -bins[-1][1])
    assert [color for _, _, color in bins] == palette

    assert legend_bins([], palette)[-1][1] == 1.0
    assert legend_bins([0.0, 0.0], palette)[-1][1] == 1.0


def test_color_for():
    bins = legend_bins([-1.0, 1.0], ['#a', '#b'])
    assert color_for(-0.5, bins) == '#a'
    assert color_for(0.5, bins) == '#b'
    assert color_for(-10.0, bins) == '#a'
    assert color_for(10.0, bins) == '#b'
    assert color_for(np.nan, bins) == '#bdbdbd'
    assert color_for(None, bins) == '#bdbdbd'


def test_legend_html_lists_every_bin():
    bins = legend_bins([-1.0, 1.0], ['#aaaaaa', '#bbbbbb'])
    html = legend_html(bins, 'NDVI difference')
    assert 'NDVI difference' in html
    assert '#aaaaaa' in html and '#bbbbbb' in html


def test_nearest_transect():
    transects = _make_synthetic_transects()

    nearest = nearest_transect(transects, 47.90, -123.30)
    assert nearest['ET_ID'] == 3
    assert nearest['distance_m'] == 0

    far = nearest_transect(transects, 47.80, -123.505)
    assert far['ET_ID'] == 1
    assert far['distance_m'] > 0

    assert nearest_transect(transects.iloc[0:0], 47.8, -123.5) is None


def test_nearest_transect_uses_metric_layer_as_is(monkeypatch):
    metric = to_metric_crs(_make_synthetic_transects())

    def fail_to_crs(*args, **kwargs):
        raise AssertionError("metric transects were reprojected")

    monkeypatch.setattr(gpd.GeoDataFrame, 'to_crs', fail_to_crs)
    nearest = nearest_transect(metric, 47.90, -123.30)

    assert nearest['ET_ID'] == 3
    assert nearest['distance_m'] == 0


def test_transect_profile_and_chart():
    transect = _make_synthetic_transects().iloc[0]
    profile = transect_profile(transect)

    assert profile['Position'].tolist() == ['Lower', 'Upper']
    assert profile['Elevation'].tolist() == [1200.0, 1500.0]
    assert profile['CanopyHt'].tolist() == [20.0, 4.0]

    fig = profile_chart(profile, 'NDVI')
    assert isinstance(fig, go.Figure)
    assert list(fig.data[0].y) == [0.8, 0.4]


def test_click_params():
    assert parse_click_params({'lat': '47.8', 'lon': '-123.5'}) == (47.8, -123.5)
    assert parse_click_params({}) is None
    assert parse_click_params({'lat': 'north', 'lon': '-123.5'}) is None
    assert parse_click_params({'lat': '95', 'lon': '-123.5'}) is None

    params = format_click_params(47.8, -123.5)
    assert params == {'lat': '47.800000', 'lon': '-123.500000'}
    assert parse_click_params(params) == (47.8, -123.5)
