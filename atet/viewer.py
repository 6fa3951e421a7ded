"""
Helpers behind the interactive transect map.

This module contains functions for:
- Pre-computing mountain, watershed and transect aggregate layers
- Building color legends for vegetation differences
- Finding the transect nearest to a map click and its elevation profile
- Reading and writing click coordinates as URL query parameters
"""

import numpy as np
import pandas as pd
import geopandas as gpd
import plotly.graph_objects as go
from shapely.geometry import Point

from atet.config import (
    AGGREGATION_LEVELS, VEGETATION_METRICS, TRANSECT_ID,
    STORAGE_CRS
)
from atet.preprocessing import to_metric_crs


def add_difference_columns(transects):
    """Add <metric>_diff (upper - lower) columns for every vegetation metric."""
    result = transects.copy()
    for metric, columns in VEGETATION_METRICS.items():
        result[f"{metric}_diff"] = result[columns['upper']] - result[columns['lower']]
    return result


def aggregate_transects(transects, level):
    """
    Aggregate transect differences to a map level.

    Parameters
    ----------
    transects : GeoDataFrame
        Published transects with L_/U_ metric columns, the mountain name and
        HYBAS_ID.
    level : str
        'mountain', 'watershed' or 'transect'.

    Returns
    -------
    GeoDataFrame
        One feature per unit with mean <metric>_diff columns and
        n_transects; the transect level returns every transect, with all of
        its attributes and n_transects = 1.
    """
    if level not in AGGREGATION_LEVELS:
        raise ValueError(f"Unknown level '{level}', expected one of {list(AGGREGATION_LEVELS)}")

    key = AGGREGATION_LEVELS[level]
    diffs = add_difference_columns(transects)
    diff_cols = [f"{metric}_diff" for metric in VEGETATION_METRICS]

    if level == 'transect':
        layer = diffs.copy()
        layer['n_transects'] = 1
        return layer

    diffs = diffs.dropna(subset=[key])
    aggfunc = {col: 'mean' for col in diff_cols}
    aggfunc[TRANSECT_ID] = 'count'
    layer = diffs[[key, TRANSECT_ID] + diff_cols + ['geometry']].dissolve(by=key, aggfunc=aggfunc)
    layer = layer.rename(columns={TRANSECT_ID: 'n_transects'}).reset_index()
    print(f"Aggregated {len(diffs):,} transects into {len(layer):,} {level} units")
    return layer


def legend_bins(values, palette):
    """
    Symmetric bins around zero, one per palette color.

    The bins span +/- the 95th percentile of the absolute values.

    Returns
    -------
    list of tuple
        (low, high, color) per bin, in increasing order.
    """
    values = pd.Series(values).dropna()
    limit = float(np.percentile(np.abs(values), 95)) if len(values) else 1.0
    if limit == 0:
        limit = 1.0
    edges = np.linspace(-limit, limit, len(palette) + 1)
    return [(edges[i], edges[i + 1], color) for i, color in enumerate(palette)]


def color_for(value, bins):
    """Bin color of a value; values outside the range take the end colors."""
    if value is None or pd.isna(value):
        return '#bdbdbd'
    for low, high, color in bins:
        if value < high:
            return color
    return bins[-1][2]


def legend_html(bins, title, digits=2):
    items = "".join(
        f'<div style="display:flex;align-items:center;margin:2px 0;">'
        f'<span style="display:inline-block;width:12px;height:12px;background:{color};margin-right:6px;"></span>'
        f'<span style="font-size:12px">{low:.{digits}f} to {high:.{digits}f}</span></div>'
        for low, high, color in bins
    )
    return f"""
    <div style="
        position: fixed;
        bottom: 20px; right: 20px; z-index: 9999;
        background: rgba(255,255,255,.95);
        padding: 8px 10px; border: 1px solid rgba(0,0,0,.15);
        border-radius: 8px;
    ">
        <div style="font-size:12px;font-weight:700;margin-bottom:6px;">{title}</div>
        {items}
    </div>
    """


def nearest_transect(transects, lat, lon):
    """
    Transect closest to a clicked coordinate.

    Parameters
    ----------
    transects : GeoDataFrame
        Transects, preferably already in a metric CRS (see
        to_metric_crs); geographic input is reprojected on each call.
    lat, lon : float
        Clicked coordinate (WGS84).

    Returns
    -------
    Series or None
        The nearest transect with an added distance_m, or None if there are
        no transects.
    """
    if len(transects) == 0:
        return None
    metric = to_metric_crs(transects)
    click = gpd.GeoSeries([Point(lon, lat)], crs=STORAGE_CRS).to_crs(metric.crs).iloc[0]
    distances = metric.geometry.distance(click)
    idx = distances.idxmin()
    row = transects.loc[idx].copy()
    row['distance_m'] = float(distances.loc[idx])
    return row


def transect_profile(transect):
    """
    Lower/upper endpoint table of a transect.

    Returns
    -------
    DataFrame
        Rows 'Lower' and 'Upper' with Elevation and one column per
        vegetation metric.
    """
    profile = pd.DataFrame({
        'Position': ['Lower', 'Upper'],
        'Elevation': [transect.get('CF_elv'), transect.get('nonF_elv')],
    })
    for metric, columns in VEGETATION_METRICS.items():
        profile[metric] = [transect.get(columns['lower']), transect.get(columns['upper'])]
    return profile


def profile_chart(profile, metric):
    """Plotly chart of a vegetation metric against elevation along a transect."""
    style = VEGETATION_METRICS[metric]
    fig = go.Figure(go.Scatter(
        x=profile['Elevation'], y=profile[metric],
        mode='lines+markers+text', text=profile['Position'],
        textposition='top center',
        line=dict(color=style['color']), marker=dict(size=10, color=style['fill']),
    ))
    fig.update_layout(xaxis_title='Elevation (m)', yaxis_title=metric, height=320,
                      margin=dict(l=40, r=20, t=30, b=40))
    return fig


def parse_click_params(params):
    """
    Read a clicked coordinate from URL query parameters.

    Returns
    -------
    tuple of (float, float) or None
        (lat, lon), or None when missing, malformed or out of range.
    """
    try:
        lat = float(params.get('lat'))
        lon = float(params.get('lon'))
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


def format_click_params(lat, lon):
    return {'lat': f"{lat:.6f}", 'lon': f"{lon:.6f}"}
