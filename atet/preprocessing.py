"""
Centerline and transect geometry functions.

This module contains functions for:
- Building centerlines from elevational extremes
- Assigning watershed IDs and grouping mid-quarter segments
- Selecting the steepest centerline per group and buffering transects
- Rotating, extending and splitting transects for adjusted sampling
- Checking transect data quality

All lengths and buffers are in meters, so inputs are expected in a projected
CRS (see to_metric_crs).
"""

import numpy as np
import pandas as pd
import geopandas as gpd
from shapely import affinity
from shapely.geometry import LineString
from shapely.ops import substring

from atet.config import (
    BASIN_ID, CENTERLINE_ID, GROUP_ID, TRANSECT_ID, MEDIAL_AXIS_BAND, MOUNTAIN_NAME,
    GROUPING_DISTANCE, MIN_TRANSECT_LENGTH, MAX_TRANSECT_LENGTH,
    TRANSECT_BUFFER, PROCESSING_CRS
)


def to_metric_crs(gdf):
    """
    Reproject a GeoDataFrame to a metric CRS if it is geographic.

    Uses the estimated UTM zone of the data, falling back to
    config.PROCESSING_CRS for empty inputs.
    """
    if gdf.crs is not None and gdf.crs.is_projected:
        return gdf
    crs = gdf.estimate_utm_crs() if len(gdf) > 0 else PROCESSING_CRS
    return gdf.to_crs(crs)


# =====================================================================
# Centerline Construction
# =====================================================================

def build_centerlines(extremes, crs):
    """
    Connect the lowest closed forest to the highest non-forested pixel.

    Parameters
    ----------
    extremes : DataFrame
        One row per medial-axis buffer with CF_elv, CF_x, CF_y, nonF_elv,
        nonF_x, nonF_y (see atet.rasters.find_extremes).
    crs : str or pyproj.CRS
        Projected CRS of the coordinates. Lengths are taken in CRS units,
        so geographic CRSs are rejected.

    Returns
    -------
    GeoDataFrame
        Raw centerlines with CL_length (m), elvRange (m), CL_ID and the
        buffer attributes except the count and squared distance.

    Raises
    ------
    ValueError
        If crs is missing or geographic.

    Notes
    -----
    Buffers missing either extreme, or whose non-forested extreme is not
    strictly higher than the closed-forest extreme, yield no centerline.
    """
    crs = gpd.GeoSeries([], crs=crs).crs
    if crs is None or crs.is_geographic:
        raise ValueError(f"build_centerlines needs a projected CRS, got {crs}")

    required = ['CF_elv', 'CF_x', 'CF_y', 'nonF_elv', 'nonF_x', 'nonF_y']
    valid = extremes.dropna(subset=required)
    valid = valid[valid['nonF_elv'] > valid['CF_elv']].copy()
    print(f"Building {len(valid)} centerlines from {len(extremes)} buffers")

    geometry = [LineString([(row.CF_x, row.CF_y), (row.nonF_x, row.nonF_y)])
                for row in valid.itertuples(index=False)]
    attributes = valid.drop(columns=['count', MEDIAL_AXIS_BAND, 'geometry'],
                            errors='ignore')
    centerlines = gpd.GeoDataFrame(attributes.reset_index(drop=True),
                                   geometry=geometry, crs=crs)

    centerlines['CL_length'] = centerlines.geometry.length
    centerlines['elvRange'] = centerlines['nonF_elv'] - centerlines['CF_elv']
    centerlines[CENTERLINE_ID] = np.arange(1, len(centerlines) + 1)
    return centerlines


def assign_basin_ids(centerlines, basins):
    """
    Attach the ID of the basin containing each centerline centroid.

    Centerlines whose centroid falls in no basin are dropped; when several
    basins match, the first is kept.
    """
    centroids = gpd.GeoDataFrame(
        centerlines[[CENTERLINE_ID]],
        geometry=centerlines.geometry.centroid,
        crs=centerlines.crs
    )
    joined = gpd.sjoin(centroids, basins[[BASIN_ID, 'geometry']].to_crs(centerlines.crs),
                       how='inner', predicate='intersects')
    joined = joined[~joined.index.duplicated(keep='first')]

    result = centerlines.drop(columns=[BASIN_ID], errors='ignore').loc[joined.index].copy()
    result[BASIN_ID] = joined[BASIN_ID].values
    print(f"Assigned basin IDs to {len(result)}/{len(centerlines)} centerlines")
    return result


def segment_mid_quarter(centerlines):
    """
    Clip each centerline to the circle of radius CL_length / 8 around its
    centroid, i.e. the central quarter of the line.
    """
    circles = centerlines.geometry.centroid.buffer(centerlines['CL_length'].values / 8)
    segments = centerlines[[CENTERLINE_ID, BASIN_ID, 'elvRange', 'CL_length']].copy()
    segments = gpd.GeoDataFrame(segments,
                                geometry=centerlines.geometry.intersection(circles),
                                crs=centerlines.crs)
    return segments


def group_segment_buffers(segments, distance=GROUPING_DISTANCE):
    """
    Group nearby mid-quarter segments within each basin.

    Parameters
    ----------
    segments : GeoDataFrame
        Output of segment_mid_quarter().
    distance : float, optional
        Buffer distance in meters.

    Returns
    -------
    GeoDataFrame
        One polygon per spatial group with BASIN_ID and group_id.
    """
    buffered = gpd.GeoDataFrame(segments[[BASIN_ID]].copy(),
                                geometry=segments.geometry.buffer(distance),
                                crs=segments.crs)
    groups = buffered.dissolve(by=BASIN_ID).explode(index_parts=False).reset_index()
    groups[GROUP_ID] = np.arange(1, len(groups) + 1)
    print(f"Formed {len(groups)} groups from {len(segments)} segments")
    return groups[[BASIN_ID, GROUP_ID, 'geometry']]


# =====================================================================
# Transect Selection
# =====================================================================

def select_steepest_centerlines(centerlines, segments, groups):
    """
    Keep the centerline with the largest elevation range in each group.

    Parameters
    ----------
    centerlines : GeoDataFrame
        Raw centerlines with BASIN_ID.
    segments : GeoDataFrame
        Mid-quarter segments (segment_mid_quarter).
    groups : GeoDataFrame
        Segment groups (group_segment_buffers).

    Returns
    -------
    GeoDataFrame
        Exactly one centerline per group, tagged with group_id.
    """
    joined = gpd.sjoin(groups, segments[[CENTERLINE_ID, BASIN_ID, 'elvRange', 'geometry']],
                       how='inner', predicate='intersects',
                       lsuffix='group', rsuffix='segment')
    joined = joined[joined[f'{BASIN_ID}_group'] == joined[f'{BASIN_ID}_segment']]

    steepest = (joined.sort_values([GROUP_ID, 'elvRange', CENTERLINE_ID],
                                   ascending=[True, False, True])
                      .drop_duplicates(subset=GROUP_ID, keep='first'))

    selected = centerlines.merge(steepest[[GROUP_ID, CENTERLINE_ID]], on=CENTERLINE_ID,
                                 how='inner')
    print(f"Selected {len(selected)} steepest centerlines from {len(groups)} groups")
    return selected


def filter_by_length(transects, min_length=MIN_TRANSECT_LENGTH,
                     max_length=MAX_TRANSECT_LENGTH):
    """Keep centerlines with min_length <= CL_length <= max_length."""
    return transects[transects['CL_length'].between(min_length, max_length)].copy()


def buffer_transects(centerlines, distance=TRANSECT_BUFFER):
    transects = centerlines.copy()
    transects['geometry'] = centerlines.geometry.buffer(distance)
    return transects


def add_transect_attributes(transects):
    """
    Add the transect ID (ET_ID) and average slope in degrees.
    """
    result = transects.reset_index(drop=True).copy()
    result[TRANSECT_ID] = np.arange(1, len(result) + 1)
    result['avg_slope'] = np.degrees(np.arctan(result['elvRange'] / result['CL_length']))
    return result


def assign_mountain_labels(transects, mountains, name_col=MOUNTAIN_NAME):
    """
    Label transects with the mountain range containing their centroid.

    Transects outside every range keep a missing label.
    """
    centroids = gpd.GeoDataFrame(geometry=transects.geometry.centroid, crs=transects.crs)
    joined = gpd.sjoin(centroids, mountains[[name_col, 'geometry']].to_crs(transects.crs),
                       how='left', predicate='intersects')
    joined = joined[~joined.index.duplicated(keep='first')]

    result = transects.drop(columns=[name_col], errors='ignore').copy()
    result[name_col] = joined[name_col].reindex(result.index).values
    print(f"Labelled {result[name_col].notna().sum()}/{len(result)} transects with mountain names")
    return result


def check_transect_quality(transects, min_length=MIN_TRANSECT_LENGTH,
                           max_length=MAX_TRANSECT_LENGTH):
    """
    Count transects that violate the dataset's quality rules.

    Returns
    -------
    dict
        Violation counts for:
        - not_ascending : upper endpoint not strictly higher than the lower
        - out_of_window : CL_length outside the length window
        - duplicate_groups : more than one transect per group
        - duplicate_ids : repeated ET_ID values
        A check whose ID column is missing is reported as None.
    """
    violations = {
        'not_ascending': int((transects['nonF_elv'] <= transects['CF_elv']).sum()),
        'out_of_window': int((~transects['CL_length'].between(min_length, max_length)).sum()),
        'duplicate_groups': int(transects[GROUP_ID].duplicated().sum())
        if GROUP_ID in transects else None,
        'duplicate_ids': int(transects[TRANSECT_ID].duplicated().sum())
        if TRANSECT_ID in transects else None,
    }

    for rule, count in violations.items():
        if count is None:
            status = "unavailable"
        else:
            status = "OK" if count == 0 else f"{count} violations"
        print(f"  {rule}: {status}")
    return violations


# =====================================================================
# Adjusted Sampling
# =====================================================================

def rotate_transects(centerlines, angles):
    """
    Rotate each centerline about its centroid by each angle (degrees,
    counter-clockwise), tagging the copies with theta.
    """
    rotated = []
    for angle in angles:
        copy = centerlines[[TRANSECT_ID, 'geometry']].copy()
        copy['geometry'] = [affinity.rotate(geom, angle, origin='centroid')
                            for geom in centerlines.geometry]
        copy['theta'] = angle
        rotated.append(copy)
    return gpd.GeoDataFrame(pd.concat(rotated, ignore_index=True), crs=centerlines.crs)


def extend_transects(centerlines, ratios):
    """
    Scale each centerline about its centroid by each length ratio, tagging
    the copies with ratio.
    """
    extended = []
    for ratio in ratios:
        copy = centerlines[[TRANSECT_ID, 'geometry']].copy()
        copy['geometry'] = [affinity.scale(geom, ratio, ratio, origin='centroid')
                            for geom in centerlines.geometry]
        copy['ratio'] = ratio
        extended.append(copy)
    return gpd.GeoDataFrame(pd.concat(extended, ignore_index=True), crs=centerlines.crs)


def split_transect_segments(lines, group_col, buffer=TRANSECT_BUFFER):
    """
    Split lines at their midpoint into two buffered segments.

    Parameters
    ----------
    lines : GeoDataFrame
        Centerlines running from the lower to the upper endpoint, with ET_ID
        and group_col.
    group_col : str
        Treatment group column ('theta' or 'ratio').
    buffer : float, optional
        Segment buffer distance in meters.

    Returns
    -------
    GeoDataFrame
        Two rows per line: Segment_ID 1 holds the half starting at the lower
        endpoint, Segment_ID 2 the other half.
    """
    records = []
    for row in lines.itertuples(index=False):
        for segment_id, (start, end) in ((1, (0.0, 0.5)), (2, (0.5, 1.0))):
            half = substring(row.geometry, start, end, normalized=True)
            records.append({
                TRANSECT_ID: getattr(row, TRANSECT_ID),
                group_col: getattr(row, group_col),
                'Segment_ID': segment_id,
                'geometry': half.buffer(buffer),
            })
    return gpd.GeoDataFrame(records, geometry='geometry', crs=lines.crs)
