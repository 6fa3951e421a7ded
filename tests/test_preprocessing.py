import numpy as np
import pytest
import pandas as pd
import geopandas as gpd
from shapely.geometry import LineString, Point, box

from atet.config import BASIN_ID, CENTERLINE_ID, MEDIAL_AXIS_BAND, MOUNTAIN_NAME, TRANSECT_ID
from atet.preprocessing import (
    GROUP_ID, to_metric_crs, build_centerlines, assign_basin_ids,
    segment_mid_quarter, group_segment_buffers, select_steepest_centerlines,
    filter_by_length, buffer_transects, add_transect_attributes,
    assign_mountain_labels, check_transect_quality, rotate_transects,
    extend_transects, split_transect_segments
)

CRS = 'EPSG:32610'


def _make_synthetic_centerlines():
    """Three basin-1 centerlines (two close together) and one basin-2 centerline."""
    lines = [
        LineString([(0, 0), (100, 0)]),
        LineString([(0, 100), (100, 100)]),
        LineString([(0, 1000), (100, 1000)]),
        LineString([(0, 50), (100, 50)]),
    ]
    return gpd.GeoDataFrame({
        CENTERLINE_ID: [1, 2, 3, 4],
        BASIN_ID: [1, 1, 1, 2],
        'elvRange': [100.0, 300.0, 50.0, 80.0],
        'CL_length': [100.0, 100.0, 100.0, 100.0],
    }, geometry=lines, crs=CRS)


def test_to_metric_crs_projects_geographic_data():
    gdf = gpd.GeoDataFrame(geometry=[Point(-123.5, 47.8)], crs='EPSG:4326')
    projected = to_metric_crs(gdf)
    assert projected.crs.is_projected

    assert to_metric_crs(projected) is projected


def test_build_centerlines_keeps_ascending_extremes():
    extremes = pd.DataFrame({
        'x': [10.0, 20.0, 30.0],
        'y': [10.0, 20.0, 30.0],
        'count': [5, 5, 5],
        MEDIAL_AXIS_BAND: [9.0, 4.0, 1.0],
        'CF_elv': [1000.0, 1200.0, np.nan],
        'CF_x': [0.0, 0.0, np.nan],
        'CF_y': [0.0, 0.0, np.nan],
        'nonF_elv': [1200.0, 1200.0, 1500.0],
        'nonF_x': [300.0, 50.0, 60.0],
        'nonF_y': [400.0, 50.0, 60.0],
    })

    centerlines = build_centerlines(extremes, CRS)

    assert len(centerlines) == 1
    row = centerlines.iloc[0]
    assert row['CL_length'] == 500
    assert row['elvRange'] == 200
    assert row[CENTERLINE_ID] == 1
    assert 'count' not in centerlines.columns
    assert MEDIAL_AXIS_BAND not in centerlines.columns
    assert list(row.geometry.coords)[0] == (0.0, 0.0)


def test_build_centerlines_rejects_geographic_crs():
    extremes = pd.DataFrame({
        'CF_elv': [1000.0], 'CF_x': [-123.50], 'CF_y': [47.80],
        'nonF_elv': [1500.0], 'nonF_x': [-123.49], 'nonF_y': [47.81],
    })

    with pytest.raises(ValueError, match='projected CRS'):
        build_centerlines(extremes, 'EPSG:4326')
    with pytest.raises(ValueError, match='projected CRS'):
        build_centerlines(extremes, None)


def test_assign_basin_ids_drops_lines_outside_basins():
    basins = gpd.GeoDataFrame({BASIN_ID: [10, 20]},
                              geometry=[box(0, 0, 1000, 1000), box(1000, 0, 2000, 1000)],
                              crs=CRS)
    centerlines = gpd.GeoDataFrame({CENTERLINE_ID: [1, 2, 3]}, geometry=[
        LineString([(100, 100), (300, 100)]),
        LineString([(1100, 100), (1500, 100)]),
        LineString([(5000, 5000), (5100, 5000)]),
    ], crs=CRS)

    result = assign_basin_ids(centerlines, basins).sort_values(CENTERLINE_ID)

    assert result[CENTERLINE_ID].tolist() == [1, 2]
    assert result[BASIN_ID].tolist() == [10, 20]


def test_segment_mid_quarter_clips_central_quarter():
    centerlines = gpd.GeoDataFrame({
        CENTERLINE_ID: [1], BASIN_ID: [1], 'elvRange': [200.0], 'CL_length': [800.0],
    }, geometry=[LineString([(0, 0), (800, 0)])], crs=CRS)

    segments = segment_mid_quarter(centerlines)

    assert abs(segments.geometry.iloc[0].length - 200) < 1e-3
    assert segments.geometry.iloc[0].centroid.distance(Point(400, 0)) < 1e-6


def test_group_segment_buffers_never_merge_across_basins():
    centerlines = _make_synthetic_centerlines()
    groups = group_segment_buffers(segment_mid_quarter(centerlines))

    assert len(groups) == 3
    assert groups[GROUP_ID].tolist() == [1, 2, 3]
    assert sorted(groups[BASIN_ID].tolist()) == [1, 1, 2]


def test_select_steepest_centerlines_one_per_group():
    centerlines = _make_synthetic_centerlines()
    segments = segment_mid_quarter(centerlines)
    groups = group_segment_buffers(segments)

    selected = select_steepest_centerlines(centerlines, segments, groups)

    assert sorted(selected[CENTERLINE_ID].tolist()) == [2, 3, 4]
    assert not selected[GROUP_ID].duplicated().any()


def test_filter_by_length_is_inclusive():
    transects = pd.DataFrame({'CL_length': [299.0, 300.0, 3000.0, 3001.0]})
    assert filter_by_length(transects)['CL_length'].tolist() == [300.0, 3000.0]


def test_buffered_transects_get_ids_and_slope():
    centerlines = _make_synthetic_centerlines().iloc[[0, 1]]
    centerlines = centerlines.assign(elvRange=[100.0, 0.0])

    transects = add_transect_attributes(buffer_transects(centerlines, distance=45))

    assert transects[TRANSECT_ID].tolist() == [1, 2]
    assert np.allclose(transects['avg_slope'], [45.0, 0.0])
    assert transects.geometry.geom_type.eq('Polygon').all()


def test_assign_mountain_labels_leaves_outside_transects_empty():
    mountains = gpd.GeoDataFrame({MOUNTAIN_NAME: ['Olympic Mountains']},
                                 geometry=[box(-50, -50, 500, 500)], crs=CRS)
    transects = _make_synthetic_centerlines()

    labelled = assign_mountain_labels(transects, mountains)

    assert labelled[MOUNTAIN_NAME].iloc[0] == 'Olympic Mountains'
    assert pd.isna(labelled[MOUNTAIN_NAME].iloc[2])
    assert len(labelled) == len(transects)


def test_check_transect_quality_counts_violations():
    transects = pd.DataFrame({
        TRANSECT_ID: [1, 2, 3, 3],
        GROUP_ID: [1, 2, 2, 4],
        'CF_elv': [1000.0, 1000.0, 1200.0, 900.0],
        'nonF_elv': [1100.0, 1300.0, 1100.0, 1000.0],
        'CL_length': [500.0, 100.0, 500.0, 500.0],
    })

    violations = check_transect_quality(transects)

    assert violations == {
        'not_ascending': 1,
        'out_of_window': 1,
        'duplicate_groups': 1,
        'duplicate_ids': 1,
    }


def test_check_transect_quality_flags_missing_id_columns():
    transects = pd.DataFrame({
        'CF_elv': [1000.0, 1000.0],
        'nonF_elv': [1100.0, 1300.0],
        'CL_length': [500.0, 500.0],
    })

    violations = check_transect_quality(transects)

    assert violations['duplicate_groups'] is None
    assert violations['duplicate_ids'] is None
    assert violations['not_ascending'] == 0
    assert not any(violations.values())


def test_rotate_transects_about_centroid():
    centerlines = gpd.GeoDataFrame({TRANSECT_ID: [7]},
                                   geometry=[LineString([(0, 0), (100, 0)])], crs=CRS)

    rotated = rotate_transects(centerlines, [-30, 90])

    assert len(rotated) == 2
    assert rotated['theta'].tolist() == [-30, 90]
    start, end = list(rotated.geometry.iloc[1].coords)
    assert np.allclose(start, (50, -50))
    assert np.allclose(end, (50, 50))
    assert rotated.crs == centerlines.crs


def test_extend_transects_scales_length():
    centerlines = gpd.GeoDataFrame({TRANSECT_ID: [7]},
                                   geometry=[LineString([(0, 0), (100, 0)])], crs=CRS)

    extended = extend_transects(centerlines, [1.5, 2])

    assert extended['ratio'].tolist() == [1.5, 2]
    assert np.allclose(extended.geometry.length, [150, 200])
    assert np.allclose(list(extended.geometry.iloc[1].coords)[0], (-50, 0))


def test_split_transect_segments_lower_half_first():
    lines = gpd.GeoDataFrame({TRANSECT_ID: [7], 'theta': [30]},
                             geometry=[LineString([(0, 0), (100, 0)])], crs=CRS)

    segments = split_transect_segments(lines, 'theta', buffer=10)

    assert segments['Segment_ID'].tolist() == [1, 2]
    assert segments['theta'].tolist() == [30, 30]
    lower, upper = segments.geometry
    assert lower.contains(Point(10, 0)) and not lower.contains(Point(90, 0))
    assert upper.contains(Point(90, 0)) and not upper.contains(Point(10, 0))
