import numpy as np
import pandas as pd
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from atet.config import MEDIAL_AXIS_BAND
from atet.rasters import (
    read_raster, write_raster, projected_crs, distance_to, fundamental_niche_edge,
    closed_forest_all_years, non_forested_all_years, aggregate_mean,
    circle_kernel, focal_circle_mean, expand_blocks,
    regional_forest_elevation, broad_treeline_ecotone, extract_ridges,
    extract_valleys, medial_axis, medial_axis_squared_distance,
    vectorize_centroids, extreme_pixel_masks, find_extremes
)

TRANSFORM = from_origin(0, 150, 30, 30)


def _ridge_valley_grid():
    ridges = np.zeros((5, 11), dtype=bool)
    valleys = np.zeros((5, 11), dtype=bool)
    ridges[:, 0] = True
    valleys[:, 10] = True
    return ridges, valleys


def test_distance_to_respects_neighborhood():
    mask = np.zeros((5, 5), dtype=bool)
    mask[2, 2] = True

    dist = distance_to(mask)
    assert dist[2, 2] == 0
    assert dist[2, 4] == 2

    limited = distance_to(mask, neighborhood=1)
    assert np.isinf(limited[2, 4])
    assert np.isinf(distance_to(np.zeros((3, 3), dtype=bool))).all()


def test_fundamental_niche_edge_buffers_treeline_band():
    elevation = (np.arange(10) * 200.0).reshape(1, 10)
    treeline = np.full((1, 10), 1000.0)
    mountains = np.ones((1, 10), dtype=bool)

    edge = fundamental_niche_edge(treeline, elevation, mountains, vertical_thres=500,
                                  neighborhood=5, horizontal_thres=1)
    expected = [False, False, True, True, True, True, True, True, True, False]
    assert edge[0].tolist() == expected

    outside = fundamental_niche_edge(treeline, elevation, ~mountains, vertical_thres=500,
                                     neighborhood=5, horizontal_thres=1)
    assert not outside.any()


def test_landcover_masks_require_every_year():
    stack = np.array([[[112, 50, 50]],
                      [[112, 112, 30]]])
    assert closed_forest_all_years(stack)[0].tolist() == [True, False, False]
    assert non_forested_all_years(stack)[0].tolist() == [False, False, True]


def test_aggregate_mean_ignores_masked_pixels():
    nan = np.nan
    array = np.array([[1, 3, nan, nan],
                      [5, 7, nan, nan],
                      [2, 2, 4, nan],
                      [2, 2, nan, nan]])
    out = aggregate_mean(array, 2)
    assert out[0, 0] == 4
    assert np.isnan(out[0, 1])
    assert out[1, 0] == 2
    assert out[1, 1] == 4

    assert aggregate_mean(np.ones((3, 3)), 2).shape == (2, 2)


def test_focal_circle_mean_fills_masked_neighbours():
    assert circle_kernel(1).sum() == 5

    array = np.full((3, 3), np.nan)
    array[1, 1] = 10.0
    out = focal_circle_mean(array, radius=1)
    assert out[1, 1] == 10
    assert out[0, 1] == 10
    assert np.isnan(out[0, 0])


def test_expand_blocks_repeats_coarse_pixels():
    out = expand_blocks(np.array([[1, 2], [3, 4]]), 2, (4, 4))
    assert out[0].tolist() == [1, 1, 2, 2]
    assert out[3].tolist() == [3, 3, 4, 4]


def test_expand_blocks_inverts_padded_aggregation():
    column = np.arange(5, dtype=float).reshape(5, 1)
    out = expand_blocks(aggregate_mean(column, 4), 4, column.shape)
    assert out[:, 0].tolist() == [1.5, 1.5, 1.5, 1.5, 4.0]


def test_regional_forest_elevation_keeps_input_shape():
    local = np.full((4, 4), 1000.0)
    local[0, 0] = np.nan
    out = regional_forest_elevation(local, (30, 60), radius=1)
    assert out.shape == (4, 4)
    assert np.allclose(out, 1000.0)


def test_regional_forest_elevation_aligns_partial_blocks():
    # 17 x 20 = 340-pixel blocks; the 60 trailing rows form a partial block
    local = np.full((400, 1), 1000.0)
    local[340:] = 2000.0

    out = regional_forest_elevation(local, (30, 500, 10000), radius=0)

    assert (out[:340, 0] == 1000.0).all()
    assert (out[340:, 0] == 2000.0).all()


def test_broad_ate_needs_height_forest_proximity_and_land():
    elevation = np.array([[100.0, 200.0, 300.0, 400.0, 500.0]])
    niche_edge = np.ones((1, 5), dtype=bool)
    regional = np.full((1, 5), 250.0)
    local_forest = np.array([[100.0, np.nan, np.nan, np.nan, np.nan]])
    land = np.ones((1, 5), dtype=bool)

    ate = broad_treeline_ecotone(elevation, niche_edge, regional, local_forest, land,
                                 neighborhood=10, dist_thres=2)
    assert ate[0].tolist() == [False, False, True, False, False]

    no_land = broad_treeline_ecotone(elevation, niche_edge, regional, local_forest,
                                     np.zeros((1, 5), dtype=bool),
                                     neighborhood=10, dist_thres=2)
    assert not no_land.any()


def test_ridges_and_valleys_skip_masked_landforms():
    landforms = np.array([11, 14, 15, 41, np.nan])
    assert extract_ridges(landforms).tolist() == [True, True, False, False, False]
    assert extract_valleys(landforms).tolist() == [False, False, False, True, False]


def test_medial_axis_lies_midway_between_ridge_and_valley():
    ridges, valleys = _ridge_valley_grid()
    axis = medial_axis(ridges, valleys)
    assert axis[:, 5].all()
    assert axis.sum() == 5

    ate = np.ones_like(axis)
    sq_dist = medial_axis_squared_distance(ridges | valleys, axis, ate)
    assert (sq_dist[:, 5] == 25).all()
    assert np.isnan(sq_dist[:, 4]).all()


def test_vectorize_centroids_groups_equal_connected_values():
    sq_dist = np.full((5, 11), np.nan)
    sq_dist[:, 5] = 25.0

    centroids = vectorize_centroids(sq_dist, TRANSFORM)
    assert len(centroids) == 1
    row = centroids.iloc[0]
    assert row['row'] == 2 and row['col'] == 5
    assert row['x'] == 165 and row['y'] == 75
    assert row[MEDIAL_AXIS_BAND] == 25

    sq_dist[3:, 5] = 16.0
    assert len(vectorize_centroids(sq_dist, TRANSFORM)) == 2


def test_extreme_pixel_masks_split_forest_and_ridges():
    landforms = np.array([[11.0, 21.0, np.nan, 21.0]])
    ate = np.array([[True, True, True, False]])
    landcover = np.array([[[50, 112, 112, 112]],
                          [[50, 112, 112, 112]]])

    closed_forest, non_forested = extreme_pixel_masks(landforms, ate, landcover)
    assert closed_forest[0].tolist() == [False, True, False, False]
    assert non_forested[0].tolist() == [True, False, False, False]


def test_find_extremes_within_centroid_buffer():
    rows, cols = np.mgrid[0:5, 0:5]
    elevation = cols * 100.0 + rows
    cf_mask = cols <= 1
    nonf_mask = cols == 4
    centroids = pd.DataFrame({
        'row': [2.0, 2.0], 'col': [2.0, 2.0], 'x': [75.0, 75.0], 'y': [75.0, 75.0],
        MEDIAL_AXIS_BAND: [4.0, 0.25],
    })

    extremes = find_extremes(centroids, elevation, cf_mask, nonf_mask, TRANSFORM)

    first = extremes.iloc[0]
    assert first['CF_elv'] == 2
    assert (first['CF_x'], first['CF_y']) == (15, 75)
    assert first['nonF_elv'] == 402
    assert (first['nonF_x'], first['nonF_y']) == (135, 75)

    second = extremes.iloc[1]
    assert np.isnan(second['CF_elv'])
    assert np.isnan(second['nonF_elv'])


def test_write_raster_masks_false_pixels(tmp_path):
    profile = {
        'driver': 'GTiff', 'height': 2, 'width': 2, 'count': 1,
        'dtype': 'float32', 'crs': 'EPSG:32610', 'transform': TRANSFORM,
    }
    mask = np.array([[True, False], [False, True]])
    path = tmp_path / "mask.tif"

    write_raster(path, mask, profile)
    array, read_profile = read_raster(path)

    assert array[0, 0] == 1 and array[1, 1] == 1
    assert np.isnan(array[0, 1]) and np.isnan(array[1, 0])
    assert read_profile['transform'] == TRANSFORM


def test_projected_crs_rejects_geographic_grids():
    assert projected_crs({'crs': 'EPSG:32610'}).to_epsg() == 32610

    with pytest.raises(ValueError, match='projected CRS'):
        projected_crs({'crs': CRS.from_epsg(4326)})
    with pytest.raises(ValueError, match='projected CRS'):
        projected_crs({'crs': None})
