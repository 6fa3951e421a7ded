"""
Local array rendition of the per-pixel transect generation stages.

This module mirrors the Earth Engine graphs in atet.remotesensing on numpy
arrays so that small tiles can be processed (and checked) without the
platform. It contains functions for:
- Reading and writing single-band rasters
- Niche edge, closed forest and broad ATE masks
- Multi-resolution mean aggregation and circular focal smoothing
- Ridge/valley medial axis and its vectorization to pixel centroids
- Elevational extremes around each medial-axis centroid

Conventions: masked float pixels are NaN, masks are boolean arrays, distances
are in pixels and the grid is assumed square with a projected (metric) CRS.
"""

import numpy as np
import pandas as pd
import rasterio
from rasterio.crs import CRS
from rasterio.transform import xy
from scipy import ndimage

from atet.config import (
    VERTICAL_THRESHOLD, HORIZONTAL_NEIGHBORHOOD, HORIZONTAL_THRESHOLD,
    CLOSED_FOREST_CLASSES, NON_FOREST_CLASSES, SMOOTHING_RADIUS,
    FOREST_BUFFER_THRESHOLD, RIDGE_MAX_CLASS, VALLEY_MIN_CLASS,
    LANDFORM_NEIGHBORHOOD, MEDIAL_AXIS_BAND
)

LAPLACIAN_8 = np.array([[1, 1, 1],
                        [1, -8, 1],
                        [1, 1, 1]], dtype=float)


# =====================================================================
# Raster I/O
# =====================================================================

def read_raster(path, band=1):
    """
    Read one band of a raster as float64 with nodata set to NaN.

    Returns
    -------
    tuple of (numpy.ndarray, dict)
        Array and the rasterio profile of the source.
    """
    with rasterio.open(path) as src:
        array = src.read(band).astype('float64')
        if src.nodata is not None:
            array[array == src.nodata] = np.nan
        return array, src.profile


def write_raster(path, array, profile, nodata=-9999.0):
    """Write a float or boolean array as a single-band float32 GeoTIFF."""
    if array.dtype == bool:
        array = np.where(array, 1.0, np.nan)
    out_profile = profile.copy()
    out_profile.update(driver='GTiff', dtype='float32', count=1,
                       nodata=nodata, compress='deflate')
    data = np.where(np.isnan(array), nodata, array).astype('float32')
    with rasterio.open(path, 'w', **out_profile) as dst:
        dst.write(data, 1)


def projected_crs(profile):
    """Return the CRS of a raster profile, which must be projected."""
    crs = profile.get('crs')
    if crs is not None:
        crs = CRS.from_user_input(crs)
    if crs is None or crs.is_geographic:
        raise ValueError(f"Raster grid needs a projected CRS in meters, got {crs}")
    return crs


# =====================================================================
# Distance Helpers
# =====================================================================

def distance_to(mask, neighborhood=None):
    """
    Euclidean distance (pixels) from every pixel to the nearest True pixel.

    Parameters
    ----------
    mask : numpy.ndarray of bool
        Source pixels.
    neighborhood : float, optional
        Search radius in pixels; farther pixels get inf.

    Returns
    -------
    numpy.ndarray
        Float distances, inf where no source is within reach.
    """
    mask = np.asarray(mask, dtype=bool)
    if not mask.any():
        return np.full(mask.shape, np.inf)
    dist = ndimage.distance_transform_edt(~mask)
    if neighborhood is not None:
        dist = np.where(dist > neighborhood, np.inf, dist)
    return dist


def in_class_range(values, classes):
    """Inclusive class range predicate; NaN pixels are False."""
    low, high = classes
    with np.errstate(invalid='ignore'):
        return (values >= low) & (values <= high)


# =====================================================================
# Stage 1: ATE Identification
# =====================================================================

def fundamental_niche_edge(treeline_elv, elevation, mountains,
                           vertical_thres=VERTICAL_THRESHOLD,
                           neighborhood=HORIZONTAL_NEIGHBORHOOD,
                           horizontal_thres=HORIZONTAL_THRESHOLD):
    """
    Pixels vertically and horizontally close to the climatic treeline.

    Parameters
    ----------
    treeline_elv : numpy.ndarray
        Average climatic treeline elevation (m).
    elevation : numpy.ndarray
        Surface elevation (m).
    mountains : numpy.ndarray of bool
        Mountainous terrain (GME-K3).
    vertical_thres : float, optional
        Maximum absolute vertical distance (m).
    neighborhood : float, optional
        Distance search radius (pixels).
    horizontal_thres : float, optional
        Maximum horizontal distance (pixels).

    Returns
    -------
    numpy.ndarray of bool
        Fundamental niche edge of trees.
    """
    treeline = np.where(mountains, treeline_elv, np.nan)
    with np.errstate(invalid='ignore'):
        extracted = np.abs(treeline - elevation) <= vertical_thres
    return distance_to(extracted, neighborhood) <= horizontal_thres


def landcover_all_years(landcover_stack, classes):
    """Temporal AND of a class range over a (years, rows, cols) stack."""
    return np.all(in_class_range(np.asarray(landcover_stack), classes), axis=0)


def closed_forest_all_years(landcover_stack):
    return landcover_all_years(landcover_stack, CLOSED_FOREST_CLASSES)


def non_forested_all_years(landcover_stack):
    return landcover_all_years(landcover_stack, NON_FOREST_CLASSES)


def local_forest_elevation(elevation, niche_edge, closed_forest):
    return np.where(niche_edge & closed_forest, elevation, np.nan)


def aggregate_mean(array, factor):
    """
    Block mean over factor x factor pixels, ignoring NaN.

    The array is padded with NaN to a multiple of factor; blocks with no
    valid pixel are NaN.
    """
    factor = int(factor)
    if factor < 1:
        raise ValueError(f"factor must be >= 1, got {factor}")
    rows, cols = array.shape
    pad_r = (-rows) % factor
    pad_c = (-cols) % factor
    padded = np.pad(array.astype(float), ((0, pad_r), (0, pad_c)),
                    constant_values=np.nan)
    blocks = padded.reshape(padded.shape[0] // factor, factor,
                            padded.shape[1] // factor, factor)
    valid = ~np.isnan(blocks)
    sums = np.where(valid, blocks, 0.0).sum(axis=(1, 3))
    counts = valid.sum(axis=(1, 3))
    with np.errstate(invalid='ignore', divide='ignore'):
        return np.where(counts > 0, sums / counts, np.nan)


def circle_kernel(radius):
    """Binary disk of pixels whose centre lies within radius."""
    r = int(np.ceil(radius))
    yy, xx = np.mgrid[-r:r + 1, -r:r + 1]
    return (xx ** 2 + yy ** 2 <= radius ** 2).astype(float)


def focal_circle_mean(array, radius=SMOOTHING_RADIUS):
    """
    Mean of valid pixels within a circular kernel.

    Masked (NaN) input pixels still receive a value when any neighbour is
    valid.
    """
    kernel = circle_kernel(radius)
    valid = ~np.isnan(array)
    sums = ndimage.convolve(np.where(valid, array, 0.0), kernel,
                            mode='constant', cval=0.0)
    counts = ndimage.convolve(valid.astype(float), kernel,
                              mode='constant', cval=0.0)
    with np.errstate(invalid='ignore', divide='ignore'):
        return np.where(counts > 0, sums / counts, np.nan)


def expand_blocks(array, factor, shape):
    """
    Map a block-aggregated grid back onto the input grid.

    Input pixel (i, j) takes the value of coarse cell (i // factor,
    j // factor), the inverse of aggregate_mean() with the same factor.
    """
    factor = int(factor)
    if factor < 1:
        raise ValueError(f"factor must be >= 1, got {factor}")
    rows = np.arange(shape[0]) // factor
    cols = np.arange(shape[1]) // factor
    return array[np.ix_(rows, cols)]


def regional_forest_elevation(local_forest_elv, scales, radius=SMOOTHING_RADIUS):
    """
    Aggregate local forest elevation through increasing scales and smooth it.

    Parameters
    ----------
    local_forest_elv : numpy.ndarray
        Closed-forest elevation at scales[0].
    scales : sequence of float
        Increasing resolutions in meters, e.g. (30, 500, 10000).
    radius : float, optional
        Smoothing kernel radius in coarsest-scale pixels.

    Returns
    -------
    numpy.ndarray
        Smoothed regional forest elevation on the input grid; each input
        pixel takes the value of the coarse block that contains it.
    """
    aggregated = local_forest_elv
    block = 1
    for old_scale, new_scale in zip(scales[:-1], scales[1:]):
        factor = int(np.ceil(new_scale / old_scale))
        aggregated = aggregate_mean(aggregated, factor)
        block *= factor
    smoothed = focal_circle_mean(aggregated, radius)
    return expand_blocks(smoothed, block, local_forest_elv.shape)


def broad_treeline_ecotone(elevation, niche_edge, regional_elv, local_forest_elv,
                           land, neighborhood=HORIZONTAL_NEIGHBORHOOD,
                           dist_thres=FOREST_BUFFER_THRESHOLD):
    """
    Niche edge at or above the regional forest elevation, near local forests,
    on land.
    """
    with np.errstate(invalid='ignore'):
        remaining = niche_edge & (elevation >= regional_elv)
    forests = ~np.isnan(local_forest_elv)
    near_forests = distance_to(forests, neighborhood) <= dist_thres
    return remaining & near_forests & np.asarray(land, dtype=bool)


# =====================================================================
# Stage 2: Landscape Unit Determination
# =====================================================================

def extract_ridges(landforms):
    with np.errstate(invalid='ignore'):
        return landforms <= RIDGE_MAX_CLASS


def extract_valleys(landforms):
    with np.errstate(invalid='ignore'):
        return landforms >= VALLEY_MIN_CLASS


def distance_segmentation(mask, neighborhood=LANDFORM_NEIGHBORHOOD):
    """
    Segment by the distance to a landform via an 8-neighbour Laplacian.

    Returns
    -------
    numpy.ndarray
        1.0 where the Laplacian of the distance is >= 0, 0.0 on distance
        crests, NaN where the distance is out of reach.
    """
    dist = distance_to(mask, neighborhood)
    dist = np.where(np.isinf(dist), np.nan, dist)
    edgy = ndimage.convolve(dist, LAPLACIAN_8, mode='nearest')
    with np.errstate(invalid='ignore'):
        return np.where(np.isnan(edgy), np.nan, (edgy >= 0).astype(float))


def medial_axis(ridges, valleys, neighborhood=LANDFORM_NEIGHBORHOOD):
    """Pixels off the ridge and valley crests but on the combined crest."""
    ridges_or_valleys = ridges | valleys
    return ((distance_segmentation(ridges, neighborhood) == 1)
            & (distance_segmentation(valleys, neighborhood) == 1)
            & (distance_segmentation(ridges_or_valleys, neighborhood) == 0))


def medial_axis_squared_distance(ridges_or_valleys, medial, ate,
                                 neighborhood=LANDFORM_NEIGHBORHOOD):
    """Squared pixel distance to ridges/valleys on the medial axis in the ATE."""
    sq_dist = distance_to(ridges_or_valleys, neighborhood) ** 2
    keep = medial & np.asarray(ate, dtype=bool) & np.isfinite(sq_dist)
    return np.where(keep, sq_dist, np.nan)


def vectorize_centroids(sq_dist, transform):
    """
    Reduce eight-connected, equal-valued medial-axis pixels to centroids.

    Parameters
    ----------
    sq_dist : numpy.ndarray
        Medial-axis squared distances, NaN elsewhere.
    transform : affine.Affine
        Raster transform used to convert pixel positions to coordinates.

    Returns
    -------
    DataFrame
        One row per connected group with columns row, col (fractional pixel
        position), x, y and config.MEDIAL_AXIS_BAND.
    """
    structure = np.ones((3, 3), dtype=int)
    records = []
    for value in np.unique(sq_dist[~np.isnan(sq_dist)]):
        labels, n_groups = ndimage.label(sq_dist == value, structure=structure)
        centers = ndimage.center_of_mass(labels > 0, labels, range(1, n_groups + 1))
        for row, col in centers:
            records.append({'row': row, 'col': col, MEDIAL_AXIS_BAND: value})

    if not records:
        return pd.DataFrame(columns=['row', 'col', 'x', 'y', MEDIAL_AXIS_BAND])

    centroids = pd.DataFrame(records)
    xs, ys = xy(transform, centroids['row'].values, centroids['col'].values)
    centroids['x'] = np.asarray(xs, dtype=float)
    centroids['y'] = np.asarray(ys, dtype=float)
    return centroids[['row', 'col', 'x', 'y', MEDIAL_AXIS_BAND]]


# =====================================================================
# Stage 3: Elevational Extremes
# =====================================================================

def extreme_pixel_masks(landforms, ate, landcover_stack):
    """
    Closed forests on non-ridge landforms and non-forested ridges, in the ATE.

    Returns
    -------
    tuple of (numpy.ndarray, numpy.ndarray)
        Boolean closed-forest and non-forested masks.
    """
    ate = np.asarray(ate, dtype=bool)
    valid = ate & ~np.isnan(landforms)
    ridges = valid & extract_ridges(landforms)
    non_ridges = valid & ~extract_ridges(landforms)
    closed_forest = closed_forest_all_years(landcover_stack) & non_ridges
    non_forested = non_forested_all_years(landcover_stack) & ridges
    return closed_forest, non_forested


def find_extremes(centroids, elevation, cf_mask, nonf_mask, transform):
    """
    Lowest closed forest and highest non-forested pixel around each centroid.

    Each centroid is buffered by the square root of its squared distance
    (pixels); pixels whose centres fall inside the buffer are searched.

    Parameters
    ----------
    centroids : DataFrame
        Output of vectorize_centroids().
    elevation : numpy.ndarray
        Surface elevation.
    cf_mask, nonf_mask : numpy.ndarray of bool
        Closed-forest and non-forested pixels (see extreme_pixel_masks).
    transform : affine.Affine
        Raster transform.

    Returns
    -------
    DataFrame
        Centroid columns plus CF_elv, CF_x, CF_y, nonF_elv, nonF_x, nonF_y;
        NaN when a buffer holds no pixel of that type.
    """
    n_rows, n_cols = elevation.shape
    cf_elv = np.where(cf_mask, elevation, np.nan)
    nonf_elv = np.where(nonf_mask, elevation, np.nan)

    records = []
    for centroid in centroids.itertuples(index=False):
        sq_dist = getattr(centroid, MEDIAL_AXIS_BAND)
        radius = np.sqrt(sq_dist)
        r0 = max(int(np.floor(centroid.row - radius)), 0)
        r1 = min(int(np.ceil(centroid.row + radius)) + 1, n_rows)
        c0 = max(int(np.floor(centroid.col - radius)), 0)
        c1 = min(int(np.ceil(centroid.col + radius)) + 1, n_cols)

        rr, cc = np.mgrid[r0:r1, c0:c1]
        inside = (rr - centroid.row) ** 2 + (cc - centroid.col) ** 2 <= sq_dist

        record = {'x': centroid.x, 'y': centroid.y, MEDIAL_AXIS_BAND: sq_dist}
        for prefix, values, pick in (('CF', cf_elv, np.nanargmin),
                                     ('nonF', nonf_elv, np.nanargmax)):
            window = np.where(inside, values[r0:r1, c0:c1], np.nan)
            if np.isnan(window).all():
                record.update({f'{prefix}_elv': np.nan,
                               f'{prefix}_x': np.nan, f'{prefix}_y': np.nan})
                continue
            flat = pick(window)
            row, col = np.unravel_index(flat, window.shape)
            px, py = xy(transform, r0 + row, c0 + col)
            record.update({f'{prefix}_elv': window[row, col],
                           f'{prefix}_x': float(px), f'{prefix}_y': float(py)})
        records.append(record)

    columns = ['x', 'y', MEDIAL_AXIS_BAND, 'CF_elv', 'CF_x', 'CF_y',
               'nonF_elv', 'nonF_x', 'nonF_y']
    return pd.DataFrame(records, columns=columns)
