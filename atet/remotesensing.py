"""
Google Earth Engine functions for alpine treeline transect generation.

This module contains functions for:
- Identifying the fundamental niche edge and the broad treeline ecotone
- Deriving the ridge/valley medial axis and selecting water basins
- Constructing, grouping and selecting transect centerlines
- Sampling vegetation metrics along transect segments
- Managing GEE export task submissions
"""

import time

import ee
from atet.config import (
    AOI_COORDS, CRS, SCALE, MAX_PIXELS, GEE_ASSET_DIR, EXPORT_RESULTS,
    TASK_POLL_INTERVAL, ALOS_DSM, ALOS_V11, ALOS_LANDFORMS, HANSEN_GFC,
    HYDROSHEDS_BASINS, GME_K3_BINARY, GMTED, CHELSA_TLH, LANDCOVER_PATH,
    LANDCOVER_BAND, LANDCOVER_YEARS, CANOPY_HEIGHT_ASSET, NDVI_COLLECTION,
    NDVI_YEARS, NDVI_MONTHS, NDVI_CLOUD_PCT, VERTICAL_THRESHOLD,
    HORIZONTAL_NEIGHBORHOOD, HORIZONTAL_THRESHOLD, CLOSED_FOREST_CLASSES,
    NON_FOREST_CLASSES, SMOOTHING_RADIUS, FOREST_BUFFER_THRESHOLD,
    RIDGE_MAX_CLASS, VALLEY_MIN_CLASS, LANDFORM_NEIGHBORHOOD,
    MEDIAL_AXIS_BAND, BASIN_ID, CENTERLINE_ID, GROUP_ID, GROUPING_DISTANCE,
    MIN_TRANSECT_LENGTH, MAX_TRANSECT_LENGTH, TRANSECT_BUFFER
)


FINISHED_STATES = ['COMPLETED', 'FAILED', 'CANCELLED']


def projection_info(scale=SCALE):
    """Keyword arguments for reproject() at the given scale."""
    return {'crs': CRS, 'scale': scale}


def get_aoi():
    """Planar rectangle of the area of interest."""
    return ee.Geometry.Rectangle(coords=AOI_COORDS, geodesic=False)


# =====================================================================
# Dataset Loading
# =====================================================================

def load_alos_elevation(geometry, scale=SCALE):
    """
    Load the ALOS DSM (Version 3.2) mosaic for an area.

    Parameters
    ----------
    geometry : ee.Geometry
        Area used to filter the DSM tiles.
    scale : int, optional
        Output scale in meters. Default config.SCALE.

    Returns
    -------
    ee.Image
        Single-band elevation image named 'DSM'.
    """
    return (ee.ImageCollection(ALOS_DSM)
            .select('DSM')
            .filterBounds(geometry)
            .mosaic()
            .reproject(**projection_info(scale)))


def load_landcover(years=LANDCOVER_YEARS):
    """Annual Copernicus discrete land cover images as an ImageCollection."""
    return ee.ImageCollection.fromImages([
        ee.Image(LANDCOVER_PATH + str(year)).select(LANDCOVER_BAND)
        for year in years
    ])


def load_landforms(scale=SCALE):
    """
    Load the ALOS landforms with the high-latitude invalid stripes removed.

    The landform dataset is derived from the ALOS DEM V1.1, which has stripes of
    invalid data above 60 degrees of latitude; its mask is applied to the
    landforms.
    """
    raw_landforms = (ee.Image(ALOS_LANDFORMS)
                     .select('constant')
                     .reproject(**projection_info(scale)))
    alos_v11 = (ee.Image(ALOS_V11)
                .select('AVE')
                .reproject(**projection_info(scale)))
    return raw_landforms.updateMask(alos_v11.mask())


def load_land_mask(scale=SCALE):
    """Mapped land surface of the Hansen Global Forest Change dataset."""
    return (ee.Image(HANSEN_GFC)
            .select('datamask')
            .eq(1)
            .reproject(**projection_info(scale)))


def load_asset(name, kind='image'):
    """Load an intermediate layer from the working asset folder."""
    if kind == 'image':
        return ee.Image(GEE_ASSET_DIR + name)
    if kind == 'table':
        return ee.FeatureCollection(GEE_ASSET_DIR + name)
    raise ValueError(f"Unknown asset kind: {kind}. Must be 'image' or 'table'")


# =====================================================================
# Stage 1: ATE Identification
# =====================================================================

def climatic_treeline_elevation(scale=SCALE):
    """
    Long-term (1979-2013) climatic treeline elevation resampled to 30 m.

    Each annual CHELSA treeline distance band is added to the GMTED elevation
    at 30 arc-seconds, bilinearly resampled to the target scale and averaged
    across years. Only pixels within the GME-K3 mountainous areas are kept.

    Returns
    -------
    ee.Image
        Single-band image named 'TLH'.
    """
    chelsa_tlh = ee.Image(CHELSA_TLH)
    k3_binary = ee.Image(GME_K3_BINARY).reproject(**projection_info(scale))

    gmted = ee.Image(GMTED).reproject(
        crs=chelsa_tlh.projection().crs(),
        scale=chelsa_tlh.projection().nominalScale()
    )

    def annual_height(band):
        # Only pixels unmasked in both inputs survive add()
        height = chelsa_tlh.select([band]).add(gmted)
        return (height.resample('bilinear')
                .reproject(**projection_info(scale))
                .rename('TLH'))

    reprojected = ee.ImageCollection.fromImages(
        chelsa_tlh.bandNames().map(annual_height)
    )
    avg_tlh = reprojected.mean().reproject(**projection_info(scale))
    return avg_tlh.updateMask(k3_binary)


def fundamental_niche_edge(treeline_elv, elevation,
                           vertical_thres=VERTICAL_THRESHOLD,
                           neighborhood=HORIZONTAL_NEIGHBORHOOD,
                           horizontal_thres=HORIZONTAL_THRESHOLD,
                           scale=SCALE):
    """
    Identify regions vertically and horizontally close to the climatic treeline.

    Parameters
    ----------
    treeline_elv : ee.Image
        Average climatic treeline elevation (see climatic_treeline_elevation).
    elevation : ee.Image
        Surface elevation at the processing scale.
    vertical_thres : float, optional
        Maximum absolute vertical distance in meters. Default 500.
    neighborhood : int, optional
        Neighborhood of the distance transform in pixels. Default 200.
    horizontal_thres : float, optional
        Maximum horizontal distance in pixels. Default 100.
    scale : int, optional
        Processing scale in meters.

    Returns
    -------
    ee.Image
        Self-masked binary image of the fundamental niche edge of trees.
    """
    extracted = treeline_elv.subtract(elevation).abs().lte(vertical_thres)

    horizontal_dist = (extracted.fastDistanceTransform(
        neighborhood=neighborhood,
        units='pixels',
        metric='squared_euclidean'
    ).sqrt()
        .reproject(**projection_info(scale)))

    return horizontal_dist.lte(horizontal_thres).selfMask()


def extract_landcover_all_years(landcover, classes, scale=SCALE):
    """
    Areas classified within an inclusive class range in ALL years.

    Parameters
    ----------
    landcover : ee.ImageCollection
        Annual discrete land cover images.
    classes : tuple of (int, int)
        Inclusive (lowest, highest) class codes, e.g. CLOSED_FOREST_CLASSES.
    scale : int, optional
        Processing scale in meters.

    Returns
    -------
    ee.Image
        Binary image, 1 where every year falls within the class range.
    """
    low, high = classes
    annual = landcover.map(lambda img: img.gte(low).And(img.lte(high)))
    # Temporal AND
    return annual.min().reproject(**projection_info(scale))


def local_forest_elevation(elevation, niche_edge, closed_forest):
    """Elevation of the five-year closed forests within the niche edge."""
    return elevation.updateMask(niche_edge).updateMask(closed_forest)


def aggregate_forest_elevation(forest_elv, old_scale, new_scale):
    """
    Aggregate forest elevation to a coarser resolution with a mean reducer.

    Parameters
    ----------
    forest_elv : ee.Image
        Forest elevation at old_scale.
    old_scale : float
        Current resolution in meters.
    new_scale : float
        Target resolution in meters.

    Returns
    -------
    ee.Image
        Float image at new_scale with every valid pixel unmasked.

    Notes
    -----
    maxPixels is the squared per-axis scaling factor, ceil(new/old)^2.
    """
    factor = -(-new_scale // old_scale)
    aggregated = forest_elv.reduceResolution(
        reducer=ee.Reducer.mean(),
        maxPixels=int(factor * factor)
    ).reproject(crs=CRS, scale=new_scale)

    aggregated = aggregated.updateMask(aggregated.gte(-1e18))
    return aggregated.float()


def smooth_forest_elevation(forest_elv, radius=SMOOTHING_RADIUS, scale=10000):
    """Focal mean within a circular kernel; masked inputs do not mask outputs."""
    return forest_elv.reduceNeighborhood(
        reducer=ee.Reducer.mean(),
        kernel=ee.Kernel.circle(radius),
        skipMasked=False
    ).reproject(crs=CRS, scale=scale)


def broad_treeline_ecotone(elevation, niche_edge, regional_elv, local_forest_elv,
                           land, neighborhood=HORIZONTAL_NEIGHBORHOOD,
                           dist_thres=FOREST_BUFFER_THRESHOLD, scale=SCALE):
    """
    Delineate the broad alpine treeline ecotone.

    Keeps the niche edge at or above the smoothed regional forest elevation,
    within dist_thres pixels of local closed forests, on mapped land.

    Returns
    -------
    ee.Image
        Self-masked binary image named 'broad_ATE'.
    """
    niche_edge_elv = elevation.updateMask(niche_edge)
    remaining = niche_edge_elv.gte(regional_elv)

    local_forests = local_forest_elv.mask()
    dist_to_forests = (local_forests.fastDistanceTransform(
        neighborhood=neighborhood,
        units='pixels',
        metric='squared_euclidean'
    ).sqrt()
        .reproject(**projection_info(scale)))

    realized = remaining.updateMask(dist_to_forests.lte(dist_thres))
    return realized.updateMask(land).selfMask().rename('broad_ATE')


# =====================================================================
# Stage 2: Landscape Unit Determination
# =====================================================================

def extract_ridges(landforms):
    return landforms.lte(RIDGE_MAX_CLASS)


def extract_valleys(landforms):
    return landforms.gte(VALLEY_MIN_CLASS)


def distance_segmentation(landforms, scale=SCALE):
    """
    Segment the domain by the distance to a type of landform.

    Applies an unnormalized 8-neighbour Laplacian to the distance image; pixels
    with a non-negative response are off the distance crests.
    """
    landform_dist = (landforms.fastDistanceTransform(
        neighborhood=LANDFORM_NEIGHBORHOOD,
        units='pixels',
        metric='squared_euclidean'
    ).sqrt()
        .reproject(**projection_info(scale)))

    laplacian = ee.Kernel.laplacian8(normalize=False)
    edgy = landform_dist.convolve(laplacian).reproject(**projection_info(scale))
    return edgy.gte(0)


def medial_axis(ridges, valleys, scale=SCALE):
    """Medial axis between ridges and valleys."""
    ridges_or_valleys = ridges.Or(valleys)
    return (distance_segmentation(ridges, scale)
            .And(distance_segmentation(valleys, scale))
            .And(distance_segmentation(ridges_or_valleys, scale).Not()))


def medial_axis_squared_distance(ridges_or_valleys, medial_axis_mask, ate_mask,
                                 scale=SCALE):
    """
    Squared distance (pixels) to the nearest ridge/valley along the medial axis.

    Parameters
    ----------
    ridges_or_valleys : ee.Image
        Binary image of ridges OR valleys.
    medial_axis_mask : ee.Image
        Binary medial axis (see medial_axis).
    ate_mask : ee.Image
        Broad alpine treeline ecotone.
    scale : int, optional
        Processing scale in meters.

    Returns
    -------
    ee.Image
        Single band named config.MEDIAL_AXIS_BAND.
    """
    sq_dist = (ridges_or_valleys.medialAxis(
        neighborhood=LANDFORM_NEIGHBORHOOD,
        units='pixels'
    ).select('medial')
        .reproject(**projection_info(scale)))

    return (sq_dist.updateMask(medial_axis_mask)
            .updateMask(ate_mask)
            .rename(MEDIAL_AXIS_BAND))


def select_basins(study_domain, medial_axis_img, scale=SCALE):
    """
    Select hybas_12 basins intersecting the study domain and the medial axis.

    Parameters
    ----------
    study_domain : ee.FeatureCollection
        Collection whose first feature delimits the study domain.
    medial_axis_img : ee.Image
        Medial axis squared distance within the broad ATE.
    scale : int, optional
        Processing scale in meters.

    Returns
    -------
    ee.FeatureCollection
        Basins holding at least one medial-axis pixel.
    """
    domain_geom = ee.Feature(study_domain.first()).geometry()
    basins = ee.FeatureCollection(HYDROSHEDS_BASINS).filterBounds(domain_geom)

    basins_with_info = medial_axis_img.reduceRegions(
        collection=basins,
        reducer=ee.Reducer.firstNonNull(),
        scale=scale,
        crs=CRS
    )
    return basins_with_info.filter(ee.Filter.notNull(['first']))


def vectorize_medial_axis(medial_axis_img, basins, scale=SCALE):
    """Vectorize medial-axis pixels to their centroids by basin."""
    def vectorize_basin(basin):
        return medial_axis_img.reduceToVectors(
            geometry=basin.geometry(),
            scale=scale,
            geometryType='centroid',
            eightConnected=True,
            labelProperty=MEDIAL_AXIS_BAND,
            crs=CRS,
            maxPixels=MAX_PIXELS
        )

    return basins.map(vectorize_basin).flatten()


# =====================================================================
# Stage 3: Transect Centerline Construction
# =====================================================================

def elevation_coordinates(elevation, mask, prefix, scale=SCALE):
    """
    Stack masked elevation with the pixel coordinates of the same pixels.

    Bands are named '{prefix}_elv', '{prefix}_lat', '{prefix}_long' in that
    order, matching the inputs of the combined extremes reducer.
    """
    masked_elv = elevation.updateMask(mask).rename(f'{prefix}_elv')
    coords = (ee.Image.pixelLonLat()
              .reproject(**projection_info(scale))
              .updateMask(mask)
              .select(['latitude', 'longitude'],
                      [f'{prefix}_lat', f'{prefix}_long']))
    return masked_elv.addBands(coords)


def combined_extremes_reducer(cf_elv_coords, nonf_elv_coords):
    """
    Combined reducer for the lowest closed forest and highest non-forested pixel.

    Each reducer takes three inputs: the elevation followed by the two
    coordinates, so the coordinates of the extreme pixel are carried along.
    Inputs of the combined reducer are those of the min reducer followed by
    those of the max reducer; band order of the reduced image must match.
    """
    min_reducer = ee.Reducer.min(numInputs=3).setOutputs(cf_elv_coords.bandNames())
    max_reducer = ee.Reducer.max(numInputs=3).setOutputs(nonf_elv_coords.bandNames())
    return min_reducer.combine(reducer2=max_reducer, sharedInputs=False)


def centerline_from_extremes(buffer):
    """Build a lower-to-upper centerline feature from a reduced buffer."""
    line = ee.Geometry.LineString([
        [buffer.get('CF_long'), buffer.get('CF_lat')],
        [buffer.get('nonF_long'), buffer.get('nonF_lat')]
    ])
    elv_range = ee.Number(buffer.get('nonF_elv')).subtract(buffer.get('CF_elv'))
    centerline = ee.Feature(line).set({
        'CL_length': line.length(),
        'elvRange': elv_range
    })
    return centerline.copyProperties(
        source=buffer,
        exclude=['count', MEDIAL_AXIS_BAND]
    )


def construct_centerlines(basins, pixel_centroids, elv_coords_img, reducer,
                          scale=SCALE):
    """
    Construct raw transect centerlines by basin.

    Parameters
    ----------
    basins : ee.FeatureCollection
        Selected water basins.
    pixel_centroids : ee.FeatureCollection
        Vectorized medial-axis pixel centroids with squared distances.
    elv_coords_img : ee.Image
        Closed-forest bands followed by non-forested bands
        (see elevation_coordinates).
    reducer : ee.Reducer
        Combined extremes reducer (see combined_extremes_reducer).
    scale : int, optional
        Processing scale in meters.

    Returns
    -------
    ee.FeatureCollection
        LineString features with CL_length, elvRange, endpoint attributes and
        a random CL_ID.

    Notes
    -----
    Buffers lacking either extreme, or whose highest non-forested pixel is not
    above the lowest closed forest, are dropped.
    """
    def centerlines_per_basin(basin):
        centroids = pixel_centroids.filterBounds(basin.geometry())

        def buffer_centroid(centroid):
            sq_dist = ee.Number(centroid.get(MEDIAL_AXIS_BAND))
            return centroid.buffer(sq_dist.sqrt().multiply(scale))

        extremes = elv_coords_img.reduceRegions(
            collection=centroids.map(buffer_centroid),
            reducer=reducer,
            scale=scale,
            crs=CRS
        )
        selected = extremes.filter(ee.Filter.And(
            ee.Filter.notNull(['nonF_elv', 'CF_elv']),
            ee.Filter.greaterThan(leftField='nonF_elv', rightField='CF_elv')
        ))
        return selected.map(centerline_from_extremes)

    centerlines = basins.map(centerlines_per_basin).flatten()
    return centerlines.randomColumn(CENTERLINE_ID)


def build_extreme_elevation_image(elevation, landforms, ate, landcover, scale=SCALE):
    """
    Elevation/coordinate stack of closed forests on non-ridges and
    non-forested areas on ridges, within the broad ATE.

    Returns
    -------
    tuple of (ee.Image, ee.Reducer)
        The stacked image and its matching combined extremes reducer.
    """
    ridges = extract_ridges(landforms.updateMask(ate))
    non_ridges = ridges.Not()

    closed_forest = extract_landcover_all_years(landcover, CLOSED_FOREST_CLASSES, scale)
    non_forested = extract_landcover_all_years(landcover, NON_FOREST_CLASSES, scale)

    cf_non_ridges = closed_forest.updateMask(non_ridges).selfMask()
    nonf_ridges = non_forested.updateMask(ridges).selfMask()

    cf_img = elevation_coordinates(elevation, cf_non_ridges, 'CF', scale)
    nonf_img = elevation_coordinates(elevation, nonf_ridges, 'nonF', scale)

    stacked = cf_img.addBands(nonf_img).reproject(**projection_info(scale))
    return stacked, combined_extremes_reducer(cf_img, nonf_img)


def assign_basin_ids(centerlines, basins):
    """Assign the ID of the basin intersected by each centerline centroid."""
    save_first = ee.Join.saveFirst(matchKey=BASIN_ID)

    centroids = centerlines.map(lambda cl: cl.centroid())
    joined_centroids = save_first.apply(
        centroids, basins,
        ee.Filter.intersects(leftField='.geo', rightField='.geo')
    )
    centroids_with_ids = joined_centroids.map(
        lambda f: f.set(BASIN_ID, ee.Feature(f.get(BASIN_ID)).get(BASIN_ID))
    )

    joined_centerlines = save_first.apply(
        centerlines, centroids_with_ids,
        ee.Filter.equals(leftField=CENTERLINE_ID, rightField=CENTERLINE_ID)
    )
    return joined_centerlines.map(
        lambda f: f.set(BASIN_ID, ee.Feature(f.get(BASIN_ID)).get(BASIN_ID))
    )


def segment_mid_quarter(centerlines):
    """Mid-quarter of each centerline around its centroid."""
    def segment(centerline):
        radius = ee.Number(centerline.get('CL_length')).divide(8)
        circle = centerline.centroid().buffer(radius)
        return centerline.intersection(circle)

    return centerlines.map(segment)


def group_segment_buffers(segments, distance=GROUPING_DISTANCE):
    """
    Group nearby centerline segments by buffering and per-basin union.

    Returns
    -------
    ee.FeatureCollection
        One Polygon feature per spatial group, with the basin ID and a
        random group ID.
    """
    buffers = segments.map(lambda seg: seg.buffer(distance))
    basin_ids = buffers.aggregate_array(BASIN_ID).distinct()

    def merge_basin(basin_id):
        merged = buffers.filter(ee.Filter.eq(BASIN_ID, basin_id)).union()
        return merged.first().set(BASIN_ID, basin_id)

    merged = ee.FeatureCollection(basin_ids.map(merge_basin))

    def split_polygons(merged_feature):
        basin_id = merged_feature.get(BASIN_ID)
        # Polygon parts only; a lone Polygon becomes a one-part list
        parts = merged_feature.geometry().geometries()
        return ee.FeatureCollection(parts.map(
            lambda part: ee.Feature(ee.Geometry(part)).set(BASIN_ID, basin_id)
        ))

    return merged.map(split_polygons).flatten().randomColumn(GROUP_ID)


# =====================================================================
# Stage 4: Steepest Transect Selection
# =====================================================================

def select_steepest_centerlines(centerlines, segments, groups):
    """
    Identify the locally steepest centerline within each spatial group.

    Each group is joined with the intersecting segments of its basin, ordered
    by descending elevational range; the first match decides the centerline.
    """
    save_first = ee.Join.saveFirst(
        matchKey='steepest',
        ordering='elvRange',
        ascending=False
    )
    intersect_filter = ee.Filter.intersects(leftField='.geo', rightField='.geo')
    basin_ids = groups.aggregate_array(BASIN_ID).distinct()

    def steepest_per_basin(basin_id):
        basin_filter = ee.Filter.eq(BASIN_ID, basin_id)
        basin_centerlines = centerlines.filter(basin_filter)
        joined = save_first.apply(
            primary=groups.filter(basin_filter),
            secondary=segments.filter(basin_filter),
            condition=intersect_filter
        )

        def pick_centerline(joined_group):
            centerline_id = ee.Feature(joined_group.get('steepest')).get(CENTERLINE_ID)
            centerline = basin_centerlines.filter(
                ee.Filter.eq(CENTERLINE_ID, centerline_id)).first()
            return ee.Feature(centerline).set(GROUP_ID, joined_group.get(GROUP_ID))

        return joined.map(pick_centerline)

    return ee.FeatureCollection(basin_ids.map(steepest_per_basin)).flatten()


def filter_by_length(centerlines, lower=MIN_TRANSECT_LENGTH, upper=MAX_TRANSECT_LENGTH):
    return centerlines.filter(ee.Filter.And(
        ee.Filter.gte('CL_length', lower),
        ee.Filter.lte('CL_length', upper)
    ))


def buffer_transects(centerlines, distance=TRANSECT_BUFFER):
    return centerlines.map(lambda cl: cl.buffer(distance))


def describe_transects(transects):
    """Print the number of transects and the first feature."""
    print(f"Elevational transect number: {transects.size().getInfo():,}")
    print(f"Elevational transect example: {transects.first().getInfo()}")


# =====================================================================
# Segment Sampling
# =====================================================================

def ndvi_composite(region):
    """Peak-season median Sentinel-2 NDVI, band 'avg_NDVI'."""
    start_year, end_year = NDVI_YEARS
    start_month, end_month = NDVI_MONTHS
    composite = (ee.ImageCollection(NDVI_COLLECTION)
                 .filterBounds(region)
                 .filter(ee.Filter.calendarRange(start_year, end_year, 'year'))
                 .filter(ee.Filter.calendarRange(start_month, end_month, 'month'))
                 .filter(ee.Filter.lt('CLOUDY_PIXEL_PERCENTAGE', NDVI_CLOUD_PCT))
                 .median())
    return composite.normalizedDifference(['B8', 'B4']).rename('avg_NDVI')


def canopy_height():
    """Global canopy height, band 'avg_VCH'."""
    return ee.Image(CANOPY_HEIGHT_ASSET).rename('avg_VCH')


def sample_segment_means(segments, metric_img, elevation, scale=SCALE):
    """
    Average elevation and a vegetation metric within each transect segment.

    Parameters
    ----------
    segments : ee.FeatureCollection
        Buffered transect segments with ET_ID and Segment_ID properties.
    metric_img : ee.Image
        Single-band vegetation metric ('avg_NDVI' or 'avg_VCH').
    elevation : ee.Image
        Surface elevation.
    scale : int, optional
        Sampling scale in meters.

    Returns
    -------
    ee.FeatureCollection
        Segments with 'avg_Elv' and the metric band as properties.
    """
    stacked = elevation.rename('avg_Elv').addBands(metric_img)
    return stacked.reduceRegions(
        collection=segments,
        reducer=ee.Reducer.mean(),
        scale=scale,
        crs=CRS
    )


# =====================================================================
# Export Task Management
# =====================================================================

def export_image_to_asset(image, name, region, scale=SCALE):
    """
    Export an image to the working asset folder when EXPORT_RESULTS is set.

    Returns
    -------
    ee.batch.Task or None
        Started task, or None when exports are disabled.
    """
    if not EXPORT_RESULTS:
        print(f"  Export disabled, skipping image: {name}")
        return None
    task = ee.batch.Export.image.toAsset(
        image=image,
        description=name,
        assetId=GEE_ASSET_DIR + name,
        region=region,
        scale=scale,
        crs=CRS,
        maxPixels=MAX_PIXELS
    )
    task.start()
    print(f"  Export task started: {name} ({task.id})")
    return task


def export_table_to_asset(collection, name):
    """Export a FeatureCollection to the working asset folder."""
    if not EXPORT_RESULTS:
        print(f"  Export disabled, skipping table: {name}")
        return None
    task = ee.batch.Export.table.toAsset(
        collection=collection,
        description=name,
        assetId=GEE_ASSET_DIR + name
    )
    task.start()
    print(f"  Export task started: {name} ({task.id})")
    return task


def export_table_to_drive(collection, name, folder, file_format='SHP'):
    """Export a FeatureCollection to Google Drive."""
    if not EXPORT_RESULTS:
        print(f"  Export disabled, skipping table: {name}")
        return None
    task = ee.batch.Export.table.toDrive(
        collection=collection,
        description=name,
        folder=folder,
        fileFormat=file_format
    )
    task.start()
    print(f"  Export task started: {name} ({task.id})")
    return task


def check_task_status(submitted_tasks):
    """
    Check status of submitted Earth Engine tasks and filter out finished ones.

    Prints status messages for completed, failed, or cancelled tasks and returns
    only tasks that are still running.

    Parameters
    ----------
    submitted_tasks : list of tuple
        List of tuples where each tuple contains (task_object, name).
        task_object is an ee.batch.Task instance.

    Returns
    -------
    tuple of (list, dict)
        - active_tasks : list of tuple
            Filtered list containing only active tasks.
        - finished : dict
            Mapping of name to final state for tasks that finished.

    Notes
    -----
    Finished states include: 'COMPLETED', 'FAILED', 'CANCELLED'.
    Active states include: 'READY', 'RUNNING'.
    """
    active_tasks = []
    finished = {}
    for task_obj, name in submitted_tasks:
        task_status = task_obj.status()
        if task_status['state'] in FINISHED_STATES:
            print(f"Task {name} {task_status['state']}")
            finished[name] = task_status['state']
        else:
            active_tasks.append((task_obj, name))
    return active_tasks, finished


def wait_for_tasks(submitted_tasks, poll_interval=TASK_POLL_INTERVAL):
    """
    Block until every submitted task has finished.

    Parameters
    ----------
    submitted_tasks : list of tuple
        (task_object, name) pairs; None task objects are ignored.
    poll_interval : float, optional
        Seconds between status checks.

    Returns
    -------
    dict
        Mapping of name to final state.

    Raises
    ------
    RuntimeError
        If any task did not complete.
    """
    active = [(task, name) for task, name in submitted_tasks if task is not None]
    states = {}
    while active:
        active, finished = check_task_status(active)
        states.update(finished)
        if active:
            print(f"  Waiting for {len(active)} task(s)...")
            time.sleep(poll_interval)

    failed = {name: state for name, state in states.items() if state != 'COMPLETED'}
    if failed:
        raise RuntimeError(f"Export tasks did not complete: {failed}")
    return states


def materialize_image(image, name, region, scale=SCALE, poll_interval=TASK_POLL_INTERVAL):
    """
    Export an image, wait for the task and reload it from the asset folder.

    When exports are disabled the in-memory image is returned, so later
    stages chain onto the unexported computation graph.
    """
    task = export_image_to_asset(image, name, region, scale)
    if task is None:
        return image
    wait_for_tasks([(task, name)], poll_interval)
    return load_asset(name, kind='image')


def materialize_table(collection, name, poll_interval=TASK_POLL_INTERVAL):
    """Table counterpart of materialize_image()."""
    task = export_table_to_asset(collection, name)
    if task is None:
        return collection
    wait_for_tasks([(task, name)], poll_interval)
    return load_asset(name, kind='table')
