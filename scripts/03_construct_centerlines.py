"""
Script 03: Construct Transect Centerlines

Connects the lowest closed forest and the highest non-forested ridge pixel
around each medial-axis centroid on Google Earth Engine.

Workflow:
1. Buffer each centroid by sqrt(squared distance) pixels and find the
   elevational extremes inside it; keep buffers with an upper endpoint
   strictly higher than the lower one
2. Attach the ID of the basin containing each centerline centroid
3. Clip centerlines to their central quarter and group the quarters within
   90 m of each other by basin

Input (GEE assets):  broadATE, medialAxisCentroids, selectedBasins
Output (GEE assets): rawCenterlines, rawCenterlines_basinID,
                     centerlineSegments, segmentGroups

Then run: python scripts/04_select_steepest_transects.py
"""

import ee
from atet import config
from atet.remotesensing import (
    get_aoi, load_asset, load_alos_elevation, load_landforms, load_landcover,
    build_extreme_elevation_image, construct_centerlines, assign_basin_ids,
    segment_mid_quarter, group_segment_buffers, materialize_table
)

print("="*80)
print("SCRIPT 03: Construct Transect Centerlines")
print("="*80)

# Initialize Earth Engine
print("\nInitializing Google Earth Engine...")
ee.Authenticate()
ee.Initialize(project=config.GEE_PROJECT)

aoi = get_aoi()
broad_ate = load_asset('broadATE')
basins = load_asset('selectedBasins', kind='table')
centroids = load_asset('medialAxisCentroids', kind='table')

# =========================================================================
# STEP 1: RAW CENTERLINES
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Raw Centerline Generation")
print("="*80)
print(f"  - Closed forests: classes {config.CLOSED_FOREST_CLASSES} on non-ridges")
print(f"  - Non-forested areas: classes {config.NON_FOREST_CLASSES} on ridges")

elevation = load_alos_elevation(aoi)
extremes_img, reducer = build_extreme_elevation_image(
    elevation, load_landforms(), broad_ate, load_landcover()
)
centerlines = construct_centerlines(basins, centroids, extremes_img, reducer)
centerlines = materialize_table(centerlines, 'rawCenterlines')

# =========================================================================
# STEP 2: BASIN IDS
# =========================================================================

print("\n" + "="*80)
print("STEP 2: Basin ID Extraction")
print("="*80)

centerlines = assign_basin_ids(centerlines, basins)
centerlines = materialize_table(centerlines, 'rawCenterlines_basinID')

# =========================================================================
# STEP 3: GROUPING
# =========================================================================

print("\n" + "="*80)
print("STEP 3: Raw Centerline Grouping")
print("="*80)
print(f"  - Grouping distance: {config.GROUPING_DISTANCE} m")

segments = segment_mid_quarter(centerlines)
segments = materialize_table(segments, 'centerlineSegments')

groups = group_segment_buffers(segments)
groups = materialize_table(groups, 'segmentGroups')

print("\n" + "="*80)
print("SCRIPT 03 COMPLETE")
print("="*80)
print("Next step: python scripts/04_select_steepest_transects.py")
print("="*80)
