"""
Script 04: Select the Steepest Transects

Keeps the steepest centerline of each segment group, applies the length
window and buffers the survivors into transect polygons on Google Earth
Engine.

Workflow:
1. For each group, keep the centerline with the largest elevation range
2. Keep centerlines with 300 m <= length <= 3000 m
3. Buffer by 45 m and print the transect count and an example
4. Export the steepest centerlines to Google Drive for local processing

Input (GEE assets):  rawCenterlines_basinID, centerlineSegments, segmentGroups
Output (GEE assets): steepestCenterlines, elevationalTransects
Output (Drive):      ATET_Export/steepestCenterlines.shp

MANUAL STEP REQUIRED AFTER RUNNING:
Download the steepestCenterlines shapefile from Google Drive to
data/raw/steepestCenterlines/

Then run: python scripts/05_prepare_transect_samples.py
"""

import ee
from atet import config
from atet.remotesensing import (
    load_asset, select_steepest_centerlines, filter_by_length,
    buffer_transects, describe_transects, materialize_table,
    export_table_to_drive, wait_for_tasks
)

print("="*80)
print("SCRIPT 04: Select the Steepest Transects")
print("="*80)

# Initialize Earth Engine
print("\nInitializing Google Earth Engine...")
ee.Authenticate()
ee.Initialize(project=config.GEE_PROJECT)

centerlines = load_asset('rawCenterlines_basinID', kind='table')
segments = load_asset('centerlineSegments', kind='table')
groups = load_asset('segmentGroups', kind='table')

# =========================================================================
# STEP 1: STEEPEST TRANSECT IDENTIFICATION
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Steepest Transect Identification")
print("="*80)
print(f"  - Length window: {config.MIN_TRANSECT_LENGTH}-{config.MAX_TRANSECT_LENGTH} m")

steepest = select_steepest_centerlines(centerlines, segments, groups)
steepest = filter_by_length(steepest)
steepest = materialize_table(steepest, 'steepestCenterlines')

print(f"Buffering centerlines by {config.TRANSECT_BUFFER} m...")
transects = buffer_transects(steepest)
transects = materialize_table(transects, 'elevationalTransects')

# =========================================================================
# STEP 2: VISUALIZATION
# =========================================================================

print("\n" + "="*80)
print("STEP 2: Steepest Transect Visualization")
print("="*80)

describe_transects(transects)

# =========================================================================
# STEP 3: EXPORT FOR LOCAL PROCESSING
# =========================================================================

print("\n" + "="*80)
print("STEP 3: Export Centerlines to Google Drive")
print("="*80)

task = export_table_to_drive(steepest, 'steepestCenterlines', 'ATET_Export')
wait_for_tasks([(task, 'steepestCenterlines')])

print("\n" + "="*80)
print("MANUAL STEP REQUIRED:")
print("="*80)
print("1. Download 'steepestCenterlines' (shapefile) from Google Drive")
print("2. Place it in: data/raw/steepestCenterlines/")
print("3. Then run: python scripts/05_prepare_transect_samples.py")
print("="*80)
