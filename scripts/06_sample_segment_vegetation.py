"""
Script 06: Sample Segment Vegetation

Averages elevation, NDVI and canopy height within every transect segment on
Google Earth Engine.

Workflow:
1. Build the peak-season Sentinel-2 NDVI composite and load canopy height
2. For the sampled, rotated and extended segments, compute mean elevation
   and each vegetation metric per segment
3. Export the samples to Google Drive and wait for the tasks

Input (GEE assets): sampledSegments, rotatedSegments, extendedSegments
Output (Drive):     ATET_Export/<prefix>Segments_NDVI.shp
                    ATET_Export/<prefix>Segments_VCH.shp

MANUAL STEP REQUIRED AFTER RUNNING:
Download each exported shapefile into data/intermediate/<folder>/<name>/
(Sampling, Rotation or Extension).

Then run: python scripts/07_compute_segment_differences.py
"""

import ee
from atet import config
from atet.remotesensing import (
    get_aoi, load_asset, load_alos_elevation, ndvi_composite, canopy_height,
    sample_segment_means, export_table_to_drive, wait_for_tasks
)

print("="*80)
print("SCRIPT 06: Sample Segment Vegetation")
print("="*80)

# Initialize Earth Engine
print("\nInitializing Google Earth Engine...")
ee.Authenticate()
ee.Initialize(project=config.GEE_PROJECT)

aoi = get_aoi()
elevation = load_alos_elevation(aoi)
metrics = {
    'NDVI': ndvi_composite(aoi),
    'VCH': canopy_height(),
}
print(f"NDVI composite: {config.NDVI_COLLECTION}, years {config.NDVI_YEARS}, "
      f"months {config.NDVI_MONTHS}")
print(f"Canopy height: {config.CANOPY_HEIGHT_ASSET}")

# =========================================================================
# SAMPLE AND EXPORT
# =========================================================================

submitted_tasks = []
for prefix in ['sampled'] + list(config.TREATMENTS):
    print("\n" + "="*80)
    print(f"Sampling {prefix} segments")
    print("="*80)

    segments = load_asset(f"{prefix}Segments", kind='table')
    for metric, image in metrics.items():
        samples = sample_segment_means(segments, image, elevation)
        name = f"{prefix}Segments_{metric}"
        task = export_table_to_drive(samples, name, 'ATET_Export')
        submitted_tasks.append((task, name))

states = wait_for_tasks(submitted_tasks)
print(f"\nCompleted {len(states)} export task(s)")

print("\n" + "="*80)
print("MANUAL STEP REQUIRED:")
print("="*80)
print("1. Download the <prefix>Segments_NDVI/VCH shapefiles from Google Drive")
print("2. Place them in data/intermediate/Sampling, Rotation or Extension")
print("   (one folder per layer, e.g. Rotation/rotatedSegments_NDVI/)")
print("3. Then run: python scripts/07_compute_segment_differences.py")
print("="*80)
