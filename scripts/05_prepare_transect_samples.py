"""
Script 05: Prepare Transect Samples

Finalizes the steepest centerlines into transects and splits them (and their
rotated/extended versions) into lower and upper segments for sampling.

Workflow:
1. Add transect IDs, average slopes and mountain range labels
2. Check transect data quality
3. Buffer centerlines into transect polygons
4. Split unadjusted, rotated and extended centerlines into buffered halves

Input:  data/raw/steepestCenterlines/steepestCenterlines.shp
        data/raw/GMBA_Inventory_v2_Basic/GMBA_Inventory_v2_Basic.shp (optional)
Output: data/processed/ATET_ATEC_v1.0.gpkg (transects layer)
        data/intermediate/Sampling/sampledSegments.shp
        data/intermediate/Rotation/rotatedSegments.shp
        data/intermediate/Extension/extendedSegments.shp

MANUAL STEP REQUIRED AFTER RUNNING:
Upload the three segment shapefiles to Google Earth Engine as assets
(sampledSegments, rotatedSegments, extendedSegments).

Then run: python scripts/06_sample_segment_vegetation.py
"""

import geopandas as gpd
from atet import config
from atet.analysis import adjusted_group_values
from atet.preprocessing import (
    to_metric_crs, add_transect_attributes, assign_mountain_labels,
    check_transect_quality, buffer_transects, rotate_transects,
    extend_transects, split_transect_segments
)

print("="*80)
print("SCRIPT 05: Prepare Transect Samples")
print("="*80)

# Check input file exists
input_path = config.DATA_RAW / "steepestCenterlines" / "steepestCenterlines.shp"
if not input_path.exists():
    raise FileNotFoundError(
        f"Input file not found: {input_path}\n"
        f"Please download steepestCenterlines from Google Drive first.\n"
        f"See output from script 04_select_steepest_transects.py for instructions."
    )

mountains_path = config.DATA_RAW / "GMBA_Inventory_v2_Basic" / "GMBA_Inventory_v2_Basic.shp"

# =========================================================================
# STEP 1: TRANSECT ATTRIBUTES
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Transect Attributes")
print("="*80)

centerlines = gpd.read_file(input_path)
print(f"Loaded {len(centerlines):,} steepest centerlines")

centerlines = to_metric_crs(centerlines)
print(f"Processing CRS: {centerlines.crs}")

centerlines = add_transect_attributes(centerlines)

if mountains_path.exists():
    mountains = gpd.read_file(mountains_path)
    centerlines = assign_mountain_labels(centerlines, mountains)
else:
    print(f"Mountain inventory not found at {mountains_path}, skipping labels")

# =========================================================================
# STEP 2: QUALITY CHECKS
# =========================================================================

print("\n" + "="*80)
print("STEP 2: Quality Checks")
print("="*80)

violations = check_transect_quality(centerlines)
if any(violations.values()):
    print("WARNING: transects violate quality rules, see counts above")

# =========================================================================
# STEP 3: TRANSECT POLYGONS
# =========================================================================

print("\n" + "="*80)
print("STEP 3: Transect Polygons")
print("="*80)

config.DATA_PROCESSED.mkdir(parents=True, exist_ok=True)
transects = buffer_transects(centerlines).to_crs(config.STORAGE_CRS)
transects_path = config.DATA_PROCESSED / config.TRANSECTS_GEOPACKAGE
transects.to_file(transects_path, layer=config.TRANSECTS_NAME, driver='GPKG')
print(f"Saved {len(transects):,} transects to {transects_path}")

# =========================================================================
# STEP 4: SEGMENTS
# =========================================================================

print("\n" + "="*80)
print("STEP 4: Transect Segments")
print("="*80)

segment_sets = {
    'Sampling/sampledSegments': split_transect_segments(
        centerlines.assign(raw=0), 'raw'
    ),
}

for treatment, treatment_config in config.TREATMENTS.items():
    values = adjusted_group_values(treatment)
    if treatment == 'rotated':
        adjusted = rotate_transects(centerlines, values)
    else:
        adjusted = extend_transects(centerlines, values)
    print(f"{treatment}: {len(adjusted):,} lines ({treatment_config['group']} = {values})")
    segment_sets[f"{treatment_config['folder']}/{treatment}Segments"] = split_transect_segments(
        adjusted, treatment_config['group']
    )

for name, segments in segment_sets.items():
    output_path = config.DATA_INTERMEDIATE / f"{name}.shp"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    segments.to_crs(config.STORAGE_CRS).to_file(output_path)
    print(f"Saved {len(segments):,} segments to {output_path}")

print("\n" + "="*80)
print("MANUAL STEP REQUIRED:")
print("="*80)
print("1. Upload sampledSegments, rotatedSegments and extendedSegments")
print(f"   to {config.GEE_ASSET_DIR}")
print("2. Then run: python scripts/06_sample_segment_vegetation.py")
print("="*80)
