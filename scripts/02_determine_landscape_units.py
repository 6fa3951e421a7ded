"""
Script 02: Determine Landscape Units

Derives the ridge/valley medial axis within the broad ATE and vectorizes it
by water basin on Google Earth Engine.

Workflow:
1. Medial axis between ridges and valleys (ALOS landforms), with the squared
   distance to the nearest ridge/valley, restricted to the broad ATE
2. Select hybas_12 basins in the study domain that hold medial-axis pixels
3. Vectorize the medial axis to pixel centroids by basin

Input (GEE assets):  broadATE, study domain
Output (GEE assets): medialAxis_sqDist, selectedBasins, medialAxisCentroids

Then run: python scripts/03_construct_centerlines.py
"""

import ee
from atet import config
from atet.remotesensing import (
    get_aoi, load_asset, load_landforms, extract_ridges, extract_valleys,
    medial_axis, medial_axis_squared_distance, select_basins,
    vectorize_medial_axis, materialize_image, materialize_table
)

print("="*80)
print("SCRIPT 02: Determine Landscape Units")
print("="*80)

# Initialize Earth Engine
print("\nInitializing Google Earth Engine...")
ee.Authenticate()
ee.Initialize(project=config.GEE_PROJECT)

aoi = get_aoi()
broad_ate = load_asset('broadATE')
study_domain = ee.FeatureCollection(config.STUDY_DOMAIN_ASSET)

# =========================================================================
# STEP 1: MEDIAL AXIS
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Ridge/Valley Medial Axis")
print("="*80)
print(f"  - Ridges: landform <= {config.RIDGE_MAX_CLASS}")
print(f"  - Valleys: landform >= {config.VALLEY_MIN_CLASS}")

landforms = load_landforms()
ridges = extract_ridges(landforms)
valleys = extract_valleys(landforms)
axis = medial_axis(ridges, valleys)
sq_dist = medial_axis_squared_distance(ridges.Or(valleys), axis, broad_ate)
sq_dist = materialize_image(sq_dist, 'medialAxis_sqDist', aoi)

# =========================================================================
# STEP 2: BASIN SELECTION
# =========================================================================

print("\n" + "="*80)
print("STEP 2: Basin Selection")
print("="*80)

basins = select_basins(study_domain, sq_dist)
basins = materialize_table(basins, 'selectedBasins')
if not config.EXPORT_RESULTS:
    print(f"Selected basins: {basins.size().getInfo():,}")

# =========================================================================
# STEP 3: MEDIAL AXIS VECTORIZATION
# =========================================================================

print("\n" + "="*80)
print("STEP 3: Medial Axis Vectorization")
print("="*80)

centroids = vectorize_medial_axis(sq_dist, basins)
centroids = materialize_table(centroids, 'medialAxisCentroids')

print("\n" + "="*80)
print("SCRIPT 02 COMPLETE")
print("="*80)
print("Next step: python scripts/03_construct_centerlines.py")
print("="*80)
