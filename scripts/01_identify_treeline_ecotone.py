"""
Script 01: Identify the Alpine Treeline Ecotone

Delineates the broad alpine treeline ecotone (ATE) on Google Earth Engine.

Workflow:
1. Fundamental niche edge: pixels within 500 m (vertical) and 100 pixels
   (horizontal) of the climatic treeline elevation in mountainous areas
2. Local forest elevation: closed forests (2015-2019) on the niche edge
3. Regional forest elevation: mean aggregation 30 m -> 500 m -> 10 km,
   then circular smoothing
4. Broad ATE: niche edge at or above the regional forest elevation, near
   local forests, on land

Each aggregation step is exported and reloaded before the next one when
config.EXPORT_RESULTS is True.

Output (GEE assets): localForestElv, regionalForestElv_500m,
                     regionalForestElv_10km, broadATE

Then run: python scripts/02_determine_landscape_units.py
"""

import ee
from atet import config
from atet.remotesensing import (
    get_aoi, load_alos_elevation, load_landcover, load_land_mask,
    climatic_treeline_elevation, fundamental_niche_edge,
    extract_landcover_all_years, local_forest_elevation,
    aggregate_forest_elevation, smooth_forest_elevation,
    broad_treeline_ecotone, materialize_image
)

print("="*80)
print("SCRIPT 01: Identify the Alpine Treeline Ecotone")
print("="*80)

# Initialize Earth Engine
print("\nInitializing Google Earth Engine...")
ee.Authenticate()
ee.Initialize(project=config.GEE_PROJECT)

aoi = get_aoi()
elevation = load_alos_elevation(aoi)

# =========================================================================
# STEP 1: FUNDAMENTAL NICHE EDGE
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Fundamental Niche Edge")
print("="*80)
print(f"  - Vertical threshold: {config.VERTICAL_THRESHOLD} m")
print(f"  - Horizontal threshold: {config.HORIZONTAL_THRESHOLD} pixels "
      f"(neighborhood {config.HORIZONTAL_NEIGHBORHOOD})")

treeline_elv = climatic_treeline_elevation()
niche_edge = fundamental_niche_edge(treeline_elv, elevation)

# =========================================================================
# STEP 2: LOCAL FOREST ELEVATION
# =========================================================================

print("\n" + "="*80)
print("STEP 2: Local Forest Elevation")
print("="*80)
print(f"  - Closed forest classes: {config.CLOSED_FOREST_CLASSES}")
print(f"  - Years: {config.LANDCOVER_YEARS[0]}-{config.LANDCOVER_YEARS[-1]}")

landcover = load_landcover()
closed_forest = extract_landcover_all_years(landcover, config.CLOSED_FOREST_CLASSES)
local_forest_elv = local_forest_elevation(elevation, niche_edge, closed_forest)
local_forest_elv = materialize_image(local_forest_elv, 'localForestElv', aoi)

# =========================================================================
# STEP 3: REGIONAL FOREST ELEVATION
# =========================================================================

print("\n" + "="*80)
print("STEP 3: Regional Forest Elevation")
print("="*80)

regional_elv = local_forest_elv
scales = config.AGGREGATION_SCALES
for old_scale, new_scale in zip(scales[:-1], scales[1:]):
    print(f"Aggregating {old_scale} m -> {new_scale} m...")
    regional_elv = aggregate_forest_elevation(regional_elv, old_scale, new_scale)
    name = (f"regionalForestElv_{new_scale}m" if new_scale < 1000
            else f"regionalForestElv_{new_scale // 1000}km")
    regional_elv = materialize_image(regional_elv, name, aoi, scale=new_scale)

print(f"Smoothing with a circular kernel (radius {config.SMOOTHING_RADIUS} pixels)...")
regional_elv = smooth_forest_elevation(regional_elv, scale=scales[-1])

# =========================================================================
# STEP 4: BROAD ATE
# =========================================================================

print("\n" + "="*80)
print("STEP 4: Broad Alpine Treeline Ecotone")
print("="*80)
print(f"  - Distance to local forests: <= {config.FOREST_BUFFER_THRESHOLD} pixels")

land = load_land_mask()
broad_ate = broad_treeline_ecotone(elevation, niche_edge, regional_elv,
                                   local_forest_elv, land)
broad_ate = materialize_image(broad_ate, 'broadATE', aoi)

print("\n" + "="*80)
print("SCRIPT 01 COMPLETE")
print("="*80)
print("Next step: python scripts/02_determine_landscape_units.py")
print("="*80)
