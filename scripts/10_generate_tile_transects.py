"""
Script 10: Generate Tile Transects (local)

Runs the transect generation stages on a single raster tile without Google
Earth Engine, for checking results in small areas.

All rasters must share one projected 30-m grid (e.g. exported from GEE with
the same region, CRS and scale).

Workflow:
1. Broad ATE from the treeline, elevation, mountain, land cover and land
   rasters
2. Ridge/valley medial axis within the ATE, vectorized to centroids
3. Centerlines from the elevational extremes around each centroid, basin
   IDs and mid-quarter grouping
4. Steepest centerline per group, length window and 45-m buffer

Input:  data/raw/tile/{elevation,treeline,mountains,landforms,land}.tif
        data/raw/tile/landcover_<year>.tif for every config.LANDCOVER_YEARS
        data/raw/tile/basins.shp
Output: data/processed/tile_transects.gpkg (broadATE centroids, centerlines,
        transects layers)
"""

import numpy as np
import geopandas as gpd
from atet import config
from atet.rasters import (
    read_raster, write_raster, projected_crs, fundamental_niche_edge,
    closed_forest_all_years, local_forest_elevation, regional_forest_elevation,
    broad_treeline_ecotone, extract_ridges, extract_valleys, medial_axis,
    medial_axis_squared_distance, vectorize_centroids, extreme_pixel_masks, find_extremes
)
from atet.preprocessing import (
    build_centerlines, assign_basin_ids, segment_mid_quarter,
    group_segment_buffers, select_steepest_centerlines, filter_by_length,
    buffer_transects, add_transect_attributes, check_transect_quality
)

print("="*80)
print("SCRIPT 10: Generate Tile Transects (local)")
print("="*80)

tile_dir = config.DATA_RAW / "tile"
required = ['elevation', 'treeline', 'mountains', 'landforms', 'land']
required += [f"landcover_{year}" for year in config.LANDCOVER_YEARS]
missing = [name for name in required if not (tile_dir / f"{name}.tif").exists()]
if missing or not (tile_dir / "basins.shp").exists():
    raise FileNotFoundError(
        f"Tile inputs missing in {tile_dir}: {missing or ['basins.shp']}\n"
        f"Please export the tile rasters from Google Earth Engine first."
    )

elevation, profile = read_raster(tile_dir / "elevation.tif")
treeline, _ = read_raster(tile_dir / "treeline.tif")
mountains, _ = read_raster(tile_dir / "mountains.tif")
landforms, _ = read_raster(tile_dir / "landforms.tif")
land, _ = read_raster(tile_dir / "land.tif")
landcover = np.stack([read_raster(tile_dir / f"landcover_{year}.tif")[0]
                      for year in config.LANDCOVER_YEARS])
basins = gpd.read_file(tile_dir / "basins.shp")

transform = profile['transform']
crs = projected_crs(profile)
print(f"Tile: {elevation.shape[0]} x {elevation.shape[1]} pixels, CRS {crs}")

# =========================================================================
# STEP 1: BROAD ATE
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Broad Alpine Treeline Ecotone")
print("="*80)

niche_edge = fundamental_niche_edge(treeline, elevation, mountains == 1)
print(f"Niche edge pixels: {niche_edge.sum():,}")

local_forest_elv = local_forest_elevation(elevation, niche_edge,
                                          closed_forest_all_years(landcover))
regional_elv = regional_forest_elevation(local_forest_elv, config.AGGREGATION_SCALES)
broad_ate = broad_treeline_ecotone(elevation, niche_edge, regional_elv,
                                   local_forest_elv, land == 1)
print(f"Broad ATE pixels: {broad_ate.sum():,}")

config.DATA_INTERMEDIATE.mkdir(parents=True, exist_ok=True)
write_raster(config.DATA_INTERMEDIATE / "tile_broadATE.tif", broad_ate, profile)

# =========================================================================
# STEP 2: LANDSCAPE UNITS
# =========================================================================

print("\n" + "="*80)
print("STEP 2: Landscape Units")
print("="*80)

ridges = extract_ridges(landforms)
valleys = extract_valleys(landforms)
axis = medial_axis(ridges, valleys)
sq_dist = medial_axis_squared_distance(ridges | valleys, axis, broad_ate)
centroids = vectorize_centroids(sq_dist, transform)
print(f"Medial-axis centroids: {len(centroids):,}")

# =========================================================================
# STEP 3: CENTERLINES
# =========================================================================

print("\n" + "="*80)
print("STEP 3: Transect Centerlines")
print("="*80)

cf_mask, nonf_mask = extreme_pixel_masks(landforms, broad_ate, landcover)
extremes = find_extremes(centroids, elevation, cf_mask, nonf_mask, transform)
centerlines = build_centerlines(extremes, crs)
centerlines = assign_basin_ids(centerlines, basins)
segments = segment_mid_quarter(centerlines)
groups = group_segment_buffers(segments)

# =========================================================================
# STEP 4: STEEPEST TRANSECTS
# =========================================================================

print("\n" + "="*80)
print("STEP 4: Steepest Transects")
print("="*80)

steepest = filter_by_length(select_steepest_centerlines(centerlines, segments, groups))
transects = add_transect_attributes(buffer_transects(steepest))
check_transect_quality(transects)

output_path = config.DATA_PROCESSED / "tile_transects.gpkg"
output_path.parent.mkdir(parents=True, exist_ok=True)
centroid_points = gpd.GeoDataFrame(
    centroids, geometry=gpd.points_from_xy(centroids['x'], centroids['y']), crs=crs
)
centroid_points.to_file(output_path, layer='centroids', driver='GPKG')
centerlines.to_file(output_path, layer='centerlines', driver='GPKG')
transects.to_file(output_path, layer='transects', driver='GPKG')

print(f"\nElevational transect number: {len(transects):,}")
print("\n" + "="*80)
print("SCRIPT 10 COMPLETE")
print("="*80)
print(f"Layers saved to {output_path}")
print("="*80)
