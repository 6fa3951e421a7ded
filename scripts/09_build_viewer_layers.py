"""
Script 09: Build Viewer Layers

Pre-computes the aggregate layers shown by the interactive map.

Workflow:
1. Load the transects with their lower/upper vegetation values
2. Aggregate mean canopy height and NDVI differences by mountain range,
   watershed and transect
3. Write one GeoPackage layer per level

Input:  data/processed/ATET_ATEC_v1.0.gpkg
Output: data/processed/viewer_layers.gpkg

Then run: streamlit run app/app.py
"""

from atet import config
from atet.analysis import load_transect_dataset
from atet.viewer import aggregate_transects

print("="*80)
print("SCRIPT 09: Build Viewer Layers")
print("="*80)

transects = load_transect_dataset(config.DATA_PROCESSED, drop_geometry=False)
transects = transects.to_crs(config.STORAGE_CRS)

output_path = config.DATA_PROCESSED / "viewer_layers.gpkg"
for level in config.AGGREGATION_LEVELS:
    key = config.AGGREGATION_LEVELS[level]
    if key not in transects.columns:
        print(f"Skipping {level} level: column {key} not found")
        continue
    layer = aggregate_transects(transects, level)
    layer.to_file(output_path, layer=level, driver='GPKG')
    print(f"  Saved {len(layer):,} {level} features")

print("\n" + "="*80)
print("SCRIPT 09 COMPLETE")
print("="*80)
print(f"Layers saved to {output_path}")
print("Launch the map: streamlit run app/app.py")
print("="*80)
