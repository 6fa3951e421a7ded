"""
Configuration file for the Alpine Treeline Elevational Transects workflow.

This module centralizes all configurable parameters including:
- File paths and Google Earth Engine asset locations
- Source datasets and projection settings
- Thresholds used to derive the treeline ecotone and transects
- Validation treatments, plot sizes and regression fixtures

To run the workflow for another mountain range, edit AOI_COORDS and
STUDY_DOMAIN_ASSET below and re-run scripts 01-04.
"""

from pathlib import Path

# =====================================================================
# Project Paths
# =====================================================================

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
DATA_RAW = DATA_DIR / "raw"
DATA_INTERMEDIATE = DATA_DIR / "intermediate"
DATA_PROCESSED = DATA_DIR / "processed"

# Results directories
RESULTS_DIR = PROJECT_ROOT / "results"
FIGURES_DIR = RESULTS_DIR / "figures"

# =====================================================================
# Google Earth Engine Settings
# =====================================================================

# GEE project ID - UPDATE THIS to your GEE project ID
GEE_PROJECT = 'treeline'

# Working asset folder where every intermediate layer is exported
GEE_ASSET_DIR = f'projects/{GEE_PROJECT}/assets/ATET_v1/'

# Global datasets that are not part of the public GEE catalog
GEE_GLOBAL_DIR = 'users/treeline/Global/'

# Export intermediate layers to GEE assets (True) or only build and
# describe the computation graph (False)
EXPORT_RESULTS = False

# Seconds between export task status checks
TASK_POLL_INTERVAL = 30

# Maximum number of pixels per export
MAX_PIXELS = 1e13

# =====================================================================
# Area of Interest - EDIT THIS TO CHANGE THE STUDY DOMAIN
# =====================================================================

# "Broad" extent of the Olympic Mountains, US (GMBA Mountain Inventory v2.0)
AOI_COORDS = [
    [-124.82185448800108, 46.978114448441836],
    [-122.68335433442881, 48.43864840733896]
]

STUDY_DOMAIN_ASSET = GEE_ASSET_DIR + 'Olympic_Mountains_GMBAv2_Broad'

# =====================================================================
# Coordinate Reference Systems
# =====================================================================

# Raster processing projection
CRS = 'EPSG:4326'
SCALE = 30  # meters

# Storage CRS for exported vector layers
STORAGE_CRS = 'EPSG:4326'

# Fallback metric CRS for local vector processing when no UTM zone
# can be estimated (equal-area, meters)
PROCESSING_CRS = 'ESRI:54009'  # Mollweide

# =====================================================================
# Source Datasets
# =====================================================================

ALOS_DSM = 'JAXA/ALOS/AW3D30/V3_2'
ALOS_V11 = 'JAXA/ALOS/AW3D30_V1_1'
ALOS_LANDFORMS = 'CSP/ERGo/1_0/Global/ALOS_landforms'
HANSEN_GFC = 'UMD/hansen/global_forest_change_2019_v1_7'
HYDROSHEDS_BASINS = 'WWF/HydroSHEDS/v1/Basins/hybas_12'
GME_K3_BINARY = GEE_GLOBAL_DIR + 'Global_Mountain_Explorer/k3binary'
GMTED = GEE_GLOBAL_DIR + 'GMTED/GMTED2010_30arcsec'
CHELSA_TLH = (GEE_GLOBAL_DIR + 'Global_CHELSA_TLH_V1_2/'
              'Stacked_CHELSA_v12_TLH_1979to2013_10000pixels_NAinterpolated_'
              'Predictor2_Zlevel9_DeflateCompressed')

# Copernicus Global Land Cover (Version 3.0.1)
LANDCOVER_PATH = 'COPERNICUS/Landcover/100m/Proba-V-C3/Global/'
LANDCOVER_BAND = 'discrete_classification'
LANDCOVER_YEARS = [2015, 2016, 2017, 2018, 2019]

# Vegetation metrics sampled along transect segments
CANOPY_HEIGHT_ASSET = 'users/nlang/ETH_GlobalCanopyHeight_2020_10m_v1'
NDVI_COLLECTION = 'COPERNICUS/S2_SR_HARMONIZED'
NDVI_YEARS = (2019, 2020)
NDVI_MONTHS = (6, 9)  # Peak growing season (northern hemisphere)
NDVI_CLOUD_PCT = 20

# =====================================================================
# Stage 1: ATE Identification Parameters
# =====================================================================

# Vertical distance to the climatic treeline (meters)
VERTICAL_THRESHOLD = 500

# Neighborhood and threshold of the horizontal distance (30-m pixels)
HORIZONTAL_NEIGHBORHOOD = 200
HORIZONTAL_THRESHOLD = 100

# Land cover classes (inclusive ranges)
CLOSED_FOREST_CLASSES = (111, 116)  # Closed forests, tree canopy > 70 %
NON_FOREST_CLASSES = (20, 100)      # Shrubs to moss and lichen

# Multi-resolution aggregation of the closed-forest elevation (meters)
AGGREGATION_SCALES = (30, 500, 10000)

# Radius of the circular smoothing kernel (10-km pixels)
SMOOTHING_RADIUS = 10

# Maximum distance to local closed forests (30-m pixels, ~3 km)
FOREST_BUFFER_THRESHOLD = 100

# =====================================================================
# Stage 2: Landscape Unit Parameters
# =====================================================================

# ALOS landform classes
RIDGE_MAX_CLASS = 14   # Peaks and ridges
VALLEY_MIN_CLASS = 41  # Valleys and narrow valleys

# Neighborhood of the landform distance transforms (pixels)
LANDFORM_NEIGHBORHOOD = 1000

# Property names
MEDIAL_AXIS_BAND = 'medialAxis_sqDist_inPixels'
BASIN_ID = 'HYBAS_ID'

# =====================================================================
# Stage 3-4: Centerline and Transect Parameters
# =====================================================================

CENTERLINE_ID = 'CL_ID'
GROUP_ID = 'group_id'
TRANSECT_ID = 'ET_ID'

# Distance for grouping raw transect centerlines (meters)
GROUPING_DISTANCE = 90

# Centerline length window (meters, inclusive)
MIN_TRANSECT_LENGTH = 300
MAX_TRANSECT_LENGTH = 3000

# Buffer around each selected centerline (meters)
TRANSECT_BUFFER = 45

# Mountain inventory used to label transects
MOUNTAIN_ASSET = GEE_GLOBAL_DIR + 'GMBA_Inventory_v2_Basic'
MOUNTAIN_NAME = 'MapName'

# =====================================================================
# Validation Parameters
# =====================================================================

# Read the published dataset from a GeoPackage (True) or shapefiles (False)
FROM_GEOPACKAGE = True

TRANSECTS_NAME = 'Alpine_Treeline_Elevational_Transects_v1.0'
TRANSECTS_GEOPACKAGE = 'ATET_ATEC_v1.0.gpkg'
SAMPLES_GEOPACKAGE = 'Adjusted_Transect_Samples.gpkg'
SAMPLED_TRANSECTS_NAME = 'sampledTransects'

# Lower/upper segment vegetation columns of the published dataset
VEGETATION_METRICS = {
    'CanopyHt': {
        'lower': 'L_CanopyHt',
        'upper': 'U_CanopyHt',
        'segment_prefix': 'VCH',
        'label': 'Canopy height difference (m)',
        'fill': 'blue',
        'color': 'darkblue',
    },
    'NDVI': {
        'lower': 'L_NDVI',
        'upper': 'U_NDVI',
        'segment_prefix': 'NDVI',
        'label': 'NDVI difference',
        'fill': 'lightgreen',
        'color': 'darkgreen',
    },
}

# Adjusted sampling treatments of the transects. The raw label is the
# unadjusted transect (sampled transects); the other values are sampled
# as rotated/extended segments.
TREATMENTS = {
    'rotated': {
        'folder': 'Rotation',
        'group': 'theta',
        'raw_label': 0,
        'values': [-90, -60, -30, 0, 30, 60, 90],
        'axis_label': 'Angle',
        'ylim': (-16, 8),
        'yticks': [-15, -10, -5, 0, 5],
    },
    'extended': {
        'folder': 'Extension',
        'group': 'ratio',
        'raw_label': 1,
        'values': [1, 1.25, 1.5, 1.75, 2, 2.25, 2.5],
        'axis_label': 'Ratio',
        'ylim': (-20, 10),
        'yticks': None,
    },
}

# Coefficient used to draw NDVI differences on the canopy height axis
NDVI_SCALE_COEFF = 38

# Box plot (fill, edge) colors per segment prefix, in drawing order
BOXPLOT_COLORS = {
    'VCH': ('lightblue', 'darkblue'),
    'NDVI': ('lightgreen', 'darkgreen'),
}

# Figure sizes (pixels) and resolution (dpi)
DENSITY_PLOT_PX = (3000, 1500)
BOX_PLOT_PX = (3000, 2000)
PLOT_DPI = 600

# Empirical regression baselines of the published dataset
BASELINES = {
    'CanopyHt': {'mean': -4.391395, 'negative_pct': 85.52},
    'NDVI': {'mean': -0.1319143, 'negative_pct': 88.39},
}

# Documented row counts at each join stage (given the published inputs)
EXPECTED_ROW_COUNTS = {
    'sampled': 66776,
    'sampled_ndvi_raw': 66744,
    'sampled_vch_raw': 66602,
    'extended_ndvi_spread': 46301,
    'extended_vch_spread': 45935,
    'extended_ndvi_diff': 46301,
    'extended_vch_diff': 45935,
    'extended_two_diff': 45872,
    'rotated_ndvi_spread': 66700,
    'rotated_vch_spread': 66412,
    'rotated_ndvi_diff': 66698,
    'rotated_vch_diff': 66404,
    'rotated_two_diff': 66345,
}

# =====================================================================
# Viewer Parameters
# =====================================================================

AGGREGATION_LEVELS = {
    'mountain': MOUNTAIN_NAME,
    'watershed': BASIN_ID,
    'transect': TRANSECT_ID,
}

LEGEND_PALETTES = {
    'CanopyHt': ['#08306b', '#2171b5', '#6baed6', '#f7f7f7', '#fdae61', '#d7191c'],
    'NDVI': ['#00441b', '#238b45', '#74c476', '#f7f7f7', '#fdae61', '#d7191c'],
}

# =====================================================================
# Validation
# =====================================================================

def validate_config():
    """Validate configuration settings."""
    if MIN_TRANSECT_LENGTH >= MAX_TRANSECT_LENGTH:
        raise ValueError(
            f"MIN_TRANSECT_LENGTH ({MIN_TRANSECT_LENGTH}) must be < "
            f"MAX_TRANSECT_LENGTH ({MAX_TRANSECT_LENGTH})"
        )

    if HORIZONTAL_THRESHOLD > HORIZONTAL_NEIGHBORHOOD:
        raise ValueError(
            f"HORIZONTAL_THRESHOLD ({HORIZONTAL_THRESHOLD}) must be <= "
            f"HORIZONTAL_NEIGHBORHOOD ({HORIZONTAL_NEIGHBORHOOD})"
        )

    if list(AGGREGATION_SCALES) != sorted(AGGREGATION_SCALES):
        raise ValueError(f"AGGREGATION_SCALES must be increasing: {AGGREGATION_SCALES}")

    if RIDGE_MAX_CLASS >= VALLEY_MIN_CLASS:
        raise ValueError("RIDGE_MAX_CLASS must be below VALLEY_MIN_CLASS")

    for name, treatment in TREATMENTS.items():
        if treatment['raw_label'] not in treatment['values']:
            raise ValueError(
                f"Raw label {treatment['raw_label']} missing from {name} treatment values"
            )

    if set(LEGEND_PALETTES) != set(VEGETATION_METRICS):
        raise ValueError(
            f"LEGEND_PALETTES must define {list(VEGETATION_METRICS.keys())}"
        )

# Run validation on import
validate_config()
