# app.py
from pathlib import Path

import streamlit as st
import geopandas as gpd
import folium
from streamlit_folium import st_folium

from atet.config import (
    DATA_PROCESSED, AGGREGATION_LEVELS, LEGEND_PALETTES, VEGETATION_METRICS,
    BASIN_ID, MOUNTAIN_NAME, TRANSECT_ID
)
from atet.viewer import (
    legend_bins, color_for, legend_html, nearest_transect, transect_profile,
    profile_chart, parse_click_params, format_click_params
)
from atet.preprocessing import to_metric_crs

st.set_page_config(page_title="Alpine Treeline Elevational Transects", layout="wide")
st.title("Alpine Treeline Elevational Transects")

LAYERS_PATH = DATA_PROCESSED / "viewer_layers.gpkg"


# ==============================
# Load pre-computed layers
# ==============================
@st.cache_data(show_spinner=False)
def load_layer(path: str, level: str) -> gpd.GeoDataFrame:
    return gpd.read_file(path, layer=level).to_crs("EPSG:4326")


@st.cache_data(show_spinner=False)
def load_metric_layer(path: str, level: str) -> gpd.GeoDataFrame:
    return to_metric_crs(gpd.read_file(path, layer=level))


if not Path(LAYERS_PATH).exists():
    st.error(f"Layers not found at {LAYERS_PATH}. Run scripts/09_build_viewer_layers.py first.")
    st.stop()

# ==============================
# Sidebar widgets
# ==============================
with st.sidebar:
    level = st.selectbox("Aggregation level", list(AGGREGATION_LEVELS), index=0)
    metric = st.selectbox(
        "Vegetation difference", list(VEGETATION_METRICS),
        format_func=lambda m: VEGETATION_METRICS[m]['label'],
    )
    show_transects = st.checkbox("Show transects", value=True)
    show_legend = st.checkbox("Show legend", value=True)

layer = load_layer(str(LAYERS_PATH), level)
transects = load_layer(str(LAYERS_PATH), "transect")
metric_transects = load_metric_layer(str(LAYERS_PATH), "transect")

diff_col = f"{metric}_diff"
bins = legend_bins(layer[diff_col], LEGEND_PALETTES[metric])

# ==============================
# Map
# ==============================
clicked = parse_click_params(st.query_params)
if "click" not in st.session_state:
    st.session_state["click"] = clicked

bounds = layer.total_bounds
center = [(bounds[1] + bounds[3]) / 2, (bounds[0] + bounds[2]) / 2]
m = folium.Map(location=center, zoom_start=8, tiles="CartoDB Positron")

key = AGGREGATION_LEVELS[level]
if level != "transect" or show_transects:
    folium.GeoJson(
        layer[[key, diff_col, "n_transects", "geometry"]],
        style_function=lambda feature: {
            "fillColor": color_for(feature["properties"][diff_col], bins),
            "color": color_for(feature["properties"][diff_col], bins),
            "weight": 1,
            "fillOpacity": 0.7,
        },
        tooltip=folium.GeoJsonTooltip(fields=[key, diff_col, "n_transects"]),
    ).add_to(m)

if level != "transect" and show_transects:
    folium.GeoJson(
        transects[[TRANSECT_ID, "geometry"]],
        style_function=lambda feature: {"color": "#636363", "weight": 1, "fillOpacity": 0},
        name="Transects",
    ).add_to(m)

if show_legend:
    m.get_root().html.add_child(folium.Element(
        legend_html(bins, VEGETATION_METRICS[metric]['label'])
    ))

if st.session_state["click"] is not None:
    lat, lon = st.session_state["click"]
    folium.Marker(location=[lat, lon], tooltip="Selected location",
                  icon=folium.Icon(color="red")).add_to(m)

st_data = st_folium(m, use_container_width=True, height=560)
if st_data and st_data.get("last_clicked"):
    lat = st_data["last_clicked"]["lat"]
    lon = st_data["last_clicked"]["lng"]
    if st.session_state["click"] != (lat, lon):
        st.session_state["click"] = (lat, lon)
        st.query_params.update(format_click_params(lat, lon))
        st.rerun()

# ==============================
# Transect profile
# ==============================
if st.session_state["click"] is None:
    st.info("Click on the map to inspect the nearest transect.")
else:
    lat, lon = st.session_state["click"]
    nearest = nearest_transect(metric_transects, lat, lon)
    if nearest is None:
        st.warning("No transects available.")
    else:
        st.subheader(f"Transect {int(nearest[TRANSECT_ID])}")
        cols = st.columns(3)
        cols[0].metric("Distance to click (m)", f"{nearest['distance_m']:,.0f}")
        cols[1].metric("Watershed", str(nearest.get(BASIN_ID, "N/A")))
        cols[2].metric("Mountain range", str(nearest.get(MOUNTAIN_NAME, "N/A")))

        profile = transect_profile(nearest)
        st.plotly_chart(profile_chart(profile, metric), use_container_width=True)
        st.dataframe(profile, hide_index=True)
