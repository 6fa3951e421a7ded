"""
Vegetation difference and segment joining functions.

This module contains functions for:
- Loading the published transect dataset
- Computing upper - lower vegetation differences and their summaries
- Pairing rotated/extended transect segments and signing their differences
- Spreading differences per treatment group and joining the raw differences
- Reporting row counts against the documented values
"""

from pathlib import Path

import numpy as np
import pandas as pd
import geopandas as gpd

from atet.config import (
    TRANSECT_ID, VEGETATION_METRICS, TREATMENTS, EXPECTED_ROW_COUNTS,
    FROM_GEOPACKAGE, TRANSECTS_GEOPACKAGE, TRANSECTS_NAME, SAMPLES_GEOPACKAGE
)


def load_transects(data_dir, layer, from_geopackage=FROM_GEOPACKAGE,
                   geopackage=TRANSECTS_GEOPACKAGE, drop_geometry=True):
    """
    Read a transect layer from a GeoPackage or a shapefile directory.

    Parameters
    ----------
    data_dir : str or Path
        Directory holding the GeoPackage or one folder per shapefile layer.
    layer : str
        Layer (and shapefile folder) name.
    from_geopackage : bool, optional
        Read from data_dir / geopackage (True) or from
        data_dir / layer / layer.shp (False).
    geopackage : str, optional
        GeoPackage file name.
    drop_geometry : bool, optional
        Return a plain DataFrame without geometry. Default True.

    Returns
    -------
    DataFrame or GeoDataFrame
        Transect attributes.
    """
    data_dir = Path(data_dir)
    if from_geopackage:
        path = data_dir / geopackage
        read_kwargs = {'layer': layer}
    else:
        path = data_dir / layer / f"{layer}.shp"
        read_kwargs = {}

    if not path.exists():
        raise FileNotFoundError(
            f"Transect layer not found: {path}\n"
            "Please download the published dataset or run scripts/07_compute_segment_differences.py first"
        )

    gdf = gpd.read_file(path, **read_kwargs)
    print(f"Loaded {len(gdf):,} rows from {path.name} ({layer})")

    if drop_geometry:
        return pd.DataFrame(gdf.drop(columns='geometry'))
    return gdf


def load_transect_dataset(data_dir, drop_geometry=True):
    """
    Read the transect polygons layer.

    The transect dataset is always stored as a GeoPackage layer, whatever
    FROM_GEOPACKAGE says about the sample layers.
    """
    return load_transects(data_dir, TRANSECTS_NAME, from_geopackage=True,
                          drop_geometry=drop_geometry)


# =====================================================================
# Upper - Lower Differences
# =====================================================================

def vegetation_difference(transects, metric):
    """
    Upper minus lower segment value for transects with both values.

    Parameters
    ----------
    transects : DataFrame
        Published transects with the L_/U_ metric columns.
    metric : str
        Key of config.VEGETATION_METRICS ('CanopyHt' or 'NDVI').

    Returns
    -------
    Series
        Differences indexed like the retained transects.
    """
    columns = VEGETATION_METRICS[metric]
    valid = transects.dropna(subset=[columns['lower'], columns['upper']])
    diff = valid[columns['upper']] - valid[columns['lower']]
    diff.name = f"{metric}_diff"
    return diff


def lower_upper_values(segment_samples):
    """
    Lower/upper segment values of unadjusted transects.

    Parameters
    ----------
    segment_samples : dict
        Segment samples keyed by metric prefix ('NDVI', 'VCH'), each with
        ET_ID, Segment_ID (1 = lower half, 2 = upper half) and avg_<prefix>.

    Returns
    -------
    DataFrame
        ET_ID plus the L_/U_ columns of every vegetation metric.
    """
    values = None
    for metric, columns in VEGETATION_METRICS.items():
        prefix = columns['segment_prefix']
        wide = segment_samples[prefix].pivot(index=TRANSECT_ID, columns='Segment_ID',
                                             values=f"avg_{prefix}")
        wide = wide.rename(columns={1: columns['lower'], 2: columns['upper']})
        wide = wide[[columns['lower'], columns['upper']]]
        wide.columns.name = None
        values = wide if values is None else values.join(wide, how='outer')
    return values.reset_index()


def summarize_difference(diff):
    """Count, mean, median and percentage of negative differences."""
    return {
        'n': int(len(diff)),
        'mean': float(diff.mean()),
        'median': float(diff.median()),
        'negative_pct': float((diff < 0).mean() * 100),
    }


def compare_to_baseline(summary, baseline, mean_tol=1e-3, pct_tol=0.01):
    """
    Check a difference summary against documented baseline values.

    Returns
    -------
    bool
        True if both the mean and the negative percentage match within
        tolerance (negative percentage compared at two decimals).
    """
    mean_ok = abs(summary['mean'] - baseline['mean']) <= mean_tol
    pct_ok = abs(round(summary['negative_pct'], 2) - baseline['negative_pct']) <= pct_tol
    return mean_ok and pct_ok


# =====================================================================
# Segment Joining
# =====================================================================

def format_group_value(value):
    """
    Column label for a treatment group value.

    Integral values drop the decimal part; decimals use '_' so labels stay
    valid shapefile field names (1.25 -> '1_25', -90 -> '-90').
    """
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value).replace('.', '_')


def adjusted_group_values(treatment):
    """Group values sampled as adjusted segments (raw label excluded)."""
    config = TREATMENTS[treatment]
    return [v for v in config['values'] if v != config['raw_label']]


def pair_segments(samples, group_col, prefix):
    """
    Join segment 1 and segment 2 samples of each transect and group.

    Parameters
    ----------
    samples : DataFrame
        Segment samples with ET_ID, Segment_ID, avg_Elv, avg_<prefix> and
        group_col.
    group_col : str
        Treatment group column ('theta' or 'ratio').
    prefix : str
        Metric prefix ('NDVI' or 'VCH').

    Returns
    -------
    DataFrame
        ET_ID, group_col, Elv_1, <prefix>_1, Elv_2, <prefix>_2 with rows
        missing any value removed.
    """
    value_col = f"avg_{prefix}"
    keys = [TRANSECT_ID, group_col]

    halves = []
    for segment_id in (1, 2):
        half = samples.loc[samples['Segment_ID'] == segment_id, keys + ['avg_Elv', value_col]]
        halves.append(half.rename(columns={'avg_Elv': f"Elv_{segment_id}",
                                           value_col: f"{prefix}_{segment_id}"}))

    paired = halves[0].merge(halves[1], on=keys, how='inner').dropna()
    print(f"  Paired {len(paired):,} {prefix} segment pairs")
    return paired


def signed_segment_difference(paired, group_col, prefix):
    """
    Upper minus lower difference of paired segments.

    The sign follows the elevation order of the two segments; pairs with
    equal elevations are dropped.
    """
    elv_diff = paired['Elv_1'] - paired['Elv_2']
    sign = np.sign(elv_diff).replace(0, np.nan)
    result = paired[[TRANSECT_ID, group_col]].copy()
    result[f"{prefix}_diff"] = (paired[f"{prefix}_1"] - paired[f"{prefix}_2"]) * sign
    return result.dropna()


def spread_differences(diffs, group_col, prefix):
    """
    One column per group value; transects missing any group are dropped.

    Returns
    -------
    DataFrame
        ET_ID and <prefix>_<group> columns ordered by group value.
    """
    spread = diffs.pivot(index=TRANSECT_ID, columns=group_col, values=f"{prefix}_diff")
    spread = spread.dropna(how='any')
    spread.columns = [f"{prefix}_{format_group_value(v)}" for v in spread.columns]
    spread = spread.reset_index()
    print(f"  Spread {prefix} differences: {len(spread):,} transects")
    return spread


def raw_differences(sampled, metric, raw_label):
    """
    Upper - lower difference of the sampled (unadjusted) transects, named
    after the treatment's raw group label.
    """
    prefix = VEGETATION_METRICS[metric]['segment_prefix']
    diff = vegetation_difference(sampled, metric)
    raw = sampled.loc[diff.index, [TRANSECT_ID]].copy()
    raw[f"{prefix}_{format_group_value(raw_label)}"] = diff.values
    return raw.reset_index(drop=True)


def join_treatment_differences(sampled, segment_samples, treatment):
    """
    Build the NDVI, VCH and combined difference tables of a treatment.

    Parameters
    ----------
    sampled : DataFrame
        Sampled transects with the L_/U_ metric columns.
    segment_samples : dict
        Segment samples keyed by metric prefix ('NDVI', 'VCH').
    treatment : str
        Key of config.TREATMENTS ('rotated' or 'extended').

    Returns
    -------
    dict
        Tables keyed 'NDVIdiff', 'VCHdiff' and 'TwoDiff'; the row counts of
        every stage are stored under 'counts'.
    """
    config = TREATMENTS[treatment]
    group_col = config['group']
    print(f"Joining {treatment} segment differences (group: {group_col})")

    tables = {}
    counts = {}
    for metric, metric_config in VEGETATION_METRICS.items():
        prefix = metric_config['segment_prefix']
        paired = pair_segments(segment_samples[prefix], group_col, prefix)
        diffs = signed_segment_difference(paired, group_col, prefix)
        spread = spread_differences(diffs, group_col, prefix)
        raw = raw_differences(sampled, metric, config['raw_label'])

        joined = raw.merge(spread, on=TRANSECT_ID, how='inner')
        tables[f"{prefix}diff"] = joined
        counts[f"{treatment}_{prefix.lower()}_spread"] = len(spread)
        counts[f"{treatment}_{prefix.lower()}_diff"] = len(joined)
        print(f"  {prefix}diff: {len(joined):,} transects")

    two_diff = tables['NDVIdiff'].merge(tables['VCHdiff'], on=TRANSECT_ID, how='inner')
    tables['TwoDiff'] = two_diff
    counts[f"{treatment}_two_diff"] = len(two_diff)
    print(f"  TwoDiff: {len(two_diff):,} transects")

    tables['counts'] = counts
    return tables


def treatment_columns(table, prefix):
    """Columns of a difference table that belong to one metric prefix."""
    return [c for c in table.columns if c.startswith(f"{prefix}_")]


def report_row_count(stage, count, expected=EXPECTED_ROW_COUNTS):
    """
    Print a row count next to its documented value.

    Returns
    -------
    bool or None
        Whether the count matches, or None if no value is documented.
    """
    if stage not in expected:
        print(f"  {stage}: {count:,} rows")
        return None
    matches = count == expected[stage]
    status = "matches" if matches else f"differs from documented {expected[stage]:,}"
    print(f"  {stage}: {count:,} rows ({status})")
    return matches


def write_transect_layer(table, transects, output_dir, layer,
                         to_geopackage=FROM_GEOPACKAGE, geopackage=SAMPLES_GEOPACKAGE):
    """
    Attach transect geometries to a table and write it as a layer.

    Parameters
    ----------
    table : DataFrame
        Table with an ET_ID column.
    transects : GeoDataFrame
        Transects providing the geometries.
    output_dir : str or Path
        Output directory.
    layer : str
        Layer (and shapefile folder) name.
    to_geopackage : bool, optional
        Write a GeoPackage layer (True) or output_dir / layer / layer.shp.
    geopackage : str, optional
        GeoPackage file name.

    Returns
    -------
    Path
        Written file.
    """
    output_dir = Path(output_dir)
    gdf = transects[[TRANSECT_ID, 'geometry']].merge(table, on=TRANSECT_ID, how='inner')
    gdf = gpd.GeoDataFrame(gdf, geometry='geometry', crs=transects.crs)

    if to_geopackage:
        path = output_dir / geopackage
        path.parent.mkdir(parents=True, exist_ok=True)
        gdf.to_file(path, layer=layer, driver='GPKG')
    else:
        path = output_dir / layer / f"{layer}.shp"
        path.parent.mkdir(parents=True, exist_ok=True)
        gdf.to_file(path)

    print(f"  Saved {len(gdf):,} rows to {path.name} ({layer})")
    return path
