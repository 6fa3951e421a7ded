"""
Script 07: Compute Segment Differences

Joins the segment samples into upper - lower vegetation differences of the
sampled, rotated and extended transects.

Workflow:
1. Attach lower/upper NDVI and canopy height values to the transects
2. For each treatment (rotated, extended):
   a. Pair segment 1 and 2 samples per transect and group
   b. Sign the differences by the segment elevation order
   c. Spread one column per group, dropping incomplete transects
   d. Join with the raw differences of the sampled transects
3. Report every stage's row count against the documented values

Input:  data/processed/ATET_ATEC_v1.0.gpkg
        data/intermediate/{Sampling,Rotation,Extension}/<prefix>Segments_<metric>/
Output: data/processed/ATET_ATEC_v1.0.gpkg (transects with L_/U_ values)
        data/processed/Adjusted_Transect_Samples.gpkg
            sampledTransects, <prefix>Transects_NDVIdiff|VCHdiff|TwoDiff

Then run: python scripts/08_validate_transects.py
"""

from atet import config
from atet.analysis import (
    load_transects, load_transect_dataset, lower_upper_values, raw_differences,
    join_treatment_differences, write_transect_layer, report_row_count
)

print("="*80)
print("SCRIPT 07: Compute Segment Differences")
print("="*80)


def load_segment_samples(folder, prefix):
    """Read the NDVI and VCH segment samples of one sampling set."""
    samples = {}
    for metric in ['NDVI', 'VCH']:
        samples[metric] = load_transects(config.DATA_INTERMEDIATE / folder,
                                         f"{prefix}Segments_{metric}",
                                         from_geopackage=False)
    return samples


# =========================================================================
# STEP 1: SAMPLED TRANSECTS
# =========================================================================

print("\n" + "="*80)
print("STEP 1: Sampled Transects")
print("="*80)

transects = load_transect_dataset(config.DATA_PROCESSED, drop_geometry=False)
transects = transects.drop(
    columns=[c for metric in config.VEGETATION_METRICS.values()
             for c in (metric['lower'], metric['upper']) if c in transects.columns]
)

values = lower_upper_values(load_segment_samples('Sampling', 'sampled'))
sampled = transects.merge(values, on=config.TRANSECT_ID, how='left')

transects_path = config.DATA_PROCESSED / config.TRANSECTS_GEOPACKAGE
sampled.to_file(transects_path, layer=config.TRANSECTS_NAME, driver='GPKG')
print(f"Updated {config.TRANSECTS_NAME} with lower/upper values")

write_transect_layer(sampled.drop(columns='geometry'), sampled, config.DATA_PROCESSED,
                     config.SAMPLED_TRANSECTS_NAME)

print("\nRow counts:")
report_row_count('sampled', len(sampled))
report_row_count('sampled_ndvi_raw',
                 len(raw_differences(sampled, 'NDVI', 0)))
report_row_count('sampled_vch_raw',
                 len(raw_differences(sampled, 'CanopyHt', 0)))

# =========================================================================
# STEP 2: ADJUSTED TRANSECTS
# =========================================================================

sampled_df = sampled.drop(columns='geometry')
for treatment, treatment_config in config.TREATMENTS.items():
    print("\n" + "="*80)
    print(f"STEP 2: {treatment.capitalize()} Transects")
    print("="*80)

    samples = load_segment_samples(treatment_config['folder'], treatment)
    tables = join_treatment_differences(sampled_df, samples, treatment)

    print("\nRow counts:")
    for stage, count in tables['counts'].items():
        report_row_count(stage, count)

    print("\nWriting layers:")
    for name in ['NDVIdiff', 'VCHdiff', 'TwoDiff']:
        write_transect_layer(tables[name], sampled, config.DATA_PROCESSED,
                             f"{treatment}Transects_{name}")

print("\n" + "="*80)
print("SCRIPT 07 COMPLETE")
print("="*80)
print("Next step: python scripts/08_validate_transects.py")
print("="*80)
