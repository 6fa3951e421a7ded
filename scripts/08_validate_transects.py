"""
Script 08: Validate Transects

Technical validation of the elevational transects.

Workflow:
1. Upper - lower canopy height and NDVI differences of the transects:
   scaled density plots and summary statistics against the baselines
2. Rotated and extended segment differences: box plots and median/summary
   statistics per treatment group

Input:  data/processed/ATET_ATEC_v1.0.gpkg
        data/processed/Adjusted_Transect_Samples.gpkg
Output: results/figures/<metric>_Density.png
        results/figures/<treatment>TwoDiff_Boxplot.png
        results/difference_summary.txt
        results/<treatment>_analysis.txt

Then run: python scripts/09_build_viewer_layers.py
"""

from atet import config
from atet.analysis import (
    load_transects, load_transect_dataset, vegetation_difference,
    summarize_difference, compare_to_baseline, report_row_count
)
from atet.plotting import (
    create_difference_density_plot, create_treatment_boxplot,
    save_difference_summary, summarize_treatment
)

print("="*80)
print("SCRIPT 08: Validate Transects")
print("="*80)

config.FIGURES_DIR.mkdir(parents=True, exist_ok=True)

# =========================================================================
# PART 1: UPPER - LOWER DIFFERENCES
# =========================================================================

print("\n" + "="*80)
print("PART 1: Upper - Lower Differences")
print("="*80)

transects = load_transect_dataset(config.DATA_PROCESSED)

summaries = {}
for metric in config.VEGETATION_METRICS:
    print(f"\n{metric}:")
    diff = vegetation_difference(transects, metric)
    summary = summarize_difference(diff)
    summaries[metric] = summary

    print(f"  N: {summary['n']:,}")
    print(f"  Mean: {summary['mean']:.6f}")
    print(f"  Negative: {summary['negative_pct']:.2f}%")
    if compare_to_baseline(summary, config.BASELINES[metric]):
        print("  Matches the documented baseline")
    else:
        print(f"  Differs from the documented baseline {config.BASELINES[metric]}")

    create_difference_density_plot(diff, metric, config.FIGURES_DIR / f"{metric}_Density.png")

save_difference_summary(summaries, config.RESULTS_DIR / "difference_summary.txt")

# =========================================================================
# PART 2: ADJUSTED TRANSECTS
# =========================================================================

print("\n" + "="*80)
print("PART 2: Adjusted Transect Analysis")
print("="*80)

for treatment in config.TREATMENTS:
    print(f"\n{treatment}:")
    table = load_transects(config.DATA_PROCESSED, f"{treatment}Transects_TwoDiff",
                           geopackage=config.SAMPLES_GEOPACKAGE)
    report_row_count(f"{treatment}_two_diff", len(table))

    create_treatment_boxplot(table, treatment,
                             config.FIGURES_DIR / f"{treatment}TwoDiff_Boxplot.png")
    medians = summarize_treatment(table, treatment,
                                  config.RESULTS_DIR / f"{treatment}_analysis.txt")
    for prefix, median in medians.items():
        print(f"  Highest {prefix} median: {median.index[0]} ({median.iloc[0]:.4f})")

print("\n" + "="*80)
print("SCRIPT 08 COMPLETE")
print("="*80)
print("Next step: python scripts/09_build_viewer_layers.py")
print("="*80)
