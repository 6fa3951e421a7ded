"""
ATET package for the Alpine Treeline Elevational Transects workflow.

This package contains domain-specific logic organized into:
- config: Configuration parameters, asset paths and thresholds
- remotesensing: Google Earth Engine graphs for transect generation
- rasters: Local array rendition of the per-pixel generation stages
- preprocessing: Centerline, grouping and transect geometry operations
- analysis: Segment joining and vegetation difference statistics
- plotting: Validation figures and summary statistics
- viewer: Helpers behind the interactive map application
"""

__version__ = "1.0.0"
