# site_proximity/utils/spatial_utils.py
"""
Geospatial utility functions for site proximity analysis.

This module handles the coordinate system chores around the analysis:
- Making sure data has a CRS and converting between systems
- Picking a projected CRS (a fixed UTM zone, or one estimated from the data)
- Building point layers from longitude/latitude columns

Distances and buffers are only meaningful in a projected CRS, so everything
that reaches the analysis stages goes through here first.
"""

import logging
import geopandas as gpd
from pyproj import CRS

from site_proximity.config import GEOGRAPHIC_CRS, ANALYSIS_CRS
from site_proximity.exceptions import InvalidInputError

# Set up logging - we'll use this to track what's happening
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Common coordinate systems we'll use
WGS84 = GEOGRAPHIC_CRS  # Standard GPS coordinates (lat/lon)

# Defaults - WGS84 for storage, UTM zone 36N for calculations
DEFAULT_CRS = WGS84
DEFAULT_ANALYSIS_CRS = ANALYSIS_CRS


def ensure_crs(gdf, target_crs=DEFAULT_CRS):
    """
    Make sure a GeoDataFrame has the right coordinate system.

    Data without a CRS is assumed to already be in target_crs; data in another
    CRS is converted.

    Args:
        gdf: The GeoDataFrame to fix
        target_crs: What coordinate system we want (default: WGS84)

    Returns:
        GeoDataFrame with the correct coordinate system
    """
    # Handle empty data gracefully
    if gdf is None or gdf.empty:
        return gdf

    try:
        # Case 1: No CRS defined at all
        if gdf.crs is None:
            logger.warning(f"GeoDataFrame missing CRS - setting to {target_crs}")
            gdf = gdf.set_crs(target_crs)

        # Case 2: CRS exists but is different from what we want
        elif gdf.crs != CRS.from_user_input(target_crs):
            logger.info(f"Converting from {gdf.crs.to_string()} to {target_crs}")
            gdf = gdf.to_crs(target_crs)

        return gdf

    except Exception as e:
        logger.error(f"CRS conversion failed: {e}")
        raise


def resolve_analysis_crs(gdf, analysis_crs=DEFAULT_ANALYSIS_CRS):
    """
    Work out which projected CRS to use for a dataset.

    Args:
        gdf: GeoDataFrame the analysis will run on
        analysis_crs: A CRS string, or "utm" to estimate the UTM zone from the data

    Returns:
        pyproj CRS object, always projected
    """
    if isinstance(analysis_crs, str) and analysis_crs.lower() == "utm":
        if gdf is None or gdf.empty:
            raise InvalidInputError("Cannot estimate a UTM zone from an empty dataset")
        crs = gdf.estimate_utm_crs()
        logger.info(f"Estimated UTM zone: {crs.to_string()}")
    else:
        crs = CRS.from_user_input(analysis_crs)

    if not crs.is_projected:
        raise InvalidInputError(f"Analysis CRS {crs.to_string()} is not projected")

    return crs


def to_analysis_crs(gdf, analysis_crs=DEFAULT_ANALYSIS_CRS):
    """
    Reproject a GeoDataFrame into a projected CRS for distance work.

    Args:
        gdf: GeoDataFrame with a CRS (usually WGS84)
        analysis_crs: Target CRS, or "utm" to estimate one

    Returns:
        Reprojected GeoDataFrame
    """
    if gdf.crs is None:
        raise InvalidInputError("GeoDataFrame has no CRS - declare the source CRS before reprojecting")

    crs = resolve_analysis_crs(gdf, analysis_crs)
    return ensure_crs(gdf, crs)


def points_from_lonlat(df, lon_column="longitude", lat_column="latitude", crs=DEFAULT_CRS):
    """
    Build a point GeoDataFrame from longitude/latitude columns.

    Args:
        df: DataFrame with coordinate columns
        lon_column: Longitude column name
        lat_column: Latitude column name
        crs: CRS the coordinates are expressed in

    Returns:
        GeoDataFrame of points
    """
    missing = [col for col in (lon_column, lat_column) if col not in df.columns]
    if missing:
        raise InvalidInputError(f"Missing coordinate columns: {missing}")

    geometry = gpd.points_from_xy(df[lon_column], df[lat_column])
    return gpd.GeoDataFrame(df.copy(), geometry=geometry, crs=crs)
