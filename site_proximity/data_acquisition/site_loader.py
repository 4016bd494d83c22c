"""
Cellular site loading and preparation.

Turns a raw site snapshot (CSV, GeoJSON or Parquet export of the site
database) into a projected point GeoDataFrame that the proximity pipeline
accepts: incomplete records dropped, identifiers unique, coordinates in a
planar CRS.
"""

import logging
import pandas as pd
import geopandas as gpd
from pathlib import Path
from typing import Optional

from site_proximity.config import GEOGRAPHIC_CRS, ANALYSIS_CRS
from site_proximity.exceptions import InvalidInputError
from site_proximity.utils.file_io import load_path
from site_proximity.utils.spatial_utils import points_from_lonlat, to_analysis_crs

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class SiteLoader:
    """Loads site records and prepares them for distance analysis."""

    def __init__(self,
                 id_column: str = 'site_id',
                 lon_column: str = 'longitude',
                 lat_column: str = 'latitude',
                 date_column: Optional[str] = 'discovery_date',
                 source_crs: str = GEOGRAPHIC_CRS,
                 analysis_crs: str = ANALYSIS_CRS,
                 duplicates: str = 'raise'):
        """
        Initialize the SiteLoader.

        Args:
            id_column: Unique site identifier column
            lon_column: Longitude (or easting) column
            lat_column: Latitude (or northing) column
            date_column: Discovery date column; records without it are dropped (None to skip)
            source_crs: CRS the raw coordinates are expressed in
            analysis_crs: Projected CRS for the analysis, or "utm" to estimate one
            duplicates: 'raise' to reject duplicate identifiers, 'first' to keep the first record
        """
        if duplicates not in ('raise', 'first'):
            raise ValueError(f"Invalid duplicates policy: {duplicates}. Must be 'raise' or 'first'")

        self.id_column = id_column
        self.lon_column = lon_column
        self.lat_column = lat_column
        self.date_column = date_column
        self.source_crs = source_crs
        self.analysis_crs = analysis_crs
        self.duplicates = duplicates

    def load(self, path) -> gpd.GeoDataFrame:
        """
        Load a site snapshot from disk and prepare it.

        Args:
            path: Path to a .csv, .geojson, .parquet or .geoparquet file

        Returns:
            Projected GeoDataFrame of sites
        """
        path = Path(path)
        logger.info(f"Loading sites from {path}")
        df = load_path(path)
        return self.prepare(df)

    def prepare(self, df: pd.DataFrame) -> gpd.GeoDataFrame:
        """
        Clean raw site records and project them.

        Args:
            df: Raw site records (DataFrame with coordinate columns, or GeoDataFrame)

        Returns:
            Projected GeoDataFrame of sites with unique identifiers
        """
        if df is None or df.empty:
            raise InvalidInputError("No site records to prepare")

        required = [self.id_column]
        if not isinstance(df, gpd.GeoDataFrame):
            required += [self.lon_column, self.lat_column]
        if self.date_column:
            required.append(self.date_column)

        missing = [col for col in required if col not in df.columns]
        if missing:
            raise InvalidInputError(f"Missing required site columns: {missing}")

        sites = self._drop_incomplete(df)
        sites = self._handle_duplicates(sites)

        if isinstance(sites, gpd.GeoDataFrame):
            if sites.crs is None:
                sites = sites.set_crs(self.source_crs)
        else:
            sites = points_from_lonlat(sites, self.lon_column, self.lat_column, crs=self.source_crs)

        sites = to_analysis_crs(sites, self.analysis_crs)
        sites = sites.reset_index(drop=True)

        logger.info(f"Prepared {len(sites)} sites in {sites.crs.to_string()}")
        return sites

    def _drop_incomplete(self, df):
        """Drop records without a discovery date or coordinates, and parse the date."""
        mask = df[self.id_column].notna()

        if self.date_column:
            dates = pd.to_datetime(df[self.date_column], errors='coerce')
            mask &= dates.notna()

        if isinstance(df, gpd.GeoDataFrame):
            mask &= ~(df.geometry.isna() | df.geometry.is_empty)
        else:
            mask &= df[self.lon_column].notna() & df[self.lat_column].notna()

        dropped = int((~mask).sum())
        if dropped:
            logger.warning(f"Dropping {dropped} site records missing identifier, date or coordinates")

        result = df[mask].copy()
        if self.date_column:
            result[self.date_column] = dates[mask]
        return result

    def _handle_duplicates(self, df):
        """Reject or collapse duplicate site identifiers."""
        duplicated = df[self.id_column].duplicated()
        if not duplicated.any():
            return df

        dup_ids = df.loc[duplicated, self.id_column].unique().tolist()
        if self.duplicates == 'raise':
            raise InvalidInputError(f"Duplicate site identifiers: {dup_ids[:10]}")

        logger.warning(f"Keeping the first record of {len(dup_ids)} duplicated site identifiers")
        return df[~duplicated]


# Convenience function for direct use
def load_sites(path,
               id_column: str = 'site_id',
               analysis_crs: str = ANALYSIS_CRS,
               duplicates: str = 'raise') -> gpd.GeoDataFrame:
    """
    Load and prepare a site snapshot.

    Args:
        path: Path to the snapshot file
        id_column: Unique site identifier column
        analysis_crs: Projected CRS for the analysis
        duplicates: 'raise' or 'first'

    Returns:
        Projected GeoDataFrame of sites
    """
    loader = SiteLoader(id_column=id_column, analysis_crs=analysis_crs, duplicates=duplicates)
    return loader.load(path)
