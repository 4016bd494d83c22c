"""
Pairwise distance matrix for cellular sites.

Builds a dense, symmetric, zero-diagonal matrix of planar distances between
site locations, indexed on both axes by site identifier. The matrix is the
input of the nearest-neighbour statistics, so every structural problem with
the site set (too few sites, duplicate identifiers, broken coordinates,
geographic CRS) is rejected here before anything is computed.

Memory and time are O(N^2). That is fine for the few thousand sites of a
national network; anything larger should use a spatial index instead.
"""

import logging
import numpy as np
import pandas as pd
import geopandas as gpd
from pyproj import CRS
from scipy.spatial.distance import cdist
from typing import Optional, Union

from site_proximity.exceptions import InvalidInputError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class DistanceMatrixBuilder:
    """
    Builder for site-to-site planar distance matrices.

    The builder never reprojects. Sites must already be in a projected CRS
    with linear units (e.g. a UTM zone) and, when a CRS is declared, it must
    match the CRS of the sites exactly.
    """

    def __init__(self,
                 id_column: str = 'site_id',
                 crs: Optional[Union[str, CRS]] = None):
        """
        Initialize the DistanceMatrixBuilder.

        Args:
            id_column: Column holding the unique site identifier
            crs: Declared projected CRS of the sites (checked, never applied)
        """
        self.id_column = id_column
        self.crs = CRS.from_user_input(crs) if crs is not None else None

    def validate_sites(self, sites: gpd.GeoDataFrame) -> np.ndarray:
        """
        Check that a site set can be turned into a distance matrix.

        Args:
            sites: GeoDataFrame of point geometries

        Returns:
            (N, 2) array of planar coordinates in input order

        Raises:
            InvalidInputError: If the site set is unusable
        """
        if sites is None or not isinstance(sites, gpd.GeoDataFrame):
            raise InvalidInputError("Sites must be a GeoDataFrame")

        if len(sites) < 2:
            raise InvalidInputError(f"At least 2 sites are needed, got {len(sites)}")

        if self.id_column not in sites.columns:
            raise InvalidInputError(f"Missing identifier column: {self.id_column}")

        ids = sites[self.id_column]
        if ids.isna().any():
            raise InvalidInputError(f"{int(ids.isna().sum())} sites have no identifier")

        duplicated = ids[ids.duplicated()].unique().tolist()
        if duplicated:
            raise InvalidInputError(f"Duplicate site identifiers: {duplicated[:10]}")

        self._check_crs(sites)

        geometry = sites.geometry
        bad = geometry.isna() | geometry.is_empty
        if bad.any():
            raise InvalidInputError(f"{int(bad.sum())} sites have a missing or empty geometry")

        not_points = geometry.geom_type != 'Point'
        if not_points.any():
            raise InvalidInputError(f"{int(not_points.sum())} site geometries are not points")

        coords = np.column_stack([geometry.x.to_numpy(dtype=float), geometry.y.to_numpy(dtype=float)])
        non_finite = ~np.isfinite(coords).all(axis=1)
        if non_finite.any():
            bad_ids = ids[non_finite].tolist()
            raise InvalidInputError(f"Non-finite coordinates for sites: {bad_ids[:10]}")

        return coords

    def build(self, sites: gpd.GeoDataFrame) -> pd.DataFrame:
        """
        Build the N x N distance matrix.

        Args:
            sites: GeoDataFrame of point geometries in a projected CRS

        Returns:
            DataFrame indexed (rows and columns) by site identifier, in input order
        """
        coords = self.validate_sites(sites)
        ids = sites[self.id_column].tolist()

        logger.info(f"Building {len(ids)}x{len(ids)} distance matrix")

        distances = cdist(coords, coords, metric='euclidean')

        # Exact symmetry and a zero diagonal regardless of rounding
        distances = np.minimum(distances, distances.T)
        np.fill_diagonal(distances, 0.0)

        index = pd.Index(ids, name=self.id_column)
        matrix = pd.DataFrame(distances, index=index, columns=index.copy())

        logger.info(f"Distance matrix ready - max distance {distances.max():.2f}")
        return matrix

    def _check_crs(self, sites: gpd.GeoDataFrame):
        """Reject missing, geographic or mismatched coordinate systems."""
        if sites.crs is None:
            raise InvalidInputError("Sites have no CRS; reproject them to a projected CRS first")

        if not sites.crs.is_projected:
            raise InvalidInputError(
                f"Sites are in geographic CRS {sites.crs.to_string()}; distances need a projected CRS"
            )

        if self.crs is not None and sites.crs != self.crs:
            raise InvalidInputError(
                f"Sites are in {sites.crs.to_string()} but {self.crs.to_string()} was declared"
            )


# Convenience function for direct use
def build_distance_matrix(sites: gpd.GeoDataFrame,
                          id_column: str = 'site_id',
                          crs: Optional[Union[str, CRS]] = None) -> pd.DataFrame:
    """
    Build a site-to-site distance matrix.

    Args:
        sites: GeoDataFrame of point geometries in a projected CRS
        id_column: Column holding the unique site identifier
        crs: Declared CRS to check the sites against

    Returns:
        Square DataFrame of planar distances indexed by identifier
    """
    builder = DistanceMatrixBuilder(id_column=id_column, crs=crs)
    return builder.build(sites)
