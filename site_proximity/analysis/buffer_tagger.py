"""
Buffer-and-tag classification of sites against a reference geometry.

Each site gets a disc-shaped buffer whose radius is its own mean
nearest-neighbour distance. A site is tagged with the reference label (for
example the name of a road) when its buffer intersects the reference
geometry, and with a "no match" label otherwise.

Problems with the shared reference geometry or with coordinate systems stop
the whole classification. Problems with a single site's buffer (missing
geometry, negative or undefined radius) only affect that site, which then
receives the error label.
"""

import logging
import math
import geopandas as gpd
import pandas as pd
from dataclasses import dataclass
from pyproj import CRS
from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep
from shapely.validation import explain_validity, make_valid
from typing import Any, Optional, Tuple, Union

from site_proximity.config import ERROR_LABEL, NO_MATCH_LABEL
from site_proximity.exceptions import GeometryError, InvalidArgumentError, InvalidInputError

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@dataclass
class ReferenceGeometry:
    """
    A labelled line or polygon that sites are classified against.

    Attributes:
        geometry: Shapely geometry of the region of interest
        label: Tag given to sites whose buffer touches the geometry
        crs: Coordinate reference system of the geometry
    """
    geometry: BaseGeometry
    label: str
    crs: Any = None

    @classmethod
    def from_geodataframe(cls, gdf: Union[gpd.GeoDataFrame, gpd.GeoSeries], label: str) -> 'ReferenceGeometry':
        """
        Merge every feature of a GeoDataFrame into one reference geometry.

        Args:
            gdf: Features forming the region of interest (e.g. all segments of a road)
            label: Tag for matching sites

        Returns:
            ReferenceGeometry in the CRS of the input
        """
        if isinstance(gdf, gpd.GeoSeries):
            gdf = gpd.GeoDataFrame(geometry=gdf)

        if gdf is not None and not isinstance(gdf, gpd.GeoDataFrame):
            raise InvalidInputError(
                f"Reference '{label}' must be a GeoDataFrame with geometries, got {type(gdf).__name__}"
            )

        if gdf is None or gdf.empty:
            raise GeometryError(f"No features given for reference '{label}'")

        if gdf.crs is None:
            raise InvalidInputError(f"Reference '{label}' has no CRS")

        features = gdf[~(gdf.geometry.isna() | gdf.geometry.is_empty)]
        if features.empty:
            raise GeometryError(f"All features of reference '{label}' are empty")

        # Dissolve to get a single geometry
        geometry = features[[features.geometry.name]].dissolve().geometry.iloc[0]
        return cls(geometry=geometry, label=label, crs=gdf.crs)

    def to_crs(self, crs) -> 'ReferenceGeometry':
        """Return a copy of the reference reprojected to another CRS."""
        if self.crs is None:
            raise InvalidInputError(f"Reference '{self.label}' has no CRS to reproject from")
        projected = gpd.GeoSeries([self.geometry], crs=self.crs).to_crs(crs)
        return ReferenceGeometry(geometry=projected.iloc[0], label=self.label, crs=projected.crs)

    def validate(self, repair: bool = False) -> 'ReferenceGeometry':
        """
        Check the reference before it is shared by every site.

        Args:
            repair: Try make_valid on invalid geometries instead of failing

        Returns:
            The reference itself, or a repaired copy

        Raises:
            GeometryError: If the geometry is missing, empty or invalid
            InvalidInputError: If the CRS is missing or geographic
        """
        if self.geometry is None or not isinstance(self.geometry, BaseGeometry):
            raise GeometryError(f"Reference '{self.label}' has no geometry")

        if self.geometry.is_empty:
            raise GeometryError(f"Reference '{self.label}' geometry is empty")

        if self.crs is None:
            raise InvalidInputError(f"Reference '{self.label}' has no CRS")

        crs = CRS.from_user_input(self.crs)
        if not crs.is_projected:
            raise InvalidInputError(
                f"Reference '{self.label}' is in geographic CRS {crs.to_string()}; buffers need a projected CRS"
            )

        if self.geometry.is_valid:
            return ReferenceGeometry(geometry=self.geometry, label=self.label, crs=crs)

        reason = explain_validity(self.geometry)
        if not repair:
            raise GeometryError(f"Reference '{self.label}' geometry is invalid: {reason}")

        logger.warning(f"Repairing invalid reference '{self.label}': {reason}")
        repaired = make_valid(self.geometry)
        if repaired.is_empty or not repaired.is_valid:
            raise GeometryError(f"Reference '{self.label}' could not be repaired: {reason}")

        return ReferenceGeometry(geometry=repaired, label=self.label, crs=crs)


class BufferTagClassifier:
    """
    Tags sites whose nearest-neighbour buffer intersects a reference geometry.

    The classifier keeps no state between sites apart from the validated,
    read-only reference.
    """

    def __init__(self,
                 reference: ReferenceGeometry,
                 no_match_label: str = NO_MATCH_LABEL,
                 error_label: str = ERROR_LABEL,
                 repair: bool = False,
                 quad_segs: int = 16):
        """
        Initialize the BufferTagClassifier.

        Args:
            reference: Labelled region of interest in the same projected CRS as the sites
            no_match_label: Tag for sites whose buffer misses the reference
            error_label: Tag for sites whose buffer could not be built
            repair: Repair an invalid reference instead of failing
            quad_segs: Segments per quarter circle used to approximate the disc
        """
        if reference.label in (no_match_label, error_label):
            raise InvalidArgumentError(
                f"Reference label '{reference.label}' collides with the no-match or error label"
            )
        if no_match_label == error_label:
            raise InvalidArgumentError("No-match and error labels must differ")

        self.reference = reference.validate(repair=repair)
        self.no_match_label = no_match_label
        self.error_label = error_label
        self.quad_segs = quad_segs
        self._prepared = prep(self.reference.geometry)

        logger.info(f"Initialized BufferTagClassifier for reference '{self.reference.label}' "
                    f"({self.reference.geometry.geom_type}, {self.reference.crs.to_string()})")

    def build_buffer(self, point: Optional[BaseGeometry], radius: float) -> Polygon:
        """
        Build the disc of the given radius around a site.

        Args:
            point: Site location
            radius: Buffer radius in CRS units

        Returns:
            Buffer polygon; an empty polygon for a zero radius

        Raises:
            GeometryError: If the point or the radius cannot produce a buffer
        """
        if point is None or not isinstance(point, Point) or point.is_empty:
            raise GeometryError(f"Site geometry is not a usable point: {point!r}")

        try:
            radius = float(radius)
        except (TypeError, ValueError):
            raise GeometryError(f"Buffer radius is not a number: {radius!r}")

        if not math.isfinite(radius):
            raise GeometryError(f"Buffer radius is undefined: {radius}")
        if radius < 0:
            raise GeometryError(f"Buffer radius is negative: {radius}")

        if radius == 0:
            return Polygon()

        return point.buffer(radius, quad_segs=self.quad_segs)

    def classify_point(self, point: Optional[BaseGeometry], radius: float) -> str:
        """
        Tag a single site.

        Args:
            point: Site location
            radius: Buffer radius, normally the site's NearestMean

        Returns:
            The reference label if the buffer intersects the reference, else the no-match label
        """
        buffer = self.build_buffer(point, radius)

        # An empty buffer intersects nothing
        if buffer.is_empty:
            return self.no_match_label

        try:
            hit = self._prepared.intersects(buffer)
        except GEOSException as e:
            raise GeometryError(f"Intersection test failed: {e}")

        return self.reference.label if hit else self.no_match_label

    def classify(self, sites: gpd.GeoDataFrame, radius_column: str = 'NearestMean') -> gpd.GeoDataFrame:
        """
        Tag every site.

        Args:
            sites: GeoDataFrame of site points with a radius column
            radius_column: Column holding each site's buffer radius

        Returns:
            Copy of the sites with Tag and TagError columns added
        """
        self._check_sites(sites, radius_column)

        logger.info(f"Tagging {len(sites)} sites against '{self.reference.label}'")

        tags = []
        errors = []
        for site_idx, point, radius in zip(sites.index, sites.geometry, sites[radius_column]):
            tag, error = self._classify_safely(site_idx, point, radius)
            tags.append(tag)
            errors.append(error)

        result = sites.copy()
        result['Tag'] = tags
        # object dtype keeps None (not NaN) for sites without an error
        result['TagError'] = pd.Series(errors, index=sites.index, dtype=object)

        counts = result['Tag'].value_counts()
        logger.info(f"Tagging complete - {int(counts.get(self.reference.label, 0))} tagged, "
                    f"{int(counts.get(self.no_match_label, 0))} not matched, "
                    f"{int(counts.get(self.error_label, 0))} failed")

        return result

    def buffers(self, sites: gpd.GeoDataFrame, radius_column: str = 'NearestMean') -> gpd.GeoDataFrame:
        """
        Build the buffer polygon of every site.

        Args:
            sites: GeoDataFrame of site points with a radius column
            radius_column: Column holding each site's buffer radius

        Returns:
            Copy of the sites with buffer polygons as geometry (None where the buffer failed)
        """
        self._check_sites(sites, radius_column)

        polygons = []
        for site_idx, point, radius in zip(sites.index, sites.geometry, sites[radius_column]):
            try:
                polygons.append(self.build_buffer(point, radius))
            except GeometryError as e:
                logger.warning(f"No buffer for site at index {site_idx}: {e}")
                polygons.append(None)

        result = sites.copy()
        result['buffer_radius'] = sites[radius_column]
        result[result.geometry.name] = gpd.GeoSeries(polygons, index=sites.index, crs=sites.crs)
        return result

    def _classify_safely(self, site_idx, point, radius) -> Tuple[str, Optional[str]]:
        """Classify one site, turning a point-local geometry failure into the error label."""
        try:
            return self.classify_point(point, radius), None
        except GeometryError as e:
            logger.warning(f"Could not tag site at index {site_idx}: {e}")
            return self.error_label, str(e)

    def _check_sites(self, sites: gpd.GeoDataFrame, radius_column: str):
        """Batch-level checks: input type, radius column and CRS agreement."""
        if sites is None or not isinstance(sites, gpd.GeoDataFrame):
            raise InvalidInputError("Sites must be a GeoDataFrame")

        if radius_column not in sites.columns:
            raise InvalidInputError(f"Missing radius column: {radius_column}")

        if sites.crs is None:
            raise InvalidInputError("Sites have no CRS")

        if sites.crs != self.reference.crs:
            raise InvalidInputError(
                f"Sites are in {sites.crs.to_string()} but reference '{self.reference.label}' "
                f"is in {self.reference.crs.to_string()}"
            )


# Convenience function for direct use
def tag_sites(sites: gpd.GeoDataFrame,
              reference: ReferenceGeometry,
              radius_column: str = 'NearestMean',
              no_match_label: str = NO_MATCH_LABEL,
              error_label: str = ERROR_LABEL) -> gpd.GeoDataFrame:
    """
    Tag sites whose buffer intersects the reference geometry.

    Args:
        sites: GeoDataFrame of site points with a radius column
        reference: Labelled region of interest
        radius_column: Column holding each site's buffer radius
        no_match_label: Tag for sites that miss the reference
        error_label: Tag for sites that could not be classified

    Returns:
        Copy of the sites with Tag and TagError columns
    """
    classifier = BufferTagClassifier(reference, no_match_label=no_match_label, error_label=error_label)
    return classifier.classify(sites, radius_column=radius_column)
