"""
Site proximity pipeline.

Runs the three analysis stages in order on an in-memory site set:

1. Distance matrix between all sites
2. k-nearest-neighbour statistics per site (NearestK, NearestMean, NearestSD, NearestSites)
3. Buffer-and-tag classification against a reference geometry (Tag, TagError)

Loading sites, fetching the reference geometry and saving results happen
outside this module, before and after run().
"""

import logging
import time
from datetime import datetime
import geopandas as gpd
from pyproj import CRS
from typing import Any, Dict, Optional, Union

from site_proximity.config import ANALYSIS_CRS, DEFAULT_K, DEFAULT_SD_DDOF, ERROR_LABEL, NO_MATCH_LABEL
from site_proximity.analysis.distance_matrix import DistanceMatrixBuilder
from site_proximity.analysis.neighbour_stats import STATS_COLUMNS, NeighbourStatsEngine
from site_proximity.analysis.buffer_tagger import BufferTagClassifier, ReferenceGeometry
from site_proximity.exceptions import InvalidInputError

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class SiteProximityPipeline:
    """Annotates sites with nearest-neighbour statistics and a proximity tag."""

    def __init__(self,
                 k: int = DEFAULT_K,
                 crs: Optional[Union[str, CRS]] = ANALYSIS_CRS,
                 id_column: str = 'site_id',
                 ddof: int = DEFAULT_SD_DDOF,
                 no_match_label: str = NO_MATCH_LABEL,
                 error_label: str = ERROR_LABEL,
                 repair_reference: bool = False,
                 progress: bool = False):
        """
        Initialize the pipeline. Parameters are validated here, before any data is seen.

        Args:
            k: Requested neighbour count
            crs: Declared projected CRS shared by sites and reference (None to accept the sites' CRS)
            id_column: Column holding the unique site identifier
            ddof: 1 for sample standard deviation, 0 for population
            no_match_label: Tag for sites whose buffer misses the reference
            error_label: Tag for sites whose buffer could not be built
            repair_reference: Repair an invalid reference instead of failing
            progress: Show a progress bar for the per-site stage
        """
        self.id_column = id_column
        self.crs = CRS.from_user_input(crs) if crs is not None else None
        self.no_match_label = no_match_label
        self.error_label = error_label
        self.repair_reference = repair_reference

        self.builder = DistanceMatrixBuilder(id_column=id_column, crs=self.crs)
        self.engine = NeighbourStatsEngine(k=k, ddof=ddof, progress=progress)
        self.run_stats: Dict[str, Any] = {}

    @property
    def k(self) -> int:
        return self.engine.k

    def run(self,
            sites: gpd.GeoDataFrame,
            reference: Optional[ReferenceGeometry] = None) -> gpd.GeoDataFrame:
        """
        Run the full pipeline.

        Args:
            sites: GeoDataFrame of site points in the declared projected CRS
            reference: Labelled region of interest; when None only the statistics are computed

        Returns:
            Copy of the sites with NearestK, NearestMean, NearestSD, NearestSites
            and, with a reference, Tag and TagError columns
        """
        self.run_stats = {
            'start_time': datetime.now().isoformat(),
            'site_count': len(sites) if sites is not None else 0,
            'k': self.k,
            'stages': {}
        }

        # The classifier validates the shared reference, so build it first:
        # a bad reference aborts the run before any heavy work.
        classifier = None
        if reference is not None:
            classifier = BufferTagClassifier(
                reference,
                no_match_label=self.no_match_label,
                error_label=self.error_label,
                repair=self.repair_reference
            )
            self._check_reference_crs(classifier.reference, sites)

        start = time.time()
        try:
            matrix = self.builder.build(sites)
        except ValueError as e:
            logger.error(f"Distance matrix stage failed: {e}")
            raise
        self.run_stats['stages']['distance_matrix'] = time.time() - start

        start = time.time()
        stats = self.engine.compute(matrix)
        self.run_stats['stages']['neighbour_stats'] = time.time() - start

        result = sites.copy()
        for column in STATS_COLUMNS:
            result[column] = stats[column].reindex(result[self.id_column]).to_numpy()

        if classifier is not None:
            start = time.time()
            result = classifier.classify(result, radius_column='NearestMean')
            self.run_stats['stages']['tagging'] = time.time() - start
            self.run_stats['tag_counts'] = {str(tag): int(count) for tag, count in result['Tag'].value_counts().items()}
            self.run_stats['tag_errors'] = int(result['TagError'].notna().sum())

        self.run_stats['end_time'] = datetime.now().isoformat()
        logger.info(f"Pipeline finished for {len(result)} sites")

        return result

    def _check_reference_crs(self, reference: ReferenceGeometry, sites: gpd.GeoDataFrame):
        """Reject a reference that is not in the declared CRS (or the sites' CRS when none is declared)."""
        expected = self.crs if self.crs is not None else getattr(sites, 'crs', None)
        if expected is None:
            return

        if reference.crs != expected:
            message = (f"Reference '{reference.label}' is in {reference.crs.to_string()} "
                       f"but sites are expected in {expected.to_string()}")
            logger.error(message)
            raise InvalidInputError(message)


# Convenience function for direct use
def run_proximity_pipeline(sites: gpd.GeoDataFrame,
                           reference: Optional[ReferenceGeometry] = None,
                           k: int = DEFAULT_K,
                           id_column: str = 'site_id',
                           crs: Optional[Union[str, CRS]] = None,
                           no_match_label: str = NO_MATCH_LABEL) -> gpd.GeoDataFrame:
    """
    Annotate sites with nearest-neighbour statistics and a proximity tag.

    Args:
        sites: GeoDataFrame of site points in a projected CRS
        reference: Labelled region of interest (optional)
        k: Requested neighbour count
        id_column: Column holding the unique site identifier
        crs: Declared CRS; defaults to the CRS of the sites
        no_match_label: Tag for sites whose buffer misses the reference

    Returns:
        Annotated copy of the sites
    """
    pipeline = SiteProximityPipeline(
        k=k,
        crs=crs if crs is not None else sites.crs,
        id_column=id_column,
        no_match_label=no_match_label
    )
    return pipeline.run(sites, reference)
