"""
Nearest-neighbour statistics for cellular sites.

For each site, picks the k closest other sites from its row of the distance
matrix and summarises their distances (mean and standard deviation). The mean
later becomes the site's buffer radius, so the numbers here drive the tagging
stage directly.

Self-exclusion is by identifier, not by position or value: two distinct sites
at the same location both keep each other as a zero-distance neighbour.
"""

import logging
import math
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List
from tqdm import tqdm

from site_proximity.exceptions import InvalidArgumentError, InvalidInputError

logger = logging.getLogger(__name__)

STATS_COLUMNS = ['NearestK', 'NearestMean', 'NearestSD', 'NearestSites']


@dataclass
class NeighbourStats:
    """Nearest-neighbour summary for a single site."""
    k: int
    names: List[Hashable]
    mean: float
    sd: float
    distances: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'NearestK': self.k,
            'NearestMean': self.mean,
            'NearestSD': self.sd,
            'NearestSites': list(self.names)
        }


def validate_k(k) -> int:
    """
    Check a requested neighbour count.

    Args:
        k: Requested number of neighbours

    Returns:
        k as a plain int

    Raises:
        InvalidArgumentError: If k is not a positive integer
    """
    if isinstance(k, (bool, np.bool_)) or not isinstance(k, (int, np.integer)):
        raise InvalidArgumentError(f"Neighbour count must be an integer, got {k!r}")
    if k <= 0:
        raise InvalidArgumentError(f"Neighbour count must be positive, got {k}")
    return int(k)


def validate_ddof(ddof) -> int:
    """Only sample (1) and population (0) standard deviations are supported."""
    if isinstance(ddof, bool) or ddof not in (0, 1):
        raise InvalidArgumentError(f"ddof must be 0 (population) or 1 (sample), got {ddof!r}")
    return int(ddof)


def nearest_neighbours(row: pd.Series, self_id: Hashable, k: int, ddof: int = 1) -> NeighbourStats:
    """
    Compute k-nearest-neighbour statistics from one distance-matrix row.

    Args:
        row: Distances from the site to every site, itself included, indexed by identifier
        self_id: Identifier of the site the row belongs to
        k: Requested neighbour count
        ddof: Delta degrees of freedom for the standard deviation (1 = sample)

    Returns:
        NeighbourStats over min(k, number of other sites) neighbours, nearest first.
        sd is NaN when there are not enough neighbours for the chosen ddof.
    """
    k = validate_k(k)
    ddof = validate_ddof(ddof)

    if self_id not in row.index:
        raise InvalidInputError(f"Site {self_id!r} is missing from its own distance row")

    others = row[row.index != self_id]
    if others.empty:
        raise InvalidInputError(f"Site {self_id!r} has no other sites to compare against")

    values = others.to_numpy(dtype=float)
    # Stable sort keeps the original identifier order for equal distances
    order = np.argsort(values, kind='stable')

    k_effective = min(k, len(values))
    selected = order[:k_effective]
    distances = values[selected]

    mean = float(distances.mean())
    if k_effective - ddof > 0:
        sd = float(distances.std(ddof=ddof))
    else:
        sd = math.nan

    return NeighbourStats(
        k=k_effective,
        names=others.index[selected].tolist(),
        mean=mean,
        sd=sd,
        distances=distances.tolist()
    )


class NeighbourStatsEngine:
    """
    Applies nearest_neighbours to every row of a distance matrix.

    Rows are independent of each other, so the order of evaluation has no
    effect on the result.
    """

    def __init__(self, k: int = 3, ddof: int = 1, progress: bool = False):
        """
        Initialize the NeighbourStatsEngine.

        Args:
            k: Requested neighbour count (validated here, at configuration time)
            ddof: 1 for sample standard deviation, 0 for population
            progress: Show a progress bar while iterating over sites
        """
        self.k = validate_k(k)
        self.ddof = validate_ddof(ddof)
        self.progress = progress

    def compute(self, matrix: pd.DataFrame) -> pd.DataFrame:
        """
        Compute neighbour statistics for every site in the matrix.

        Args:
            matrix: Square distance matrix indexed by site identifier on both axes

        Returns:
            DataFrame indexed like the matrix with NearestK, NearestMean,
            NearestSD and NearestSites columns
        """
        self._check_matrix(matrix)

        k_effective = min(self.k, len(matrix) - 1)
        if k_effective < self.k:
            logger.warning(f"Only {len(matrix) - 1} neighbours available, using k={k_effective} instead of {self.k}")

        logger.info(f"Computing {k_effective}-nearest-neighbour statistics for {len(matrix)} sites")

        records = []
        for site_id in tqdm(matrix.index, disable=not self.progress, desc="Neighbour stats"):
            stats = nearest_neighbours(matrix.loc[site_id], site_id, self.k, self.ddof)
            records.append(stats.to_dict())

        result = pd.DataFrame(records, index=matrix.index.copy(), columns=STATS_COLUMNS)

        undefined_sd = int(result['NearestSD'].isna().sum())
        if undefined_sd:
            logger.info(f"Standard deviation undefined for {undefined_sd} sites (too few neighbours)")

        return result

    def _check_matrix(self, matrix: pd.DataFrame):
        """Make sure the matrix is square and labelled the same way on both axes."""
        if matrix is None or matrix.empty:
            raise InvalidInputError("Distance matrix is empty")
        if matrix.shape[0] != matrix.shape[1]:
            raise InvalidInputError(f"Distance matrix is not square: {matrix.shape}")
        if not matrix.index.equals(matrix.columns):
            raise InvalidInputError("Distance matrix rows and columns are not labelled identically")
        if matrix.index.has_duplicates:
            raise InvalidInputError("Distance matrix has duplicate site identifiers")
        if len(matrix) < 2:
            raise InvalidInputError("Distance matrix needs at least 2 sites")


# Convenience function for direct use
def compute_neighbour_stats(matrix: pd.DataFrame, k: int = 3, ddof: int = 1) -> pd.DataFrame:
    """
    Compute k-nearest-neighbour statistics for every site.

    Args:
        matrix: Square distance matrix indexed by site identifier
        k: Requested neighbour count
        ddof: 1 for sample standard deviation, 0 for population

    Returns:
        DataFrame of NearestK, NearestMean, NearestSD, NearestSites per site
    """
    engine = NeighbourStatsEngine(k=k, ddof=ddof)
    return engine.compute(matrix)
