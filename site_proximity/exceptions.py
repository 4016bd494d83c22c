"""
Error types raised by the proximity pipeline.

All of them subclass ValueError so callers that already guard against bad
input keep working.
"""


class InvalidInputError(ValueError):
    """Malformed or insufficient site set (too few points, duplicate ids, bad coordinates, CRS mismatch)."""


class InvalidArgumentError(ValueError):
    """Invalid pipeline parameter such as a non-positive neighbour count."""


class GeometryError(ValueError):
    """Unusable geometry: an empty or invalid reference, or a bad per-site buffer."""
