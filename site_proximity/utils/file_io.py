"""
File helpers for reading site snapshots and writing annotated results.
"""
import logging
import pandas as pd
import geopandas as gpd
from pathlib import Path

from site_proximity.config import PROCESSED_DATA_DIR

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "geojson", "parquet", "geoparquet")


def ensure_directory(directory_path):
    """
    Ensure that a directory exists, creating it if necessary.

    Args:
        directory_path: Path to the directory
    """
    Path(directory_path).mkdir(parents=True, exist_ok=True)


def _flatten_list_columns(df, separator=","):
    """Join list-valued cells (e.g. NearestSites) so text formats can hold them."""
    flat = df.copy()
    for col in flat.columns:
        if col == getattr(flat, "_geometry_column_name", None):
            continue
        if flat[col].dtype == object and flat[col].map(lambda v: isinstance(v, (list, tuple))).any():
            flat[col] = flat[col].map(
                lambda v: separator.join(str(item) for item in v) if isinstance(v, (list, tuple)) else v
            )
    return flat


def save_dataframe(df, filename, directory=PROCESSED_DATA_DIR, file_format="csv"):
    """
    Save a DataFrame to disk in the specified format.

    Args:
        df: DataFrame or GeoDataFrame to save
        filename: Name of the file (without extension)
        directory: Directory to save to
        file_format: Format to save as (csv, geojson, parquet, geoparquet)

    Returns:
        Path of the written file
    """
    ensure_directory(directory)
    filepath = Path(directory) / f"{filename}.{file_format}"

    if file_format == "csv":
        _flatten_list_columns(df).to_csv(filepath, index=False)
    elif file_format == "geojson" and isinstance(df, gpd.GeoDataFrame):
        _flatten_list_columns(df).to_file(filepath, driver="GeoJSON")
    elif file_format == "parquet":
        # Plain parquet has no geometry type, so geometries go in as WKT
        if isinstance(df, gpd.GeoDataFrame):
            df = df.to_wkt()
        df.to_parquet(filepath, index=False)
    elif file_format == "geoparquet" and isinstance(df, gpd.GeoDataFrame):
        df.to_parquet(filepath)
    else:
        raise ValueError(f"Unsupported file format: {file_format}")

    logger.info(f"Saved {filename}.{file_format} to {directory}")
    return filepath


def load_dataframe(filename, directory=PROCESSED_DATA_DIR, file_format="csv", geo=False):
    """
    Load a DataFrame from disk.

    Args:
        filename: Name of the file (without extension)
        directory: Directory to load from
        file_format: Format to load (csv, geojson, parquet, geoparquet)
        geo: Whether to load as GeoDataFrame

    Returns:
        DataFrame or GeoDataFrame
    """
    filepath = Path(directory) / f"{filename}.{file_format}"
    return load_path(filepath, geo=geo)


def load_path(filepath, geo=False):
    """
    Load a DataFrame from a path, picking the reader from the file extension.

    Args:
        filepath: Path to a .csv, .geojson, .parquet or .geoparquet file
        geo: Whether to load csv/parquet as GeoDataFrame

    Returns:
        DataFrame or GeoDataFrame
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    file_format = filepath.suffix.lower().lstrip(".")

    if file_format == "csv":
        df = pd.read_csv(filepath)
        if geo:
            df = gpd.GeoDataFrame(df)
    elif file_format in ("geojson", "json", "gpkg", "shp"):
        df = gpd.read_file(filepath)
    elif file_format == "parquet":
        df = pd.read_parquet(filepath)
        if geo:
            df = gpd.GeoDataFrame(df)
    elif file_format == "geoparquet":
        df = gpd.read_parquet(filepath)
    else:
        raise ValueError(f"Unsupported file format: {file_format}")

    logger.info(f"Loaded {len(df)} rows from {filepath}")
    return df
