# site_proximity/utils/osm_cleaning.py
"""
Attribute cleaning for OpenStreetMap layers.

OSM extracts come with hundreds of sparse tag columns. This module trims them
down to something usable:
- Finding columns that are mostly empty
- Dropping names and descriptions in languages other than Arabic and English
- Combining several layers (highway, railway, ...) into one table
- Summarising what a set of downloaded layers contains
"""

import logging
import pandas as pd
import geopandas as gpd

logger = logging.getLogger(__name__)

# Multilingual columns we keep; every other "name:xx" / "description:xx" goes
KEEP_LANGUAGE_COLUMNS = [
    "name", "name:ar", "name:en", "alt_name:ar", "alt_name:en",
    "description", "description:ar", "description:en"
]
LANGUAGE_PREFIXES = ("name:", "description:")


def na_columns(df, thr=0.5):
    """
    List columns whose share of missing values is at least a threshold.

    Args:
        df: DataFrame or GeoDataFrame
        thr: Threshold between 0 and 1. 1 returns only all-empty columns, 0 returns every column.

    Returns:
        Series of NA ratios indexed by column name
    """
    if not 0 <= thr <= 1:
        raise ValueError(f"Threshold must be between 0 and 1, got {thr}")

    if len(df) == 0:
        return pd.Series(dtype=float)

    na_ratio = df.isna().sum() / len(df)
    return na_ratio[na_ratio >= thr]


def _is_foreign_language_column(column):
    """True for name/description variants in languages we don't keep."""
    return any(prefix in column for prefix in LANGUAGE_PREFIXES) and column not in KEEP_LANGUAGE_COLUMNS


def clean_osm_layer(gdf, layer_name=None, thr=0.9, keep_na_rows=True, keep_cols=None):
    """
    Remove sparse and foreign-language columns from an OSM layer.

    Args:
        gdf: GeoDataFrame of OSM features (one tag key, e.g. "highway")
        layer_name: The tag key of the layer. This column is never dropped.
        thr: NA ratio at or above which a column is dropped
        keep_na_rows: If False, drop rows that have neither a name nor a layer value.
            Natural features such as coastlines often have no name, so this is opt-in.
            Dropping rows changes the NA ratios used for the column filter.
        keep_cols: Extra columns to keep regardless of NA ratio

    Returns:
        Cleaned copy of the layer
    """
    if layer_name is None:
        logger.warning("Layer name not provided - the layer column may be dropped")

    result = gdf.copy()

    if not keep_na_rows:
        mask = pd.Series(False, index=result.index)
        for col in ("name", layer_name):
            if col in result.columns:
                mask |= result[col].notna()
        dropped = int((~mask).sum())
        if dropped:
            logger.info(f"Dropping {dropped} rows without a name or {layer_name} value")
        result = result[mask]

    sparse = set(na_columns(result, thr=thr).index)
    protected = set(KEEP_LANGUAGE_COLUMNS) | set(keep_cols or [])
    if layer_name is not None:
        protected.add(layer_name)
    if isinstance(result, gpd.GeoDataFrame):
        protected.add(result.geometry.name)

    keep = [
        col for col in result.columns
        if col in protected or (col not in sparse and not _is_foreign_language_column(col))
    ]

    logger.info(f"Cleaned layer {layer_name}: kept {len(keep)} of {len(result.columns)} columns")
    return result[keep]


def combine_layers(layers, thr=0.9, keep_na_rows=True, double_clean=False, drop_geometry=False, keep_cols=None):
    """
    Clean several OSM layers and stack them into one table.

    Args:
        layers: Dict mapping tag key (layer name) to GeoDataFrame
        thr: NA threshold for the per-layer cleaning
        keep_na_rows: Passed to clean_osm_layer
        double_clean: Clean the combined table again at 0.9
        drop_geometry: Return a plain DataFrame without geometry
        keep_cols: Extra columns to keep regardless of NA ratio

    Returns:
        GeoDataFrame (or DataFrame) with a "layer" column naming the source layer
    """
    cleaned = []
    crs = None
    for name, gdf in layers.items():
        if gdf is None or gdf.empty:
            logger.info(f"Layer {name} is empty - skipping")
            continue
        layer = clean_osm_layer(gdf, layer_name=name, thr=thr, keep_na_rows=keep_na_rows, keep_cols=keep_cols)
        layer = layer.assign(layer=name)
        if crs is None:
            crs = getattr(layer, "crs", None)
        cleaned.append(layer)

    if not cleaned:
        return gpd.GeoDataFrame({"layer": []}, geometry=[], crs=crs)

    combined = gpd.GeoDataFrame(pd.concat(cleaned, ignore_index=True), crs=crs)

    if double_clean:
        combined = clean_osm_layer(combined, layer_name="layer", thr=0.9,
                                   keep_cols=list(layers) + list(keep_cols or []))

    if drop_geometry:
        return pd.DataFrame(combined.drop(columns=combined.geometry.name))

    return combined


def summarise_layers(layers):
    """
    Summarise downloaded OSM layers.

    Args:
        layers: Dict mapping layer name to GeoDataFrame (None for failed downloads)

    Returns:
        DataFrame with Layer, Rows, Cols and GeometryTypes columns
    """
    rows = []
    for name, gdf in layers.items():
        if gdf is None:
            continue
        geom_types = ""
        if isinstance(gdf, gpd.GeoDataFrame) and not gdf.empty:
            counts = gdf.geometry.geom_type.value_counts()
            geom_types = ", ".join(f"{geom_type}: {count}" for geom_type, count in counts.items())
        rows.append({
            "Layer": name.title(),
            "Rows": len(gdf),
            "Cols": len(gdf.columns),
            "GeometryTypes": geom_types
        })

    return pd.DataFrame(rows, columns=["Layer", "Rows", "Cols", "GeometryTypes"])
