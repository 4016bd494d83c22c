"""
Configuration settings for the Site Proximity Analytics project.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# Project directory structure
PROJECT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_DIR / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
INTERIM_DATA_DIR = DATA_DIR / "interim"
PROCESSED_DATA_DIR = DATA_DIR / "processed"
OSM_CACHE_DIR = INTERIM_DATA_DIR / "osm_cache"

# Network settings for OSM downloads
OVERPASS_URL = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
HTTP_PROXY_URL = os.getenv("HTTP_PROXY_URL", "")

# Default geographic settings
GEOGRAPHIC_CRS = "EPSG:4326"  # WGS84
ANALYSIS_CRS = "EPSG:32636"  # UTM zone 36N, covers most of Egypt

# Bounding boxes as (west, south, east, north)
GEO_BORDERS = {
    "egypt": (24.70, 22.00, 36.90, 31.70),
    "cairo": (31.10, 29.90, 31.55, 30.20)
}

# Nearest-neighbour and tagging defaults
DEFAULT_K = 3
DEFAULT_SD_DDOF = 1  # sample standard deviation
NO_MATCH_LABEL = "None"
ERROR_LABEL = "Unknown"

# OSM layers of interest
OSM_LAYERS = {
    "highway": ["motorway", "trunk", "primary"],
    "railway": ["rail", "subway", "monorail"],
    "waterway": ["river"]
}
