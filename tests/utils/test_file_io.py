"""
Tests for file helpers.
"""
import unittest
import pandas as pd
import geopandas as gpd
from shapely.geometry import Point
import shutil
import tempfile
import sys
from pathlib import Path

# Add the project root to the path
sys.path.append(str(Path(__file__).resolve().parent.parent.parent))

from site_proximity.utils.file_io import ensure_directory, save_dataframe, load_dataframe, load_path


class TestFileIO(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp()) / "temp_data"
        ensure_directory(self.test_dir)

        self.test_df = pd.DataFrame({
            'id': [1, 2, 3],
            'name': ['A', 'B', 'C'],
            'value': [10, 20, 30]
        })

        # Annotated sites as they leave the pipeline
        self.sites = gpd.GeoDataFrame({
            'site_id': ['EG001', 'EG002'],
            'NearestK': [1, 1],
            'NearestMean': [100.0, 100.0],
            'NearestSites': [['EG002'], ['EG001']],
            'Tag': ['Ring Road', 'None']
        }, geometry=[Point(330000, 3324000), Point(330100, 3324000)], crs='EPSG:32636')

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.test_dir.parent)

    def test_save_and_load_csv(self):
        """Test saving and loading a CSV file."""
        save_dataframe(self.test_df, "test_data", self.test_dir, "csv")
        loaded_df = load_dataframe("test_data", self.test_dir, "csv")

        self.assertTrue((self.test_df == loaded_df).all().all())
        self.assertTrue(Path(self.test_dir, "test_data.csv").exists())

    def test_csv_flattens_neighbour_lists(self):
        path = save_dataframe(self.sites, "sites", self.test_dir, "csv")
        loaded = pd.read_csv(path)

        self.assertEqual(list(loaded['NearestSites']), ['EG002', 'EG001'])

    def test_save_and_load_geojson(self):
        path = save_dataframe(self.sites, "sites", self.test_dir, "geojson")
        loaded = load_path(path)

        self.assertIsInstance(loaded, gpd.GeoDataFrame)
        self.assertEqual(loaded.crs.to_epsg(), 32636)
        self.assertEqual(list(loaded['Tag']), ['Ring Road', 'None'])
        self.assertEqual(list(self.sites['NearestSites']), [['EG002'], ['EG001']])

    def test_save_and_load_geoparquet(self):
        path = save_dataframe(self.sites, "sites", self.test_dir, "geoparquet")
        loaded = load_path(path)

        self.assertIsInstance(loaded, gpd.GeoDataFrame)
        self.assertEqual(loaded.geometry.iloc[0], Point(330000, 3324000))

    def test_parquet_stores_wkt(self):
        path = save_dataframe(self.sites, "sites", self.test_dir, "parquet")
        loaded = load_path(path)

        self.assertTrue(loaded['geometry'].iloc[0].startswith('POINT'))

    def test_unsupported_format(self):
        with self.assertRaises(ValueError):
            save_dataframe(self.test_df, "test_data", self.test_dir, "xlsx")

    def test_geojson_needs_geometry(self):
        with self.assertRaises(ValueError):
            save_dataframe(self.test_df, "test_data", self.test_dir, "geojson")

    def test_load_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_path(self.test_dir / "missing.csv")


if __name__ == '__main__':
    unittest.main()
