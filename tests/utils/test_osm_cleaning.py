"""
Unit tests for OSM attribute cleaning.
"""

import unittest
import pandas as pd
import geopandas as gpd
from shapely.geometry import LineString, Point
import sys
from pathlib import Path

# Add the project root to the path
sys.path.append(str(Path(__file__).resolve().parent.parent.parent))

from site_proximity.utils.osm_cleaning import clean_osm_layer, combine_layers, na_columns, summarise_layers


def make_layer():
    """Highway layer with sparse and multilingual tag columns."""
    return gpd.GeoDataFrame(
        {
            'highway': ['motorway', 'primary', 'primary', None],
            'name': ['Ring Road', None, 'Salah Salem', None],
            'name:ar': ['الطريق الدائري', None, None, None],
            'name:fr': ['Périphérique', None, None, None],
            'description:de': [None, 'Straße', None, None],
            'lanes': ['4', '2', '2', '3'],
            'surface': [None, None, None, 'asphalt']
        },
        geometry=[LineString([(0, i), (1, i)]) for i in range(4)],
        crs='EPSG:4326'
    )


class TestNaColumns(unittest.TestCase):
    """Test cases for na_columns."""

    def test_threshold(self):
        df = pd.DataFrame({'a': [1, None, None, None], 'b': [1, 2, None, None], 'c': [1, 2, 3, 4]})

        self.assertEqual(list(na_columns(df, thr=0.5).index), ['a', 'b'])
        self.assertEqual(list(na_columns(df, thr=1).index), [])
        self.assertEqual(list(na_columns(df, thr=0).index), ['a', 'b', 'c'])
        self.assertAlmostEqual(na_columns(df, thr=0.5)['a'], 0.75)

    def test_invalid_threshold(self):
        with self.assertRaises(ValueError):
            na_columns(pd.DataFrame({'a': [1]}), thr=1.5)

    def test_empty_frame(self):
        self.assertTrue(na_columns(pd.DataFrame({'a': []})).empty)


class TestCleanOsmLayer(unittest.TestCase):
    """Test cases for clean_osm_layer."""

    def test_drops_sparse_and_foreign_columns(self):
        cleaned = clean_osm_layer(make_layer(), layer_name='highway', thr=0.7)

        self.assertEqual(list(cleaned.columns), ['highway', 'name', 'name:ar', 'lanes', 'geometry'])
        self.assertEqual(len(cleaned), 4)

    def test_keep_cols(self):
        cleaned = clean_osm_layer(make_layer(), layer_name='highway', thr=0.7, keep_cols=['surface'])
        self.assertIn('surface', cleaned.columns)

    def test_drop_unnamed_rows(self):
        """Test that rows with neither name nor layer value go when asked."""
        cleaned = clean_osm_layer(make_layer(), layer_name='highway', thr=0.9, keep_na_rows=False)

        self.assertEqual(len(cleaned), 3)
        self.assertNotIn('surface', cleaned.columns)

    def test_layer_column_protected(self):
        layer = make_layer()
        layer['highway'] = [None, None, None, 'track']

        cleaned = clean_osm_layer(layer, layer_name='highway', thr=0.5)

        self.assertIn('highway', cleaned.columns)

    def test_input_not_modified(self):
        layer = make_layer()
        clean_osm_layer(layer, layer_name='highway')
        self.assertIn('name:fr', layer.columns)


class TestCombineLayers(unittest.TestCase):
    """Test cases for combine_layers."""

    def setUp(self):
        self.railway = gpd.GeoDataFrame(
            {'railway': ['rail', 'subway'], 'name': ['Cairo - Alexandria', 'Metro Line 1']},
            geometry=[LineString([(0, 0), (5, 5)]), LineString([(1, 0), (1, 5)])],
            crs='EPSG:4326'
        )

    def test_combine(self):
        combined = combine_layers({'highway': make_layer(), 'railway': self.railway}, thr=0.7)

        self.assertIsInstance(combined, gpd.GeoDataFrame)
        self.assertEqual(len(combined), 6)
        self.assertEqual(list(combined['layer'].unique()), ['highway', 'railway'])
        self.assertEqual(combined.crs.to_epsg(), 4326)

    def test_skips_empty_layers(self):
        empty = gpd.GeoDataFrame(geometry=[], crs='EPSG:4326')
        combined = combine_layers({'waterway': empty, 'railway': self.railway})

        self.assertEqual(list(combined['layer'].unique()), ['railway'])

    def test_all_empty(self):
        combined = combine_layers({})
        self.assertTrue(combined.empty)
        self.assertIn('layer', combined.columns)

    def test_drop_geometry(self):
        combined = combine_layers({'railway': self.railway}, drop_geometry=True)

        self.assertNotIsInstance(combined, gpd.GeoDataFrame)
        self.assertNotIn('geometry', combined.columns)

    def test_double_clean_keeps_layer_columns(self):
        combined = combine_layers({'highway': make_layer(), 'railway': self.railway},
                                  thr=0.7, double_clean=True)

        self.assertIn('highway', combined.columns)
        self.assertIn('railway', combined.columns)


class TestSummariseLayers(unittest.TestCase):

    def test_summary(self):
        points = gpd.GeoDataFrame({'amenity': ['cafe']}, geometry=[Point(0, 0)], crs='EPSG:4326')
        summary = summarise_layers({'highway': make_layer(), 'amenity': points, 'waterway': None})

        self.assertEqual(list(summary['Layer']), ['Highway', 'Amenity'])
        self.assertEqual(list(summary['Rows']), [4, 1])
        self.assertEqual(summary.loc[0, 'Cols'], 8)
        self.assertEqual(summary.loc[1, 'GeometryTypes'], 'Point: 1')


if __name__ == '__main__':
    unittest.main()
