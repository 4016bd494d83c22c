"""
Integration tests for the site proximity pipeline.
"""

import unittest
import math
import numpy as np
import geopandas as gpd
from shapely.geometry import LineString, Point, Polygon
import sys
from pathlib import Path
from unittest.mock import patch

# Add the project root to the path
sys.path.append(str(Path(__file__).resolve().parent.parent.parent))

from site_proximity.analysis.proximity_pipeline import SiteProximityPipeline, run_proximity_pipeline
from site_proximity.analysis.buffer_tagger import ReferenceGeometry
from site_proximity.exceptions import GeometryError, InvalidArgumentError, InvalidInputError

UTM = 'EPSG:32636'


def make_sites(coords, ids=None, crs=UTM):
    ids = ids if ids is not None else [chr(ord('A') + i) for i in range(len(coords))]
    return gpd.GeoDataFrame(
        {'site_id': ids, 'operator': ['op'] * len(coords)},
        geometry=[Point(xy) for xy in coords],
        crs=crs
    )


class TestSiteProximityPipeline(unittest.TestCase):
    """Test cases for SiteProximityPipeline."""

    def setUp(self):
        """Four sites around a short road segment at x=5."""
        self.sites = make_sites([(0, 0), (10, 0), (10, 10), (50, 50)])
        self.reference = ReferenceGeometry(LineString([(5, 0), (5, 10)]), 'Ring Road', crs=UTM)

    def test_neighbour_statistics(self):
        """Test the four-site example with k=2."""
        result = SiteProximityPipeline(k=2).run(self.sites)

        self.assertEqual(list(result['NearestK']), [2, 2, 2, 2])
        self.assertEqual(result.loc[0, 'NearestSites'], ['B', 'C'])
        self.assertEqual(result.loc[1, 'NearestSites'], ['A', 'C'])
        self.assertEqual(result.loc[2, 'NearestSites'], ['B', 'A'])
        self.assertEqual(result.loc[3, 'NearestSites'], ['C', 'B'])
        self.assertAlmostEqual(result.loc[0, 'NearestMean'], 12.0711, places=4)
        self.assertAlmostEqual(result.loc[0, 'NearestSD'], 2.9289, places=4)
        self.assertEqual(result.loc[1, 'NearestMean'], 10.0)
        self.assertEqual(result.loc[1, 'NearestSD'], 0.0)
        self.assertNotIn('Tag', result.columns)

    def test_tags(self):
        """Test tagging with single-neighbour radii."""
        pipeline = SiteProximityPipeline(k=1)
        result = pipeline.run(self.sites, self.reference)

        # A, B and C are 5 m from the road with a 10 m radius; D's radius
        # (56.6 m to C) falls short of the 60.2 m to the road's end
        self.assertEqual(list(result['Tag']), ['Ring Road', 'Ring Road', 'Ring Road', 'None'])
        self.assertTrue(result['TagError'].isna().all())
        self.assertAlmostEqual(result.loc[3, 'NearestMean'], math.sqrt(3200))
        self.assertEqual(pipeline.run_stats['tag_counts'], {'Ring Road': 3, 'None': 1})
        self.assertEqual(pipeline.run_stats['tag_errors'], 0)

    def test_tags_two_neighbours(self):
        """Test the four-site example tagged with k=2."""
        result = SiteProximityPipeline(k=2).run(self.sites, self.reference)

        # D's radius (60.30 m) just reaches the road's end at (5, 10), 60.21 m away
        self.assertAlmostEqual(result.loc[3, 'NearestMean'], 60.2999, places=4)
        self.assertGreater(result.loc[3, 'NearestMean'], Point(50, 50).distance(Point(5, 10)))
        self.assertEqual(list(result['Tag']), ['Ring Road'] * 4)
        self.assertTrue(result['TagError'].isna().all())

    def test_reference_crs_checked_before_distances(self):
        """Test that a reference in another CRS aborts before any distance work."""
        reference = ReferenceGeometry(LineString([(5, 0), (5, 10)]), 'Ring Road', crs='EPSG:32635')
        pipeline = SiteProximityPipeline(k=1)

        with patch.object(pipeline.builder, 'build') as mock_build:
            with self.assertRaises(InvalidInputError):
                pipeline.run(self.sites, reference)

        mock_build.assert_not_called()
        self.assertEqual(pipeline.run_stats['stages'], {})

    def test_reference_crs_checked_against_sites_when_undeclared(self):
        reference = ReferenceGeometry(LineString([(5, 0), (5, 10)]), 'Ring Road', crs='EPSG:32635')
        pipeline = SiteProximityPipeline(k=1, crs=None)

        with self.assertRaises(InvalidInputError):
            pipeline.run(self.sites, reference)

        self.assertEqual(pipeline.run_stats['stages'], {})

    def test_keeps_input_columns_and_order(self):
        result = SiteProximityPipeline(k=2).run(self.sites, self.reference)

        self.assertEqual(list(result['site_id']), ['A', 'B', 'C', 'D'])
        self.assertEqual(list(result['operator']), ['op'] * 4)
        self.assertEqual(list(self.sites.columns), ['site_id', 'operator', 'geometry'])
        self.assertEqual(result.geometry.iloc[0].geom_type, 'Point')

    def test_shuffled_index(self):
        """Test that statistics follow identifiers, not row positions."""
        shuffled = self.sites.iloc[[3, 1, 0, 2]]
        result = SiteProximityPipeline(k=2).run(shuffled)

        self.assertEqual(result.loc[0, 'NearestSites'], ['B', 'C'])
        self.assertEqual(result.loc[3, 'NearestSites'], ['C', 'B'])

    def test_idempotent(self):
        pipeline = SiteProximityPipeline(k=2)
        first = pipeline.run(self.sites, self.reference)
        second = pipeline.run(self.sites, self.reference)

        for column in ['NearestK', 'NearestMean', 'NearestSD', 'NearestSites', 'Tag']:
            self.assertEqual(first[column].tolist(), second[column].tolist())

    def test_two_sites(self):
        """Test that a single neighbour leaves the standard deviation undefined."""
        sites = make_sites([(0, 0), (6, 8)])
        result = SiteProximityPipeline(k=3).run(sites, self.reference)

        self.assertEqual(list(result['NearestK']), [1, 1])
        self.assertEqual(list(result['NearestMean']), [10.0, 10.0])
        self.assertTrue(result['NearestSD'].isna().all())
        self.assertEqual(result.loc[0, 'Tag'], 'Ring Road')

    def test_coincident_sites(self):
        """Test that a zero mean distance gives an empty buffer and no match."""
        sites = make_sites([(5, 5), (5, 5)])
        result = SiteProximityPipeline(k=1).run(sites, self.reference)

        self.assertEqual(list(result['NearestMean']), [0.0, 0.0])
        self.assertEqual(list(result['Tag']), ['None', 'None'])
        self.assertTrue(result['TagError'].isna().all())

    def test_bad_reference_aborts(self):
        reference = ReferenceGeometry(Polygon(), 'Ring Road', crs=UTM)
        with self.assertRaises(GeometryError):
            SiteProximityPipeline(k=2).run(self.sites, reference)

    def test_reference_crs_mismatch(self):
        reference = ReferenceGeometry(LineString([(5, 0), (5, 10)]), 'Ring Road', crs='EPSG:32635')
        with self.assertRaises(InvalidInputError):
            SiteProximityPipeline(k=2).run(self.sites, reference)

    def test_sites_crs_mismatch(self):
        sites = make_sites([(0, 0), (1, 1)], crs='EPSG:32635')
        with self.assertRaises(InvalidInputError):
            SiteProximityPipeline(k=2).run(sites)

    def test_too_few_sites(self):
        with self.assertRaises(InvalidInputError):
            SiteProximityPipeline(k=2).run(make_sites([(0, 0)]))

    def test_invalid_k(self):
        for bad_k in [0, -3, 2.5]:
            with self.assertRaises(InvalidArgumentError):
                SiteProximityPipeline(k=bad_k)

    def test_run_stats(self):
        pipeline = SiteProximityPipeline(k=2)
        pipeline.run(self.sites, self.reference)

        self.assertEqual(pipeline.run_stats['site_count'], 4)
        self.assertEqual(pipeline.run_stats['k'], 2)
        self.assertIn('distance_matrix', pipeline.run_stats['stages'])
        self.assertIn('tagging', pipeline.run_stats['stages'])

    def test_larger_random_set(self):
        """Test the k and self-exclusion properties on a few hundred sites."""
        rng = np.random.default_rng(7)
        coords = rng.uniform(0, 50000, size=(300, 2))
        sites = make_sites([tuple(xy) for xy in coords], ids=[f"EG{i:04d}" for i in range(300)])

        result = SiteProximityPipeline(k=3).run(sites)

        self.assertTrue((result['NearestK'] == 3).all())
        for site_id, names in zip(result['site_id'], result['NearestSites']):
            self.assertNotIn(site_id, names)
            self.assertEqual(len(names), 3)
        self.assertTrue((result['NearestMean'] > 0).all())


class TestRunProximityPipeline(unittest.TestCase):
    """Test the run_proximity_pipeline convenience function."""

    def test_uses_sites_crs(self):
        sites = make_sites([(0, 0), (10, 0)], crs='EPSG:32635')
        reference = ReferenceGeometry(LineString([(5, -1), (5, 1)]), 'Nile', crs='EPSG:32635')

        result = run_proximity_pipeline(sites, reference, k=1)

        self.assertEqual(list(result['Tag']), ['Nile', 'Nile'])


if __name__ == '__main__':
    unittest.main()
