"""
Tests for buffer construction and drawn-polygon validation.
"""

import unittest

from pop_explorer.errors import InvalidGeometry
from pop_explorer.geometry import (
    WGS84_GEOD,
    BufferSpec,
    Geometry,
    buffer_geometry,
    drawn_geometry,
)

from fakes import square

AUCKLAND = (174.7633, -36.8485)


class TestBufferGeometry(unittest.TestCase):

    def test_buffer_is_deterministic(self):
        a = buffer_geometry(AUCKLAND, 1.0)
        b = buffer_geometry(AUCKLAND, 1.0)
        self.assertEqual(a, b)

    def test_buffer_ring_is_closed_and_valid(self):
        g = buffer_geometry(AUCKLAND, 2.0, segments=32)
        self.assertEqual(len(g.ring), 33)
        self.assertEqual(g.ring[0], g.ring[-1])
        self.assertTrue(g.is_usable())

    def test_vertices_lie_at_radius(self):
        """Every vertex is radius_km away from the centre on the ellipsoid."""
        g = buffer_geometry(AUCKLAND, 1.5, segments=16)
        for lon, lat in g.ring:
            _, _, dist = WGS84_GEOD.inv(AUCKLAND[0], AUCKLAND[1], lon, lat)
            self.assertAlmostEqual(dist, 1500.0, places=3)

    def test_larger_radius_gives_larger_area(self):
        small = buffer_geometry(AUCKLAND, 1.0).area_km2()
        large = buffer_geometry(AUCKLAND, 2.0).area_km2()
        self.assertAlmostEqual(small, 3.1416, delta=0.05)
        self.assertGreater(large, 3.9 * small)

    def test_non_positive_radius_rejected(self):
        for radius in (0, -1.0, None):
            with self.assertRaises(InvalidGeometry):
                buffer_geometry(AUCKLAND, radius)

    def test_spec_moves_and_resizes(self):
        spec = BufferSpec(center=AUCKLAND, radius_km=1.0)
        moved = spec.moved_to((175.0, -37.0))
        self.assertEqual(moved.center, (175.0, -37.0))
        self.assertEqual(moved.radius_km, 1.0)
        self.assertEqual(spec.with_radius(3).radius_km, 3.0)
        self.assertEqual(spec.with_radius(3).center, AUCKLAND)


class TestDrawnGeometry(unittest.TestCase):

    def test_ring_is_closed(self):
        g = drawn_geometry(square(0, 0))
        self.assertEqual(len(g.ring), 5)
        self.assertEqual(g.ring[0], g.ring[-1])

    def test_consecutive_duplicates_collapse(self):
        pts = [(0, 0), (0, 0), (1, 0), (1, 0), (1, 1), (0, 1), (0, 0)]
        g = drawn_geometry(pts)
        self.assertEqual(g.ring, [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]])

    def test_too_few_points_rejected(self):
        with self.assertRaises(InvalidGeometry):
            drawn_geometry([(0, 0), (1, 1)])
        with self.assertRaises(InvalidGeometry):
            drawn_geometry([(0, 0), (1, 1), (0, 0), (1, 1)])

    def test_zero_area_rejected(self):
        with self.assertRaises(InvalidGeometry):
            drawn_geometry([(0, 0), (1, 1), (2, 2)])

    def test_self_intersection_rejected(self):
        bowtie = [(0, 0), (1, 1), (1, 0), (0, 1)]
        with self.assertRaises(InvalidGeometry):
            drawn_geometry(bowtie)


class TestGeometryValue(unittest.TestCase):

    def test_clone_is_independent(self):
        g = Geometry(square(0, 0))
        c = g.clone()
        c.ring[0][0] = 99.0
        self.assertEqual(g.ring[0][0], 0.0)
        self.assertNotEqual(g, c)

    def test_translated_leaves_original(self):
        g = Geometry(square(0, 0))
        moved = g.translated(1.0, 2.0)
        self.assertEqual(g.ring[0], [0.0, 0.0])
        self.assertEqual(moved.ring[0], [1.0, 2.0])

    def test_centered_on(self):
        g = Geometry(square(0, 0, size=2.0)).centered_on(10.0, 20.0)
        lon, lat = g.centroid
        self.assertAlmostEqual(lon, 10.0)
        self.assertAlmostEqual(lat, 20.0)

    def test_esri_json_and_latlon_path(self):
        g = Geometry([(170.0, -40.0), (171.0, -40.0), (171.0, -41.0)])
        esri = g.to_esri_json()
        self.assertEqual(esri["spatialReference"], {"wkid": 4326})
        self.assertEqual(esri["rings"][0][0], [170.0, -40.0])
        self.assertEqual(g.latlon_path()[1], (-40.0, 171.0))

    def test_bounds(self):
        self.assertEqual(Geometry(square(1, 2, size=3)).bounds, (1.0, 2.0, 4.0, 5.0))
