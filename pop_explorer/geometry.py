"""
Region-of-interest geometry: geodesic buffers around a point and polygons
traced by the user.

All coordinates are (lon, lat) in WGS84 unless a function says otherwise.
The map widget works in (lat, lon), so conversions happen at the edges via
`Geometry.latlon_path`.
"""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from pyproj import Geod
from shapely.affinity import translate
from shapely.geometry import Polygon

from pop_explorer import config
from pop_explorer.errors import InvalidGeometry

WGS84_GEOD = Geod(ellps="WGS84")
WGS84_WKID = 4326

LonLat = Tuple[float, float]


class Geometry:
    """One closed, simple ring of [lon, lat] pairs plus a spatial reference.

    The ring is stored as a list of mutable lists; anything that keeps a
    geometry around past the current edit must hold a `clone()`.
    """

    def __init__(self, ring: Iterable[Sequence[float]], wkid: int = WGS84_WKID):
        self.ring: List[List[float]] = [[float(p[0]), float(p[1])] for p in ring]
        if self.ring and self.ring[0] != self.ring[-1]:
            self.ring.append(list(self.ring[0]))
        self.wkid = wkid

    def __repr__(self):
        return f"Geometry({len(self.ring)} vertices, wkid={self.wkid})"

    def __eq__(self, other):
        if not isinstance(other, Geometry):
            return NotImplemented
        return self.wkid == other.wkid and self.ring == other.ring

    def clone(self) -> "Geometry":
        return Geometry(copy.deepcopy(self.ring), self.wkid)

    # ---- shapely bridge ----
    def to_shapely(self) -> Polygon:
        return Polygon(self.ring)

    @classmethod
    def from_shapely(cls, poly: Polygon, wkid: int = WGS84_WKID) -> "Geometry":
        return cls(list(poly.exterior.coords), wkid)

    def is_usable(self) -> bool:
        """True when the ring is non-degenerate and does not cross itself."""
        if len(self.ring) < 4:
            return False
        poly = self.to_shapely()
        return poly.is_valid and poly.area > 0

    # ---- measurements ----
    @property
    def centroid(self) -> LonLat:
        c = self.to_shapely().centroid
        return (c.x, c.y)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(west, south, east, north)"""
        lons = [p[0] for p in self.ring]
        lats = [p[1] for p in self.ring]
        return (min(lons), min(lats), max(lons), max(lats))

    def area_km2(self) -> float:
        a, _ = WGS84_GEOD.geometry_area_perimeter(self.to_shapely())
        return abs(a) / 1e6

    # ---- moves ----
    def translated(self, dlon: float, dlat: float) -> "Geometry":
        return Geometry.from_shapely(translate(self.to_shapely(), xoff=dlon, yoff=dlat), self.wkid)

    def centered_on(self, lon: float, lat: float) -> "Geometry":
        clon, clat = self.centroid
        return self.translated(lon - clon, lat - clat)

    # ---- wire / widget formats ----
    def to_esri_json(self) -> dict:
        return {
            "rings": [copy.deepcopy(self.ring)],
            "spatialReference": {"wkid": self.wkid},
        }

    def latlon_path(self) -> List[Tuple[float, float]]:
        return [(lat, lon) for (lon, lat) in self.ring]


@dataclass(frozen=True)
class BufferSpec:
    center: LonLat
    radius_km: float

    def geometry(self, segments: Optional[int] = None) -> Geometry:
        return buffer_geometry(self.center, self.radius_km, segments=segments)

    def moved_to(self, center: LonLat) -> "BufferSpec":
        return BufferSpec(center=(float(center[0]), float(center[1])), radius_km=self.radius_km)

    def with_radius(self, radius_km: float) -> "BufferSpec":
        return BufferSpec(center=self.center, radius_km=float(radius_km))


def buffer_geometry(center: LonLat, radius_km: float, segments: Optional[int] = None) -> Geometry:
    """Geodesic circle of `radius_km` around `center` on the WGS84 ellipsoid."""
    if segments is None:
        segments = config.BUFFER_SEGMENTS
    if radius_km is None or not radius_km > 0 or math.isinf(radius_km):
        raise InvalidGeometry(f"Buffer radius must be positive, got {radius_km!r}")
    if segments < 3:
        raise InvalidGeometry("A buffer needs at least 3 segments")

    lon, lat = float(center[0]), float(center[1])
    dist_m = float(radius_km) * 1000.0
    azimuths = [360.0 * i / segments for i in range(segments)]

    lons, lats, _ = WGS84_GEOD.fwd(
        [lon] * segments,
        [lat] * segments,
        azimuths,
        [dist_m] * segments,
    )
    ring = [[float(x), float(y)] for x, y in zip(lons, lats)]
    return Geometry(ring)


def drawn_geometry(points: Iterable[Sequence[float]]) -> Geometry:
    """
    Build a polygon from a traced boundary of (lon, lat) points.

    Consecutive duplicate points are collapsed and the ring is closed.
    Raises InvalidGeometry for fewer than three distinct vertices, zero area,
    or a self-intersecting boundary.
    """
    pts: List[List[float]] = []
    for p in points:
        xy = [float(p[0]), float(p[1])]
        if not pts or pts[-1] != xy:
            pts.append(xy)

    if len(pts) > 1 and pts[0] == pts[-1]:
        pts.pop()

    if len({tuple(p) for p in pts}) < 3:
        raise InvalidGeometry("A drawn region needs at least three distinct points")

    poly = Polygon(pts)
    if poly.area <= 0:
        raise InvalidGeometry("Drawn region has no area")
    if not poly.is_valid:
        raise InvalidGeometry("Drawn region crosses itself")

    return Geometry(pts)
