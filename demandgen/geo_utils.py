"""Geographic utilities for distances, areas, and nearest-point lookups.

All coordinates are WGS84 ``(lon, lat)`` pairs in degrees. Distances are
great-circle distances on a sphere of mean Earth radius, in meters.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np
import pyproj
from scipy.spatial import KDTree  # type: ignore[import-untyped]
from shapely.geometry import Polygon

from demandgen.log_config import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_M = 6371008.8
SQUARE_FEET_PER_SQUARE_METER = 10.7639
FEET_PER_METER = 3.28084

_GEOD = pyproj.Geod(ellps="WGS84")

LonLat = tuple[float, float]


def is_valid_lonlat(lon: float, lat: float) -> bool:
    """Return True when ``lon``/``lat`` are finite and within WGS84 range."""
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return False
    return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0


def haversine_m(a: LonLat, b: LonLat) -> float:
    """Great-circle distance in meters between two ``(lon, lat)`` points.

    Args:
        a: First point.
        b: Second point.

    Returns:
        Distance in meters.
    """
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def haversine_many(origin: LonLat, lons: np.ndarray, lats: np.ndarray) -> np.ndarray:
    """Vectorized great-circle distances from ``origin`` to many points.

    Args:
        origin: Origin ``(lon, lat)``.
        lons: Array of longitudes in degrees.
        lats: Array of latitudes in degrees.

    Returns:
        Array of distances in meters, same shape as ``lons``.
    """
    lon1 = math.radians(origin[0])
    lat1 = math.radians(origin[1])
    lon2 = np.radians(lons)
    lat2 = np.radians(lats)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = np.sin(dlat / 2.0) ** 2 + math.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    h = np.clip(h, 0.0, 1.0)
    return 2.0 * EARTH_RADIUS_M * np.arctan2(np.sqrt(h), np.sqrt(1.0 - h))


def to_unit_sphere(lons: np.ndarray, lats: np.ndarray) -> np.ndarray:
    """Convert lon/lat degrees to Cartesian points on the unit sphere.

    Chord length between two such points is a monotone function of their
    great-circle distance, so Euclidean nearest neighbours in this space are
    great-circle nearest neighbours.

    Returns:
        Array of shape ``(n, 3)``.
    """
    lon_r = np.radians(np.asarray(lons, dtype=float))
    lat_r = np.radians(np.asarray(lats, dtype=float))
    cos_lat = np.cos(lat_r)
    return np.column_stack(
        (cos_lat * np.cos(lon_r), cos_lat * np.sin(lon_r), np.sin(lat_r))
    )


class NearestIndex:
    """Great-circle nearest-point lookup over a fixed list of points.

    Backed by a KDTree over unit-sphere coordinates. Ties resolve to the
    lowest point index, which is what a first-match linear scan over the
    same list would return.
    """

    # Relative slack on the chord radius used to collect tie candidates.
    _TIE_SLACK = 1e-9

    def __init__(self, points: Sequence[LonLat]) -> None:
        if len(points) == 0:
            raise ValueError("NearestIndex requires at least one point")
        coords = np.asarray(points, dtype=float).reshape(-1, 2)
        self._lons = coords[:, 0]
        self._lats = coords[:, 1]
        self._tree = KDTree(to_unit_sphere(self._lons, self._lats))

    def __len__(self) -> int:
        return len(self._lons)

    def nearest(self, point: LonLat) -> int:
        """Return the index of the point nearest to ``point``.

        Args:
            point: Query ``(lon, lat)``.

        Returns:
            Index into the list the index was built from.
        """
        query = to_unit_sphere(np.array([point[0]]), np.array([point[1]]))[0]
        chord, idx = self._tree.query(query)
        radius = float(chord) * (1.0 + self._TIE_SLACK) + 1e-15
        candidates = sorted(self._tree.query_ball_point(query, r=radius))
        if len(candidates) <= 1:
            return int(idx)
        cand = np.asarray(candidates, dtype=int)
        dists = haversine_many(point, self._lons[cand], self._lats[cand])
        # argmin returns the first minimum, i.e. the lowest original index
        return int(cand[int(np.argmin(dists))])


def geodesic_area_m2(polygon: Polygon) -> float:
    """Return the geodesic area in square meters of a lon/lat polygon."""
    area, _perimeter = _GEOD.geometry_area_perimeter(polygon)
    return abs(float(area))


def bounds_area_sqft(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> float:
    """Approximate area in square feet of a lon/lat bounding box.

    Width is measured along the southern edge and height along the western
    edge.
    """
    width_m = haversine_m((min_lon, min_lat), (max_lon, min_lat))
    height_m = haversine_m((min_lon, min_lat), (min_lon, max_lat))
    return (width_m * FEET_PER_METER) * (height_m * FEET_PER_METER)
