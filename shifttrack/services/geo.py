"""
Geospatial helpers for GPS traces.

Clustering here is a greedy single pass over time-ordered points: a point
joins the current cluster when it is within the radius of the point recorded
just before it. A slow drift can therefore keep one cluster growing well past
the radius. Order-independent density clustering would be a different
algorithm with different results.
"""
import math
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple, TypeVar

EARTH_RADIUS_M = 6371000

T = TypeVar("T")


@dataclass(frozen=True)
class Point:
    lat: float
    lon: float


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates, in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def is_valid_coordinate(lat, lon) -> bool:
    try:
        return math.isfinite(float(lat)) and math.isfinite(float(lon))
    except (TypeError, ValueError):
        return False


def _point_of(item) -> Tuple[float, float]:
    if isinstance(item, Point):
        return item.lat, item.lon
    if isinstance(item, (tuple, list)):
        return item[0], item[1]
    return item.latitude, item.longitude


def cluster_sequential(
    items: Sequence[T],
    radius_m: float,
    coords: Callable[[T], Tuple[float, float]] = _point_of,
) -> List[List[T]]:
    """
    Split an ordered sequence into runs of nearby points.

    `items` may be Points, (lat, lon) pairs, or any object exposing
    `latitude`/`longitude` (e.g. LocationLog rows). A point with invalid
    coordinates always closes the current cluster and opens a new one.
    """
    if not items:
        return []

    clusters: List[List[T]] = []
    current: List[T] = [items[0]]

    for prev, curr in zip(items, items[1:]):
        lat1, lon1 = coords(prev)
        lat2, lon2 = coords(curr)

        if not is_valid_coordinate(lat2, lon2):
            clusters.append(current)
            current = [curr]
            continue

        if not is_valid_coordinate(lat1, lon1):
            distance = math.inf
        else:
            distance = haversine_distance_m(float(lat1), float(lon1), float(lat2), float(lon2))

        if distance <= radius_m:
            current.append(curr)
        else:
            clusters.append(current)
            current = [curr]

    clusters.append(current)
    return clusters


def centroid(
    items: Sequence[T],
    coords: Callable[[T], Tuple[float, float]] = _point_of,
) -> Point:
    if not items:
        raise ValueError("centroid of an empty cluster")

    lats = [float(coords(i)[0]) for i in items]
    lons = [float(coords(i)[1]) for i in items]
    return Point(lat=sum(lats) / len(lats), lon=sum(lons) / len(lons))


def path_length_m(
    items: Sequence[T],
    coords: Callable[[T], Tuple[float, float]] = _point_of,
) -> float:
    """Sum of hops between consecutive valid points."""
    total = 0.0
    prev = None
    for item in items:
        lat, lon = coords(item)
        if not is_valid_coordinate(lat, lon):
            continue
        if prev is not None:
            total += haversine_distance_m(prev[0], prev[1], float(lat), float(lon))
        prev = (float(lat), float(lon))
    return total
