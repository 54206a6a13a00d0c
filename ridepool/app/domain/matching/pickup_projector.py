"""
Pickup projection onto a driver's route.

Maps a passenger-chosen point onto the nearest segment of the route
polyline and reports how much inserting that pickup lengthens the
one-way trip. Never rejects a point because it is far away; judging the
detour is the driver's call at accept time.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ridepool.app.core.config import settings
from ridepool.app.domain.matching.geometry import Point, EARTH_RADIUS_KM, point_distance, path_length

KM_PER_DEGREE = 2 * math.pi * EARTH_RADIUS_KM / 360.0


@dataclass(frozen=True)
class PickupProjection:
    """Where a pickup lands on the route and what it costs the driver."""
    snapped: Point
    segment_index: int
    offset_km: float  # Pickup point to snapped point
    along_route_km: float  # Route origin to snapped point
    detour_km: float
    detour_minutes: float


def _to_plane(point: Point, origin: Point, cos_lat: float):
    """Equirectangular projection in km around ``origin``."""
    return (
        (point.lng - origin.lng) * cos_lat * KM_PER_DEGREE,
        (point.lat - origin.lat) * KM_PER_DEGREE,
    )


def _from_plane(x: float, y: float, origin: Point, cos_lat: float) -> Point:
    return Point(
        lat=origin.lat + y / KM_PER_DEGREE,
        lng=origin.lng + x / (cos_lat * KM_PER_DEGREE),
    )


def _closest_on_segment(a, b):
    """
    Closest point to the plane origin on segment a-b.

    Returns:
        (t, x, y, squared distance) with t in [0, 1]
    """
    ax, ay = a
    dx, dy = b[0] - ax, b[1] - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        t = 0.0
    else:
        t = max(0.0, min(1.0, -(ax * dx + ay * dy) / length_sq))
    x, y = ax + t * dx, ay + t * dy
    return t, x, y, x * x + y * y


def project_pickup(
    polyline: Sequence[Sequence[float]],
    pickup: Point,
    average_speed_kmh: Optional[float] = None,
) -> PickupProjection:
    """
    Project a pickup point onto a route polyline.

    Args:
        polyline: Ordered route points ``[(lat, lng), ...]`` from origin to destination
        pickup: The passenger's chosen point
        average_speed_kmh: Speed used to convert detour distance into minutes

    Returns:
        PickupProjection for the segment with minimum perpendicular distance

    Raises:
        ValueError: If the polyline is empty
    """
    if not polyline:
        raise ValueError("Route polyline is empty")

    speed = average_speed_kmh or settings.detour_average_speed_kmh
    points = [Point(float(p[0]), float(p[1])) for p in polyline]
    pickup = Point(float(pickup[0]), float(pickup[1]))

    # A single-point route: the driver goes there and back
    if len(points) == 1:
        offset = point_distance(pickup, points[0])
        detour = 2 * offset
        return PickupProjection(
            snapped=points[0],
            segment_index=0,
            offset_km=offset,
            along_route_km=0.0,
            detour_km=detour,
            detour_minutes=detour / speed * 60,
        )

    cos_lat = math.cos(math.radians(pickup.lat))
    plane = [_to_plane(p, pickup, cos_lat) for p in points]

    best_index, best_t, best_xy, best_dist = 0, 0.0, plane[0], math.inf
    for index in range(len(plane) - 1):
        t, x, y, dist_sq = _closest_on_segment(plane[index], plane[index + 1])
        if dist_sq < best_dist:
            best_index, best_t, best_xy, best_dist = index, t, (x, y), dist_sq

    a, b = points[best_index], points[best_index + 1]
    snapped = _from_plane(best_xy[0], best_xy[1], pickup, cos_lat)

    # Insertion cost of visiting the pickup between the segment's endpoints
    detour = point_distance(a, pickup) + point_distance(pickup, b) - point_distance(a, b)
    detour = max(0.0, detour)

    along = path_length(points[:best_index + 1]) + point_distance(a, b) * best_t

    return PickupProjection(
        snapped=snapped,
        segment_index=best_index,
        offset_km=point_distance(pickup, snapped),
        along_route_km=along,
        detour_km=detour,
        detour_minutes=detour / speed * 60,
    )
