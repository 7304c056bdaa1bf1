from math import asin, cos, radians, sin, sqrt

from hrshift.models import Branch


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    earth_radius_m = 6371000.0

    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return earth_radius_m * c


def is_inside_circle(
    center_lat: float,
    center_lon: float,
    lat: float,
    lon: float,
    radius_m: float,
) -> bool:
    return distance_m(center_lat, center_lon, lat, lon) <= radius_m


def branch_has_geofence(branch: Branch | None) -> bool:
    if branch is None:
        return False
    return branch.lat is not None and branch.lon is not None and branch.radius_m is not None and branch.radius_m > 0


def evaluate_branch_location(branch: Branch, lat: float, lon: float) -> tuple[bool, dict[str, float]]:
    distance_value = distance_m(branch.lat, branch.lon, lat, lon)
    flags = {
        "distance_m": round(distance_value, 2),
        "radius_m": branch.radius_m,
    }
    return distance_value <= branch.radius_m, flags
