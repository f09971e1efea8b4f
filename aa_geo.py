from __future__ import annotations

import math
from typing import NamedTuple


EARTH_RADIUS_M = 6_371_000.0


class GeoDelta(NamedTuple):
    horizontal_m: float
    vertical_m: float
    ascent_m: float

    @property
    def distance_3d_m(self) -> float:
        """Slope distance: sqrt(horizontal^2 + vertical^2)."""
        return math.sqrt(self.horizontal_m * self.horizontal_m + self.vertical_m * self.vertical_m)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two lat/lon points (degrees)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def vertical_delta_m(alt1: float, alt2: float) -> float:
    return alt2 - alt1


def ascent_m(alt1: float, alt2: float) -> float:
    # Descents never subtract from total climb.
    dz = alt2 - alt1
    if dz < 0.0:
        return 0.0
    return dz


def geo_delta(
    lat1: float,
    lon1: float,
    alt1: float,
    lat2: float,
    lon2: float,
    alt2: float,
) -> GeoDelta:
    return GeoDelta(
        horizontal_m=haversine_m(lat1, lon1, lat2, lon2),
        vertical_m=vertical_delta_m(alt1, alt2),
        ascent_m=ascent_m(alt1, alt2),
    )
