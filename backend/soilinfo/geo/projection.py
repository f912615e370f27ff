# soilinfo/geo/projection.py
from __future__ import annotations

from functools import lru_cache
from typing import Tuple

from pyproj import Transformer

# Spherical ("web") Mercator radius used by EPSG:3857
EARTH_RADIUS = 6378137.0

# +over: longitudes past +/-180 are not wrapped back into range
_WEB_MERCATOR_PIPELINE = (
    "+proj=pipeline "
    "+step +proj=unitconvert +xy_in=deg +xy_out=rad "
    f"+step +proj=merc +a={EARTH_RADIUS} +b={EARTH_RADIUS} +over"
)


@lru_cache(maxsize=1)
def _to_3857() -> Transformer:
    return Transformer.from_pipeline(_WEB_MERCATOR_PIPELINE)


def project(lng: float, lat: float) -> Tuple[float, float]:
    """Project lon/lat degrees to EPSG:3857 metres.

    x = R * lng * pi / 180, y = R * ln(tan(pi / 4 + lat * pi / 360)), for any
    longitude. Latitude is not clamped; callers keep it strictly inside (-90, 90),
    where y is meaningful.
    """
    x, y = _to_3857().transform(float(lng), float(lat), errcheck=False)
    return float(x), float(y)


def project_bounds(west: float, south: float, east: float, north: float) -> Tuple[float, float, float, float]:
    x1, y1 = project(west, south)
    x2, y2 = project(east, north)
    xmin, xmax = sorted((x1, x2))
    ymin, ymax = sorted((y1, y2))
    return (xmin, ymin, xmax, ymax)
