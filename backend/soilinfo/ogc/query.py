# soilinfo/ogc/query.py
from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple

import httpx

from ..models import WfsSource, WmsSource

DEFAULT_WMS_VERSION = "1.3.0"
PROJECTED_CRS = "EPSG:3857"
GEOGRAPHIC_CRS = "EPSG:4326"
WFS_VERSION = "2.0.0"
TILE_BBOX_PLACEHOLDER = "{bbox-epsg-3857}"


def _version(wms: WmsSource) -> str:
    return wms.version or DEFAULT_WMS_VERSION


def crs_param_name(version: str) -> str:
    """WMS 1.3.0 names the reference system CRS, earlier versions SRS."""
    return "CRS" if version == "1.3.0" else "SRS"


def pixel_param_names(version: str) -> Tuple[str, str]:
    return ("I", "J") if version == "1.3.0" else ("X", "Y")


def _format_number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def format_bbox(bbox: Sequence[float]) -> str:
    if len(bbox) != 4:
        raise ValueError("bbox must have four values")
    return ",".join(_format_number(value) for value in bbox)


def _with_query(base_url: str, params: Dict[str, Any]) -> str:
    query = str(httpx.QueryParams(params))
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{query}"


def build_feature_info_url(
    wms: WmsSource,
    bbox_3857: Sequence[float],
    width: int,
    height: int,
    i: int,
    j: int,
) -> str:
    version = _version(wms)
    i_name, j_name = pixel_param_names(version)
    params: Dict[str, Any] = {
        "SERVICE": "WMS",
        "REQUEST": "GetFeatureInfo",
        "VERSION": version,
        "LAYERS": wms.layer,
        "QUERY_LAYERS": wms.layer,
        "STYLES": "",
        "FORMAT": "image/png",
        "INFO_FORMAT": wms.infoFormat,
        "TRANSPARENT": "TRUE",
        crs_param_name(version): PROJECTED_CRS,
        "WIDTH": str(int(width)),
        "HEIGHT": str(int(height)),
        "BBOX": format_bbox(bbox_3857),
        i_name: str(int(i)),
        j_name: str(int(j)),
    }
    return _with_query(wms.url, params)


def point_bbox(lng: float, lat: float) -> Tuple[float, float, float, float]:
    """Zero-area box at a click point."""
    return (lng, lat, lng, lat)


def build_get_feature_url(wfs: WfsSource, bbox_4326: Sequence[float]) -> str:
    # WFS is queried in geographic coordinates; the bbox is not reprojected.
    params: Dict[str, Any] = {
        "service": "WFS",
        "version": WFS_VERSION,
        "request": "GetFeature",
        "typeName": wfs.typeName,
        "outputFormat": "application/json",
        "srsName": GEOGRAPHIC_CRS,
        "bbox": format_bbox(bbox_4326),
    }
    return _with_query(wfs.url, params)


def build_tile_template(wms: WmsSource, tile_size: int = 256) -> str:
    """GetMap URL whose BBOX is left as a placeholder for the map surface."""
    version = _version(wms)
    params: Dict[str, Any] = {
        "SERVICE": "WMS",
        "VERSION": version,
        "REQUEST": "GetMap",
        "LAYERS": wms.layer,
        "STYLES": "",
        "FORMAT": "image/png",
        "TRANSPARENT": "TRUE",
        crs_param_name(version): PROJECTED_CRS,
        "WIDTH": str(int(tile_size)),
        "HEIGHT": str(int(tile_size)),
    }
    return f"{_with_query(wms.url, params)}&BBOX={TILE_BBOX_PLACEHOLDER}"
