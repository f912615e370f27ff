import math
from typing import Any, Dict, Optional, Tuple

import httpx
import orjson

from ..errors import ConfigurationError, NetworkError, ServiceError
from ..models import (
    BBoxContext,
    PointContext,
    RasterLayerConfig,
    ServiceConfig,
    SoilInfo,
    VectorLayerConfig,
)
from ..utils.logging import get_logger
from .normalize import to_soil_info
from .query import build_feature_info_url, build_get_feature_url, point_bbox

logger = get_logger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_success(response) -> bool:
    return 200 <= int(response.status_code) < 300


def _decode_body(response) -> Any:
    """JSON when the service says so, plain text otherwise."""
    content_type = response.headers.get("content-type") or ""
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.warning("Service declared JSON but body did not parse")
    return response.text


def _error_message(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return orjson.dumps(payload, default=str).decode()


class SoilsClient:
    """Query WMS GetFeatureInfo / WFS GetFeature soils services.

    One network request per call, no retry. ``timeout`` is None (no timeout)
    unless the caller sets one.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.session: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self.session = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.session.aclose()

    async def _get(self, url: str):
        try:
            return await self.session.get(url)
        except httpx.TransportError as exc:
            logger.error("Soils service unreachable: %s", exc, extra={'url': url})
            raise NetworkError(f"Soils service request failed: {exc}", url=url) from exc

    async def get_info_at_point(self, point: PointContext, config: ServiceConfig) -> Optional[SoilInfo]:
        """Resolve the soil under a clicked point; None when no feature matches."""
        if config.mode == "wms":
            payload = await self._fetch_feature_info(point, config)
        else:
            payload = await self._fetch_point_features(point, config)
        info = to_soil_info(payload, config.fields)
        logger.info(
            "Soil info resolved",
            extra={'layer_id': config.id, 'mode': config.mode, 'found': info is not None},
        )
        return info

    async def get_features_in_bbox(self, bbox: BBoxContext, config: ServiceConfig) -> Dict[str, Any]:
        """Fetch every vector feature intersecting a lon/lat region."""
        if config.mode != "wfs":
            raise ConfigurationError(f"Layer '{config.id}' is not a WFS layer; region queries need one")
        url = build_get_feature_url(config.wfs, bbox.as_tuple())
        payload = await self._fetch_json(url)
        if not isinstance(payload, dict):
            return {"type": "FeatureCollection", "features": []}
        payload.setdefault("features", [])
        logger.info(
            "Region features fetched",
            extra={'layer_id': config.id, 'feature_count': len(payload["features"])},
        )
        return payload

    async def _fetch_feature_info(self, point: PointContext, config: RasterLayerConfig) -> Any:
        if point.view is None:
            raise ConfigurationError("WMS queries need the map view (bounds and canvas size)")
        view = point.view
        bbox = view.bbox_3857()
        pixel: Tuple[float, float] = point.pixel if point.pixel is not None else view.pixel_of(point.lng, point.lat)
        url = build_feature_info_url(
            config.wms,
            bbox,
            width=view.width,
            height=view.height,
            i=_round_half_up(pixel[0]),
            j=_round_half_up(pixel[1]),
        )
        logger.debug("WMS GetFeatureInfo URL: %s", url)

        response = await self._get(url)
        payload = _decode_body(response)
        if not _is_success(response):
            logger.error(
                "WMS GetFeatureInfo failed",
                extra={'layer_id': config.id, 'status_code': response.status_code},
            )
            raise ServiceError(_error_message(payload), status_code=response.status_code, payload=payload)
        return payload

    async def _fetch_point_features(self, point: PointContext, config: VectorLayerConfig) -> Any:
        url = build_get_feature_url(config.wfs, point_bbox(point.lng, point.lat))
        logger.debug("WFS GetFeature URL: %s", url)
        return await self._fetch_json(url)

    async def _fetch_json(self, url: str) -> Any:
        response = await self._get(url)
        if not _is_success(response):
            payload = _decode_body(response)
            raise ServiceError(_error_message(payload), status_code=response.status_code, payload=payload)
        try:
            return response.json()
        except ValueError:
            # e.g. an XML ows:ExceptionReport sent with status 200
            logger.error("Soils service returned a non-JSON body", extra={'url': url, 'status_code': response.status_code})
            raise ServiceError(
                f"Soils service returned a non-JSON body: {response.text[:200]}",
                status_code=response.status_code,
                payload=response.text,
            ) from None


async def get_info_at_point(
    point: PointContext,
    config: ServiceConfig,
    timeout: Optional[float] = None,
) -> Optional[SoilInfo]:
    async with SoilsClient(timeout=timeout) as client:
        return await client.get_info_at_point(point, config)


async def get_features_in_bbox(
    bbox: BBoxContext,
    config: ServiceConfig,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    async with SoilsClient(timeout=timeout) as client:
        return await client.get_features_in_bbox(bbox, config)
