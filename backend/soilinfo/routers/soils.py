from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Query

from ..config import SOILS_LAYERS, get_layer
from ..errors import ConfigurationError, NetworkError, ServiceError, UnknownLayerError
from ..models import (
    BBoxContext,
    LayerSummary,
    PointContext,
    RrpEntry,
    SoilInfoRequest,
    SoilInfoResponse,
    TileTemplateResponse,
)
from ..ogc.client import get_features_in_bbox, get_info_at_point
from ..ogc.query import build_tile_template
from ..rrp.lookup import get_lookup_cache, lookup_entry
from ..settings import OGC_TIMEOUT
from ..utils.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)

NO_DATA_MESSAGE = "Aucune donnée"
FETCH_ERROR_MESSAGE = "Erreur lors de la récupération des données"


def _resolve_layer(layer_id: str):
    try:
        return get_layer(layer_id)
    except UnknownLayerError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/health")
async def soils_health():
    return {"status": "ok"}


@router.get("/layers", response_model=List[LayerSummary])
async def soils_layers() -> List[LayerSummary]:
    return [
        LayerSummary(
            id=layer.id,
            label=layer.label,
            mode=layer.mode,
            rasterOpacity=layer.rasterOpacity,
            attribution=layer.attribution,
        )
        for layer in SOILS_LAYERS
    ]


@router.post("/info", response_model=SoilInfoResponse)
async def soils_info(request: SoilInfoRequest) -> SoilInfoResponse:
    layer = _resolve_layer(request.layerId)
    point = PointContext(lng=request.lng, lat=request.lat, view=request.view, pixel=request.pixel)

    try:
        info = await get_info_at_point(point, layer, timeout=OGC_TIMEOUT)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (ServiceError, NetworkError) as exc:
        logger.error("Soil info query failed for %s: %s", layer.id, exc)
        raise HTTPException(status_code=502, detail=FETCH_ERROR_MESSAGE)

    if info is None:
        return SoilInfoResponse(layerId=layer.id, found=False, message=NO_DATA_MESSAGE)

    rrp = lookup_entry(info.attributes)
    return SoilInfoResponse(layerId=layer.id, found=True, info=info, rrp=rrp)


@router.get("/features")
async def soils_features(layerId: str, bbox: str) -> Dict[str, Any]:
    layer = _resolve_layer(layerId)
    try:
        region = BBoxContext.parse(bbox)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid bbox format")

    try:
        return await get_features_in_bbox(region, layer, timeout=OGC_TIMEOUT)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (ServiceError, NetworkError) as exc:
        logger.error("Soil region query failed for %s: %s", layer.id, exc)
        raise HTTPException(status_code=502, detail=FETCH_ERROR_MESSAGE)


@router.get("/tiles/{layer_id}", response_model=TileTemplateResponse)
async def soils_tile_template(layer_id: str, tileSize: int = Query(256, ge=64, le=2048)) -> TileTemplateResponse:
    layer = _resolve_layer(layer_id)
    if layer.mode != "wms":
        raise HTTPException(status_code=400, detail=f"Layer '{layer.id}' has no WMS tiles")
    return TileTemplateResponse(
        layerId=layer.id,
        template=build_tile_template(layer.wms, tile_size=tileSize),
        tileSize=tileSize,
    )


@router.get("/rrp", response_model=RrpEntry, response_model_exclude_none=True)
async def soils_rrp_entry(no_etude: str, no_ucs: str) -> RrpEntry:
    entry = lookup_entry({"NO_ETUDE": no_etude, "NO_UCS": no_ucs})
    if entry is None:
        raise HTTPException(status_code=404, detail=NO_DATA_MESSAGE)
    return entry


@router.get("/rrp/stats")
async def soils_rrp_stats() -> Dict[str, Any]:
    return get_lookup_cache().get_stats()
