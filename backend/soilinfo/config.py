# soilinfo/config.py
# Soils layers served by the map, overridable through the environment.
import os
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from .errors import ConfigurationError, UnknownLayerError
from .models import (
    Attribution,
    FieldConfig,
    ServiceConfig,
    SoilsMode,
    WfsSource,
    WmsSource,
)

# ── Géoportail WMS-R (IGN) hosting the INRAE soil maps
DEFAULT_WMS_URL = "https://data.geopf.fr/wms-r/wms"
DEFAULT_WMS_INFO_FORMAT = "application/json"
DEFAULT_WMS_VERSION = "1.3.0"

# Layer definitions: id, label, env prefix, WMS layer, WFS defaults, fields
_LAYER_DEFAULTS = (
    {
        "id": "rrp",
        "label": "Carte des sols (IGCS/RRP)",
        "prefix": "SOILS",
        "wms_layer": "INRA.CARTE.SOLS",
        "wfs_url": "https://example.com/soils/wfs",
        "wfs_type_name": "soils",
        "title_field": "RRP_LABEL",
        "attributes": ("RRP_CODE", "RRP_LABEL", "TEXTURE"),
        "attribution": ("IGCS/RRP", "https://www.gissol.fr/"),
    },
    {
        "id": "rrp_occitanie",
        "label": "Carte des sols RRP Occitanie",
        "prefix": "SOILS_OCC",
        "wms_layer": "RRP_OCCITANIE",
        "wfs_url": "https://example.com/rrp-occitanie/wfs",
        "wfs_type_name": "rrp_occitanie",
        "title_field": "RRP_LABEL",
        "attributes": (),
        "attribution": ("RRP Occitanie", "https://www.gissol.fr/"),
    },
)

DEFAULT_RASTER_OPACITY = 0.6

_LAYER_ADAPTER: TypeAdapter = TypeAdapter(ServiceConfig)


def _env(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key)
    if value is None:
        return default
    return value.strip()


def _require(value: str, what: str, layer_id: str) -> str:
    if not value:
        raise ConfigurationError(f"Soils layer '{layer_id}' has no {what} configured")
    return value


def _build_layer(defaults: Dict, env: Mapping[str, str]) -> ServiceConfig:
    layer_id = defaults["id"]
    prefix = defaults["prefix"]
    raw_mode = _env(env, f"{prefix}_MODE", SoilsMode.RASTER.value).lower()
    try:
        mode = SoilsMode(raw_mode)
    except ValueError:
        raise ConfigurationError(f"Soils layer '{layer_id}' has unknown mode '{raw_mode}' (expected wms or wfs)") from None

    attribution_text, attribution_url = defaults["attribution"]
    common = {
        "id": layer_id,
        "label": defaults["label"],
        "fields": FieldConfig(title=defaults["title_field"], attributes=tuple(defaults["attributes"])),
        "rasterOpacity": DEFAULT_RASTER_OPACITY,
        "attribution": Attribution(text=attribution_text, url=attribution_url),
    }

    try:
        if mode is SoilsMode.RASTER:
            wms = WmsSource(
                url=_require(_env(env, f"{prefix}_WMS_URL", DEFAULT_WMS_URL), "WMS URL", layer_id),
                layer=_require(_env(env, f"{prefix}_WMS_LAYER", defaults["wms_layer"]), "WMS layer name", layer_id),
                infoFormat=_env(env, f"{prefix}_WMS_INFO_FORMAT", DEFAULT_WMS_INFO_FORMAT) or DEFAULT_WMS_INFO_FORMAT,
                version=_env(env, f"{prefix}_WMS_VERSION", DEFAULT_WMS_VERSION) or DEFAULT_WMS_VERSION,
            )
            return _LAYER_ADAPTER.validate_python({"mode": mode.value, "wms": wms, **common})

        wfs = WfsSource(
            url=_require(_env(env, f"{prefix}_WFS_URL", defaults["wfs_url"]), "WFS URL", layer_id),
            typeName=_require(_env(env, f"{prefix}_WFS_TYPENAME", defaults["wfs_type_name"]), "WFS type name", layer_id),
        )
        return _LAYER_ADAPTER.validate_python({"mode": mode.value, "wfs": wfs, **common})
    except ValidationError as exc:
        raise ConfigurationError(f"Soils layer '{layer_id}' is invalid: {exc}") from exc


def build_layers(env: Optional[Mapping[str, str]] = None) -> List[ServiceConfig]:
    """Build the soils layer registry from environment-style settings."""
    source = os.environ if env is None else env
    return [_build_layer(defaults, source) for defaults in _LAYER_DEFAULTS]


SOILS_LAYERS = build_layers()


def get_layer(layer_id: str, layers: Optional[List[ServiceConfig]] = None) -> ServiceConfig:
    for layer in SOILS_LAYERS if layers is None else layers:
        if layer.id == layer_id:
            return layer
    raise UnknownLayerError(f"Unknown soils layer '{layer_id}'")


def layer_ids(layers: Optional[List[ServiceConfig]] = None) -> Tuple[str, ...]:
    return tuple(layer.id for layer in (SOILS_LAYERS if layers is None else layers))
