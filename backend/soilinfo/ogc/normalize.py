import re
from typing import Any, Dict, Mapping, Optional

from ..models import FieldConfig, SoilInfo
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TITLE = "Sol"

# Composition fields: PCT_ARGILE, POURCENT, PRC_SABLE, TAUX_LIMON, ...
_PROPORTION_KEY = re.compile(r"pct|pourc|prc|percent|taux", re.IGNORECASE)


def extract_proportions(properties: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in properties.items() if _PROPORTION_KEY.search(str(key))}


def first_feature(payload: Any) -> Optional[Mapping[str, Any]]:
    """Return the first feature of a decoded FeatureCollection, if any.

    Only the first feature is used; further matches are ignored.
    """
    if not isinstance(payload, Mapping):
        if payload:
            logger.debug("Non-JSON feature payload ignored (%d chars)", len(str(payload)))
        return None
    features = payload.get("features") or []
    if not features:
        return None
    feature = features[0]
    return feature if isinstance(feature, Mapping) else None


def to_soil_info(payload: Any, fields: FieldConfig) -> Optional[SoilInfo]:
    feature = first_feature(payload)
    if feature is None:
        return None

    properties = dict(feature.get("properties") or {})
    title = properties.get(fields.title)
    if title is None or title == "":
        title = DEFAULT_TITLE

    highlights = {name: properties[name] for name in fields.attributes if name in properties}

    return SoilInfo(
        title=str(title),
        attributes=properties,
        proportions=extract_proportions(properties),
        highlights=highlights,
        geometry=feature.get("geometry"),
    )
