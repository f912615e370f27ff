from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import orjson

from ..models import RrpEntry
from ..settings import RRP_LOOKUP_PATH, RRP_LOOKUP_RETRY_SECONDS
from ..utils.cache import LoadOnceCache
from ..utils.logging import get_logger
from .builder import make_key

logger = get_logger(__name__)

RrpLookup = Dict[str, RrpEntry]


def read_lookup(path: Union[str, Path]) -> RrpLookup:
    """Read a lookup written by the builder. Raises on a missing or malformed file."""
    raw = orjson.loads(Path(path).read_bytes())
    if not isinstance(raw, dict):
        raise ValueError(f"{path} does not hold a JSON object")
    return {str(key): RrpEntry.model_validate(value) for key, value in raw.items()}


def _prop(props: Mapping[str, Any], name: str) -> Any:
    for candidate in (name, name.upper(), name.lower()):
        value = props.get(candidate)
        if value is not None and value != "":
            return value
    return None


def key_from_props(props: Mapping[str, Any]) -> Optional[str]:
    """Lookup key of a soil polygon's properties, e.g. ``{"NO_ETUDE": 1, "NO_UCS": 7}`` -> ``"1:7"``."""
    no_etude = _prop(props, "NO_ETUDE")
    no_ucs = _prop(props, "NO_UCS")
    if no_etude is None or no_ucs is None:
        return None
    return make_key(str(no_etude), str(no_ucs))


def make_lookup_cache(path: Union[str, Path], retry_after: float = RRP_LOOKUP_RETRY_SECONDS, **kwargs) -> LoadOnceCache:
    return LoadOnceCache(
        loader=lambda: read_lookup(path),
        fallback=dict,
        retry_after=retry_after,
        name=f"RRP lookup {path}",
        **kwargs,
    )


_lookup_cache: Optional[LoadOnceCache] = None


def get_lookup_cache() -> LoadOnceCache:
    """Process-wide lookup cache for ``RRP_LOOKUP_PATH``."""
    global _lookup_cache
    if _lookup_cache is None:
        _lookup_cache = make_lookup_cache(RRP_LOOKUP_PATH)
        logger.info(f"Initialized RRP lookup cache for {RRP_LOOKUP_PATH}")
    return _lookup_cache


def lookup_entry(props: Mapping[str, Any], cache: Optional[LoadOnceCache] = None) -> Optional[RrpEntry]:
    key = key_from_props(props)
    if key is None:
        return None
    table = (cache or get_lookup_cache()).get()
    return table.get(key)
