import os
from typing import Optional


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")

# No timeout unless the operator asks for one.
OGC_TIMEOUT = _optional_float(os.getenv("OGC_TIMEOUT_S"))

RRP_LOOKUP_PATH = os.getenv("RRP_LOOKUP_PATH", "public/rrp_lookup.json")
RRP_LOOKUP_RETRY_SECONDS = int(os.getenv("RRP_LOOKUP_RETRY_S", "300"))

APP_VERSION = "1.0.0"
