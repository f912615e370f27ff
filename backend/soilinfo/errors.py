from typing import Any, Optional


class SoilsError(Exception):
    """Base class for soil lookup failures surfaced to callers."""


class ConfigurationError(SoilsError):
    """A soils layer is missing its service URL, layer name or type name,
    or an unknown layer id was requested."""


class NetworkError(SoilsError):
    """The request to the soils service could not be completed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ServiceError(SoilsError):
    """The soils service answered with a non-success HTTP status.

    ``payload`` is the decoded response body (parsed JSON or plain text).
    """

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class UnknownLayerError(ConfigurationError):
    """No soils layer is registered under the requested id."""
