from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .geo.projection import project, project_bounds


class SoilsMode(str, Enum):
    RASTER = "wms"
    VECTOR = "wfs"


class FieldConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    attributes: Tuple[str, ...] = ()


class Attribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    url: str


class WmsSource(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    layer: str
    infoFormat: str = "application/json"
    version: str = "1.3.0"


class WfsSource(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    typeName: str


class _LayerConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    fields: FieldConfig
    rasterOpacity: float = Field(0.6, ge=0.0, le=1.0)
    attribution: Attribution


class RasterLayerConfig(_LayerConfigBase):
    mode: Literal["wms"] = "wms"
    wms: WmsSource


class VectorLayerConfig(_LayerConfigBase):
    mode: Literal["wfs"] = "wfs"
    wfs: WfsSource


ServiceConfig = Annotated[Union[RasterLayerConfig, VectorLayerConfig], Field(discriminator="mode")]


class MapView(BaseModel):
    """Snapshot of the map viewport: lon/lat bounds and canvas size in CSS pixels."""

    west: float
    south: float
    east: float
    north: float
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "MapView":
        if self.west >= self.east or self.south >= self.north:
            raise ValueError("view bounds must satisfy west < east and south < north")
        return self

    def bbox_3857(self) -> Tuple[float, float, float, float]:
        return project_bounds(self.west, self.south, self.east, self.north)

    def pixel_of(self, lng: float, lat: float) -> Tuple[float, float]:
        """Screen position of a lon/lat inside this view, origin at the top left."""
        xmin, ymin, xmax, ymax = self.bbox_3857()
        x, y = project(lng, lat)
        px = (x - xmin) / (xmax - xmin) * self.width
        py = (ymax - y) / (ymax - ymin) * self.height
        return px, py


class PointContext(BaseModel):
    lng: float = Field(..., ge=-180.0, le=180.0)
    lat: float = Field(..., gt=-90.0, lt=90.0)
    view: Optional[MapView] = None
    pixel: Optional[Tuple[float, float]] = None


class BBoxContext(BaseModel):
    west: float
    south: float
    east: float
    north: float

    @classmethod
    def parse(cls, raw: str) -> "BBoxContext":
        parts = [part.strip() for part in raw.split(",")]
        if len(parts) != 4:
            raise ValueError("bbox must have four comma separated numbers")
        west, south, east, north = (float(part) for part in parts)
        return cls(west=west, south=south, east=east, north=north)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)


class SoilInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    attributes: Dict[str, Any]
    proportions: Dict[str, Any]
    highlights: Dict[str, Any] = Field(default_factory=dict)
    geometry: Optional[Any] = None


class RrpComponent(BaseModel):
    pourcent: Union[int, float] = 0
    rp_2008_nom: str = ""


class RrpEntry(BaseModel):
    """One soil mapping unit (UCS) with its soil components (UTS)."""

    id_etude: Optional[Union[int, float]] = None
    id_ucs: Optional[Union[int, float]] = None
    nom_ucs: str = ""
    reg_nat: str = ""
    alt_min: Optional[Union[int, float]] = None
    alt_mod: Optional[Union[int, float]] = None
    alt_max: Optional[Union[int, float]] = None
    nb_uts: int = 0
    uts: List[RrpComponent] = Field(default_factory=list)
    color_hex: Optional[str] = None


class SoilInfoRequest(BaseModel):
    layerId: str
    lng: float = Field(..., ge=-180.0, le=180.0)
    lat: float = Field(..., gt=-90.0, lt=90.0)
    view: Optional[MapView] = None
    pixel: Optional[Tuple[float, float]] = None

    @field_validator("layerId")
    @classmethod
    def strip_layer_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("layerId must not be empty")
        return stripped


class SoilInfoResponse(BaseModel):
    layerId: str
    found: bool
    info: Optional[SoilInfo] = None
    rrp: Optional[RrpEntry] = None
    message: Optional[str] = None


class LayerSummary(BaseModel):
    id: str
    label: str
    mode: str
    rasterOpacity: float
    attribution: Attribution


class TileTemplateResponse(BaseModel):
    layerId: str
    template: str
    tileSize: int


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: Optional[str] = None
