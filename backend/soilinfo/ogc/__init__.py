from .client import SoilsClient, get_features_in_bbox, get_info_at_point
from .normalize import extract_proportions, to_soil_info
from .query import build_feature_info_url, build_get_feature_url, build_tile_template, point_bbox

__all__ = [
    "SoilsClient",
    "get_info_at_point",
    "get_features_in_bbox",
    "to_soil_info",
    "extract_proportions",
    "build_feature_info_url",
    "build_get_feature_url",
    "build_tile_template",
    "point_bbox",
]
