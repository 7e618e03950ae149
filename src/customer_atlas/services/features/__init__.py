"""GeoJSON feature construction."""

from .builder import FeatureBuildResult, build_feature, feature_collection, to_features

__all__ = ["FeatureBuildResult", "build_feature", "feature_collection", "to_features"]
