"""Layer archive handling."""

from .extractor import (
    CONFIGS_DIR,
    RELEASE_MANIFESTS_DIR,
    LayerExtractor,
    find_dir,
    layer_dir_name,
)

__all__ = [
    "CONFIGS_DIR",
    "RELEASE_MANIFESTS_DIR",
    "LayerExtractor",
    "find_dir",
    "layer_dir_name",
]
