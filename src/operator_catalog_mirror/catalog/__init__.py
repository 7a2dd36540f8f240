"""File-based catalog handling."""

from .models import ChannelEntry, DeclarativeConfig, RelatedImage
from .splitter import (
    build_updated_configs,
    get_declarative_config_map,
    get_packages,
    read_declarative_config,
    split_json_stream,
    split_on_boundary,
)

__all__ = [
    "ChannelEntry",
    "DeclarativeConfig",
    "RelatedImage",
    "build_updated_configs",
    "get_declarative_config_map",
    "get_packages",
    "read_declarative_config",
    "split_json_stream",
    "split_on_boundary",
]
