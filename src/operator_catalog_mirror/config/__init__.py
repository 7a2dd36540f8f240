"""Catalog index and mirror configuration files."""

from .index import CatalogIndex, catalog_key
from .mirror import load_mirror_config, parse_mirror_config

__all__ = ["CatalogIndex", "catalog_key", "load_mirror_config", "parse_mirror_config"]
