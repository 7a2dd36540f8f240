"""Registry operations: references, manifests and blob downloads."""

from .blobs import BatchDownloader
from .manifests import get_manifest, parse_manifest_document
from .references import (
    blobs_url,
    blobs_url_from_string,
    image_manifest_url,
    parse_image_reference,
)

__all__ = [
    "BatchDownloader",
    "blobs_url",
    "blobs_url_from_string",
    "get_manifest",
    "image_manifest_url",
    "parse_image_reference",
    "parse_manifest_document",
]
