"""Local cache state: blob store and manifest change detection."""

from .blob_store import BlobCache
from .change import ChangeDetector

__all__ = ["BlobCache", "ChangeDetector"]
