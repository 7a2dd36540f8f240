"""Operator Catalog Mirror - Incremental async mirroring of operator catalog images."""

__version__ = "0.1.0"

from .auth import CredentialStore, TokenProvider
from .cache import BlobCache, ChangeDetector
from .catalog import (
    DeclarativeConfig,
    build_updated_configs,
    get_declarative_config_map,
    get_packages,
)
from .config import CatalogIndex, load_mirror_config, parse_mirror_config
from .core.transport import HttpRegistryTransport, RegistryTransport
from .core.types import (
    CatalogResult,
    ImageReference,
    Operator,
    SyncConfig,
    SyncReport,
    Token,
)
from .exceptions import (
    AuthError,
    CredentialError,
    ExtractionError,
    FilesystemError,
    MirrorError,
    ParseError,
    TransportError,
)
from .operations import (
    BatchDownloader,
    blobs_url_from_string,
    image_manifest_url,
    parse_image_reference,
)
from .sync import SyncOrchestrator, sync_operator_catalogs
from .tar import LayerExtractor, find_dir

__all__ = [
    # Main API
    "sync_operator_catalogs",
    "SyncOrchestrator",
    "SyncConfig",
    "SyncReport",
    "CatalogResult",
    "Operator",
    "load_mirror_config",
    "parse_mirror_config",
    # Components
    "CredentialStore",
    "TokenProvider",
    "Token",
    "RegistryTransport",
    "HttpRegistryTransport",
    "ImageReference",
    "parse_image_reference",
    "image_manifest_url",
    "blobs_url_from_string",
    "ChangeDetector",
    "BlobCache",
    "BatchDownloader",
    "LayerExtractor",
    "find_dir",
    "DeclarativeConfig",
    "build_updated_configs",
    "get_declarative_config_map",
    "get_packages",
    "CatalogIndex",
    # Exceptions
    "MirrorError",
    "CredentialError",
    "AuthError",
    "TransportError",
    "ParseError",
    "ExtractionError",
    "FilesystemError",
]
