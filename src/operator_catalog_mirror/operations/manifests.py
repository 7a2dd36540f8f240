"""Manifest retrieval and parsing."""

import logging
from typing import Any, Union

from ..core.session import parse_json_response
from ..core.transport import RegistryTransport
from ..core.types import (
    FsLayer,
    ImageReference,
    Layer,
    Manifest,
    ManifestDescriptor,
    ManifestList,
    Platform,
    SchemaV1Manifest,
    Token,
)
from ..exceptions import ParseError
from .references import image_manifest_url

logger = logging.getLogger(__name__)

ManifestDocument = Union[ManifestList, Manifest, SchemaV1Manifest]


async def get_manifest(
    transport: RegistryTransport,
    ref: ImageReference,
    token: Token,
    reference: str | None = None,
) -> str:
    """Fetch a manifest (or manifest list) for an image.

    Args:
        transport: Registry transport
        ref: Image reference
        token: Registry token
        reference: Tag or digest to fetch instead of ref.version

    Returns:
        Raw manifest body

    Raises:
        TransportError: If the request fails
    """
    url = image_manifest_url(ref, reference)
    logger.info(f"api call manifest for {ref} ({reference or ref.version})")
    return await transport.fetch_manifest(url, token)


def _parse_layer(data: Any, what: str) -> Layer:
    if not isinstance(data, dict) or "digest" not in data:
        raise ParseError(f"Invalid {what} descriptor: {data!r}")
    try:
        size = int(data.get("size", 0))
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid size in {what} descriptor: {e}") from e
    return Layer(
        media_type=data.get("mediaType", ""),
        size=size,
        digest=data["digest"],
    )


def _parse_platform(data: Any) -> Platform | None:
    if not isinstance(data, dict):
        return None
    return Platform(
        os=data.get("os", ""),
        architecture=data.get("architecture", ""),
        variant=data.get("variant"),
    )


def manifest_list_from_dict(data: dict[str, Any]) -> ManifestList:
    """Build a ManifestList from decoded JSON."""
    entries = data.get("manifests")
    if not isinstance(entries, list):
        raise ParseError("Manifest list has no 'manifests' array")

    descriptors = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("digest"):
            raise ParseError(f"Invalid manifest list entry: {entry!r}")
        descriptors.append(
            ManifestDescriptor(
                digest=entry["digest"],
                media_type=entry.get("mediaType", ""),
                size=entry.get("size"),
                platform=_parse_platform(entry.get("platform")),
            )
        )
    return ManifestList(media_type=data.get("mediaType", ""), manifests=descriptors)


def manifest_from_dict(data: dict[str, Any]) -> Manifest:
    """Build a single-platform Manifest from decoded JSON."""
    layers = data.get("layers")
    if not isinstance(layers, list):
        raise ParseError("Manifest has no 'layers' array")

    config = data.get("config")
    return Manifest(
        layers=[_parse_layer(layer, "layer") for layer in layers],
        config=_parse_layer(config, "config") if config is not None else None,
        schema_version=data.get("schemaVersion"),
        media_type=data.get("mediaType"),
    )


def schema_v1_from_dict(data: dict[str, Any]) -> SchemaV1Manifest:
    """Build a legacy schema-1 manifest from decoded JSON."""
    fs_layers = data.get("fsLayers")
    if not isinstance(fs_layers, list):
        raise ParseError("Schema-1 manifest has no 'fsLayers' array")

    layers = []
    for position, entry in enumerate(fs_layers):
        if not isinstance(entry, dict) or not entry.get("blobSum"):
            raise ParseError(f"Invalid fsLayers entry: {entry!r}")
        layers.append(
            FsLayer(
                blob_sum=entry["blobSum"],
                original_ref=entry.get("originalRef"),
                size=entry.get("size"),
                number=position,
            )
        )
    return SchemaV1Manifest(
        fs_layers=layers,
        name=data.get("name"),
        tag=data.get("tag"),
        architecture=data.get("architecture"),
        schema_version=data.get("schemaVersion"),
    )


def parse_manifest_list(body: str) -> ManifestList:
    """Parse a manifest list / OCI index body."""
    return manifest_list_from_dict(parse_json_response(body, "manifest list"))


def parse_manifest(body: str) -> Manifest:
    """Parse a single-platform manifest body."""
    return manifest_from_dict(parse_json_response(body, "manifest"))


def parse_schema_v1_manifest(body: str) -> SchemaV1Manifest:
    """Parse a legacy schema-1 manifest body."""
    return schema_v1_from_dict(parse_json_response(body, "schema-1 manifest"))


def parse_manifest_document(body: str) -> ManifestDocument:
    """Parse a manifest body, detecting its shape.

    Args:
        body: Raw manifest body

    Returns:
        ManifestList, Manifest or SchemaV1Manifest

    Raises:
        ParseError: If the body is not JSON or matches none of the shapes
    """
    data = parse_json_response(body, "manifest")
    if "manifests" in data:
        return manifest_list_from_dict(data)
    if "fsLayers" in data:
        return schema_v1_from_dict(data)
    if "layers" in data:
        return manifest_from_dict(data)
    raise ParseError("Unrecognized manifest document")


def manifest_fs_layers(
    document: Manifest | SchemaV1Manifest, origin: str
) -> list[FsLayer]:
    """List the blobs referenced by a platform manifest.

    Args:
        document: Parsed platform manifest
        origin: Source reference recorded on each layer

    Returns:
        FsLayer per layer, in manifest order
    """
    if isinstance(document, SchemaV1Manifest):
        return [
            FsLayer(
                blob_sum=layer.blob_sum,
                original_ref=origin,
                size=layer.size,
                number=layer.number,
            )
            for layer in document.fs_layers
        ]
    return [
        FsLayer(blob_sum=layer.digest, original_ref=origin, size=layer.size, number=i)
        for i, layer in enumerate(document.layers)
    ]
