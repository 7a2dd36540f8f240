"""Image reference parsing and registry URL construction."""

from ..core.types import ImageReference
from ..exceptions import ParseError


def parse_image_reference(catalog: str) -> ImageReference:
    """Parse a catalog image string into its components.

    Args:
        catalog: Image string
            - tag: "registry.redhat.io/redhat/redhat-operator-index:v4.15"
            - digest: "quay.io/org/index@sha256:abc123..."
            - nested namespace: "quay.io/org/team/index:v1"

    Returns:
        ImageReference

    Raises:
        ParseError: If the string has fewer than three path segments,
            an empty segment, or no tag/digest

    Examples:
        ref = parse_image_reference("test.registry.io/test/operator-index:v0.0.1")
        # ref.registry == "test.registry.io", ref.name == "operator-index"
    """
    if not isinstance(catalog, str) or not catalog.strip():
        raise ParseError("Empty catalog reference")

    parts = catalog.strip().split("/")
    if len(parts) < 3 or any(not part for part in parts):
        raise ParseError(
            f"Catalog reference must be registry/namespace/name:tag, got {catalog!r}"
        )

    registry = parts[0]
    namespace = "/".join(parts[1:-1])
    last = parts[-1]

    if "@" in last:
        name, version = last.split("@", 1)
    elif ":" in last:
        name, version = last.rsplit(":", 1)
    else:
        raise ParseError(f"Catalog reference {catalog!r} has no tag or digest")

    if not name or not version:
        raise ParseError(f"Catalog reference {catalog!r} has an empty name or tag")

    return ImageReference(
        registry=registry, namespace=namespace, name=name, version=version
    )


def image_manifest_url(ref: ImageReference, reference: str | None = None) -> str:
    """Build the manifests URL for an image.

    Args:
        ref: Image reference
        reference: Tag or digest to use instead of ref.version

    Returns:
        e.g. "https://registry.redhat.io/v2/redhat/certified-operator-index/manifests/v4.12"
    """
    return (
        f"https://{ref.registry}/v2/{ref.repository}/manifests/"
        f"{reference or ref.version}"
    )


def blobs_url(ref: ImageReference) -> str:
    """Build the blobs URL prefix for an image (ends with a slash)."""
    return f"https://{ref.registry}/v2/{ref.repository}/blobs/"


def blobs_url_from_string(image: str) -> str:
    """Build the blobs URL prefix from an image string.

    Args:
        image: "registry/namespace/name@sha256:..." or "registry/namespace/name:tag"

    Returns:
        e.g. "https://test.registry.io/v2/test/some-operator/blobs/"

    Raises:
        ParseError: If the image string is malformed
    """
    parts = image.split("/")
    if len(parts) < 3 or any(not part for part in parts):
        raise ParseError(f"Cannot derive blobs URL from {image!r}")

    name = parts[-1].split("@", 1)[0].split(":", 1)[0]
    namespace = "/".join(parts[1:-1])
    return f"https://{parts[0]}/v2/{namespace}/{name}/blobs/"
