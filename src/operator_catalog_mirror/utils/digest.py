"""Digest helpers for content-addressed blobs."""

import hashlib

DEFAULT_ALGORITHM = "sha256"


def digest_algorithm(digest: str) -> str:
    """Algorithm part of a digest; bare hex strings are sha256."""
    return digest.split(":", 1)[0] if ":" in digest else DEFAULT_ALGORITHM


def digest_hex(digest: str) -> str:
    """Strip the algorithm prefix from a digest.

    Args:
        digest: Digest string (e.g., "sha256:abc123") or a bare hex string

    Returns:
        The hex part of the digest

    Raises:
        ValueError: If the hex part is empty
    """
    hex_part = digest.split(":", 1)[1] if ":" in digest else digest
    if not hex_part:
        raise ValueError(f"Invalid digest: {digest!r}")
    return hex_part


def new_hasher(digest: str) -> "hashlib._Hash":
    """Create a hasher matching the algorithm of an expected digest.

    Raises:
        ValueError: If the algorithm is not supported
    """
    algorithm = digest_algorithm(digest)
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported algorithm: {algorithm}")
    return hashlib.new(algorithm)


def verify_hasher(hasher: "hashlib._Hash", expected_digest: str) -> str:
    """Check streamed content against its expected digest.

    Args:
        hasher: Hasher fed with the whole content
        expected_digest: Digest the content must have

    Returns:
        The computed digest ("algorithm:hex")

    Raises:
        ValueError: If the computed digest differs from expected_digest
    """
    actual = f"{digest_algorithm(expected_digest)}:{hasher.hexdigest()}"
    if actual != expected_digest:
        raise ValueError(f"digest mismatch: {actual} != {expected_digest}")
    return actual
