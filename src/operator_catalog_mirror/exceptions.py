"""Custom exceptions for the operator catalog mirror."""


class MirrorError(Exception):
    """Base exception for all mirror-related errors."""

    pass


class CredentialError(MirrorError):
    """Raised when registry credentials cannot be located or decoded."""

    pass


class AuthError(MirrorError):
    """Raised when exchanging credentials for a registry token fails."""

    pass


class TransportError(MirrorError):
    """Raised when a manifest or blob request fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ParseError(MirrorError):
    """Raised when a manifest, image reference or declarative config is malformed."""

    pass


class ExtractionError(MirrorError):
    """Raised when a cached layer cannot be unpacked."""

    pass


class FilesystemError(MirrorError):
    """Raised when cache paths cannot be created or written."""

    pass
