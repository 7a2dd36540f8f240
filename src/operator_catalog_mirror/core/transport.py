"""Registry transport: authenticated manifest and blob requests."""

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

import aiohttp

from ..exceptions import TransportError
from .session import create_session
from .types import ACCEPTED_MANIFEST_TYPES, Token

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB


@runtime_checkable
class RegistryTransport(Protocol):
    """Capability used by the synchronization engine to talk to a registry."""

    async def fetch_manifest(self, url: str, token: Token) -> str:
        """Return the raw manifest body found at url."""
        ...

    def fetch_blob(self, url: str, token: Token) -> AsyncIterator[bytes]:
        """Stream the blob found at url."""
        ...


def _auth_headers(token: Optional[Token]) -> dict[str, str]:
    return token.headers() if token else {}


class HttpRegistryTransport:
    """Registry transport over a single aiohttp session."""

    def __init__(
        self,
        timeout: int = 300,
        tls_verify: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout: Request timeout in seconds
            tls_verify: Verify registry TLS certificates
            session: Existing session to reuse (not closed by this transport)
        """
        self.timeout = timeout
        self.tls_verify = tls_verify
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpRegistryTransport":
        """Enter async context manager."""
        if not self.session:
            self.session = await create_session(self.timeout, self.tls_verify)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise TransportError("Transport used outside of its async context")
        return self.session

    async def fetch_manifest(self, url: str, token: Token) -> str:
        """Retrieve a manifest or manifest list.

        Args:
            url: Full manifests URL (https://host/v2/ns/name/manifests/ref)
            token: Registry token; omitted from the request when empty

        Returns:
            Raw response body

        Raises:
            TransportError: On network failure or a non-2xx response
        """
        headers = {"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}
        headers.update(_auth_headers(token))
        session = self._require_session()
        logger.debug(f"GET manifest {url}")

        try:
            async with session.get(url, headers=headers) as resp:
                if resp.status >= 300:
                    raise TransportError(
                        f"GET {url} returned HTTP {resp.status}", status=resp.status
                    )
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to get manifest {url}: {e}") from e

    async def fetch_blob(self, url: str, token: Token) -> AsyncIterator[bytes]:
        """Stream a blob in chunks.

        Args:
            url: Full blob URL (https://host/v2/ns/name/blobs/sha256:...)
            token: Registry token; omitted from the request when empty

        Yields:
            Chunks of blob data

        Raises:
            TransportError: On network failure or a non-2xx response
        """
        session = self._require_session()
        try:
            async with session.get(url, headers=_auth_headers(token)) as resp:
                if resp.status >= 300:
                    raise TransportError(
                        f"GET {url} returned HTTP {resp.status}", status=resp.status
                    )
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to get blob {url}: {e}") from e
