"""Content-addressed blob store sharded by digest prefix."""

import logging
import os
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from ..exceptions import FilesystemError, TransportError
from ..utils.digest import digest_hex, new_hasher, verify_hasher

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


class BlobCache:
    """Local blob store laid out as `<root>/<hex[0:2]>/<hex>`."""

    def __init__(self, root: str | os.PathLike) -> None:
        self.root = Path(root)

    def shard_dir(self, digest: str) -> Path:
        """Directory holding a blob (first two hex characters of the digest)."""
        hex_part = digest_hex(digest)
        if len(hex_part) < 2:
            raise ValueError(f"Digest too short to shard: {digest!r}")
        return self.root / hex_part[:2]

    def path_for(self, digest: str) -> Path:
        """Final path of a blob."""
        return self.shard_dir(digest) / digest_hex(digest)

    async def exists(self, digest: str, expected_size: int | None = None) -> bool:
        """Check whether a complete copy of a blob is cached.

        Args:
            digest: Blob digest ("sha256:<hex>")
            expected_size: Manifest-declared size; a mismatch counts as absent

        Returns:
            True if the blob file exists (with the expected size, when known)
        """
        path = self.path_for(digest)
        try:
            size = await aiofiles.os.path.getsize(path)
        except OSError:
            return False

        if expected_size is not None and size != expected_size:
            logger.debug(
                f"blob {path.name[:12]} size {size} != expected {expected_size}"
            )
            return False
        return True

    async def write(self, digest: str, data: bytes) -> Path:
        """Write a complete blob."""

        async def single() -> AsyncIterator[bytes]:
            yield data

        await self.write_stream(digest, single())
        return self.path_for(digest)

    async def write_stream(
        self,
        digest: str,
        chunks: AsyncIterator[bytes],
        expected_size: int | None = None,
        verify: bool = False,
    ) -> int:
        """Stream a blob into the cache.

        Data goes to `<hex>.partial` and is renamed over the final path once
        complete, so an interrupted write never leaves a truncated blob.

        Args:
            digest: Blob digest
            chunks: Async iterator of blob data
            expected_size: Size the blob must have, when known
            verify: Check the content digest before committing

        Returns:
            Number of bytes written

        Raises:
            TransportError: If the stream fails or the size/digest mismatches
            FilesystemError: If the cache cannot be written
        """
        path = self.path_for(digest)
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        hasher = new_hasher(digest) if verify else None
        written = 0

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in chunks:
                    await f.write(chunk)
                    written += len(chunk)
                    if hasher:
                        hasher.update(chunk)

            if expected_size is not None and written != expected_size:
                raise TransportError(
                    f"blob {digest} has {written} bytes, expected {expected_size}"
                )
            if hasher:
                try:
                    verify_hasher(hasher, digest)
                except ValueError as e:
                    raise TransportError(f"blob {digest}: {e}") from e

            await aiofiles.os.replace(partial, path)
        except OSError as e:
            raise FilesystemError(f"Cannot write blob {path}: {e}") from e
        finally:
            if await aiofiles.os.path.exists(partial):
                await aiofiles.os.remove(partial)

        logger.debug(f"writing blob {path.name}")
        return written
