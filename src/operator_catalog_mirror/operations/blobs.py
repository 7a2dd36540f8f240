"""Concurrent blob downloads into the local blob cache."""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from ..cache.blob_store import BlobCache
from ..core.transport import RegistryTransport
from ..core.types import BatchResult, BlobOutcome, FsLayer, Token
from ..exceptions import ParseError, TransportError
from .references import blobs_url_from_string

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8
BAR_WIDTH = 60

ProgressCallback = Callable[[int, int, str], Any]


def progress_bar(done: int, total: int, width: int = BAR_WIDTH) -> str:
    """Render a text progress bar like `[#####-----]`."""
    filled = width if total == 0 else int(width * done / total)
    return "[" + "#" * filled + "-" * (width - filled) + "]"


class BatchDownloader:
    """Fetches missing blobs with bounded concurrency."""

    def __init__(
        self,
        transport: RegistryTransport,
        cache: BlobCache,
        concurrency: int = DEFAULT_CONCURRENCY,
        progress_every: int = 10,
        progress_callback: Optional[ProgressCallback] = None,
        verify: bool = False,
    ) -> None:
        """Initialize the downloader.

        Args:
            transport: Registry transport used for blob requests
            cache: Blob cache receiving the downloads
            concurrency: Maximum number of in-flight requests
            progress_every: Report progress every N completed blobs
            progress_callback: Optional progress callback (sync or async),
                called as callback(completed, total, message)
            verify: Verify blob digests before committing them
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.transport = transport
        self.cache = cache
        self.concurrency = concurrency
        self.progress_every = max(1, progress_every)
        self.progress_callback = progress_callback
        self.verify = verify

    async def plan(
        self, blobs_by_origin: dict[str, list[FsLayer]]
    ) -> list[tuple[str, FsLayer]]:
        """Select the blobs that still have to be fetched.

        Layers are deduplicated by blob sum across all origins, and blobs
        already cached with the expected size are dropped.

        Args:
            blobs_by_origin: Blobs URL prefix -> layers; an empty prefix means
                the URL is derived from each layer's original_ref

        Returns:
            (origin, layer) pairs to fetch
        """
        seen: set[str] = set()
        pending: list[tuple[str, FsLayer]] = []

        for origin, layers in blobs_by_origin.items():
            for layer in layers:
                if layer.blob_sum in seen:
                    continue
                seen.add(layer.blob_sum)
                try:
                    if await self.cache.exists(layer.blob_sum, layer.size):
                        continue
                except ValueError:
                    # malformed digest, reported as a failed outcome later
                    pass
                pending.append((origin, layer))

        return pending

    async def download(
        self,
        blobs_by_origin: dict[str, list[FsLayer]],
        token: Token,
        concurrency: Optional[int] = None,
    ) -> BatchResult:
        """Download every missing blob.

        Args:
            blobs_by_origin: Blobs URL prefix -> layers
            token: Registry token for the blob requests
            concurrency: Override of the in-flight request limit

        Returns:
            BatchResult with one outcome per fetched blob

        Raises:
            FilesystemError: If the blob cache cannot be written
        """
        requested = sum(len(layers) for layers in blobs_by_origin.values())
        pending = await self.plan(blobs_by_origin)
        result = BatchResult(requested=requested, skipped=requested - len(pending))

        if not pending:
            logger.debug(f"all {requested} blobs already cached")
            return result

        total = len(pending)
        logger.info(f"downloading {total} blobs")
        semaphore = asyncio.Semaphore(concurrency or self.concurrency)
        completed = 0

        async def fetch(origin: str, layer: FsLayer) -> BlobOutcome:
            """Fetch a single blob with concurrency control."""
            nonlocal completed
            async with semaphore:
                outcome = await self._fetch_one(origin, layer, token)
            completed += 1
            if completed % self.progress_every == 0 or completed == total:
                await self._report(completed, total)
            return outcome

        tasks = [
            asyncio.ensure_future(fetch(origin, layer)) for origin, layer in pending
        ]
        try:
            result.outcomes = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if result.failure_count:
            logger.warning(
                f"{result.failure_count} of {total} blobs failed to download"
            )
        return result

    async def _fetch_one(
        self, origin: str, layer: FsLayer, token: Token
    ) -> BlobOutcome:
        url = origin
        try:
            if not url:
                url = blobs_url_from_string(layer.original_ref or "")
            url = url + layer.blob_sum
            size = await self.cache.write_stream(
                layer.blob_sum,
                self.transport.fetch_blob(url, token),
                expected_size=layer.size,
                verify=self.verify,
            )
        except (TransportError, ParseError, ValueError) as e:
            logger.error(f"downloading blob {url}: {e}")
            return BlobOutcome(
                digest=layer.blob_sum, url=url, status="failed", error=str(e)
            )

        logger.info(f"writing blob {layer.blob_sum.split(':')[-1][:12]}")
        return BlobOutcome(
            digest=layer.blob_sum, url=url, status="downloaded", size=size
        )

    async def _report(self, completed: int, total: int) -> None:
        percent = int(100 * completed / total)
        message = f"{percent}% completed {progress_bar(completed, total)}"
        logger.info(message)

        if self.progress_callback:
            if inspect.iscoroutinefunction(self.progress_callback):
                await self.progress_callback(completed, total, message)
            else:
                self.progress_callback(completed, total, message)
