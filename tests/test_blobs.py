"""Tests for concurrent blob downloads."""

import asyncio

import pytest

from operator_catalog_mirror.core.types import FsLayer, Token
from operator_catalog_mirror.operations.blobs import BatchDownloader, progress_bar
from tests.helpers import BLOBS_URL, FakeRegistryTransport, calculate_digest


def layers_for(transport, count, prefix=b"blob"):
    layers = []
    for i in range(count):
        data = prefix + str(i).encode()
        digest = transport.add_blob(data)
        layers.append(FsLayer(blob_sum=digest, size=len(data)))
    return layers


def test_progress_bar():
    """Test progress bar rendering."""
    assert progress_bar(0, 4, width=8) == "[--------]"
    assert progress_bar(2, 4, width=8) == "[####----]"
    assert progress_bar(4, 4, width=8) == "[########]"
    assert progress_bar(0, 0, width=4) == "[####]"


def test_invalid_concurrency(transport, blob_cache):
    """Test that a concurrency below one is rejected."""
    with pytest.raises(ValueError):
        BatchDownloader(transport, blob_cache, concurrency=0)


@pytest.mark.asyncio
async def test_download_deduplicates(transport, blob_cache):
    """Test that a blob listed under two origins is fetched once."""
    layers = layers_for(transport, 3)
    other_origin = "https://test.registry.io/v2/test/other/blobs/"
    downloader = BatchDownloader(transport, blob_cache)

    result = await downloader.download(
        {BLOBS_URL: layers, other_origin: [layers[0]]}, Token("t")
    )

    assert result.requested == 4
    assert len(result.downloaded) == 3
    assert result.ok
    assert sorted(transport.blob_calls) == sorted(
        BLOBS_URL + layer.blob_sum for layer in layers
    )
    for layer in layers:
        assert await blob_cache.exists(layer.blob_sum, layer.size)


@pytest.mark.asyncio
async def test_download_is_idempotent(transport, blob_cache):
    """Test that cached blobs are not fetched again."""
    layers = layers_for(transport, 5)
    downloader = BatchDownloader(transport, blob_cache)
    await downloader.download({BLOBS_URL: layers}, Token("t"))
    transport.blob_calls.clear()

    result = await downloader.download({BLOBS_URL: layers}, Token("t"))

    assert transport.blob_calls == []
    assert result.skipped == 5
    assert result.outcomes == []


@pytest.mark.asyncio
async def test_download_refetches_size_mismatch(transport, blob_cache):
    """Test that a cached blob with the wrong size is downloaded again."""
    (layer,) = layers_for(transport, 1)
    path = blob_cache.path_for(layer.blob_sum)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"x")

    result = await BatchDownloader(transport, blob_cache).download(
        {BLOBS_URL: [layer]}, Token("t")
    )

    assert len(result.downloaded) == 1
    assert path.stat().st_size == layer.size


@pytest.mark.asyncio
async def test_download_respects_concurrency(blob_cache):
    """Test that no more than the configured number of fetches run at once."""
    transport = FakeRegistryTransport(delay=0.01)
    layers = layers_for(transport, 20)
    downloader = BatchDownloader(transport, blob_cache, concurrency=3)

    result = await downloader.download({BLOBS_URL: layers}, Token("t"))

    assert len(result.downloaded) == 20
    assert transport.max_in_flight <= 3
    assert transport.max_in_flight > 1


@pytest.mark.asyncio
async def test_download_aggregates_failures(transport, blob_cache):
    """Test that one failing blob does not stop the others."""
    layers = layers_for(transport, 4)
    transport.failures[BLOBS_URL + layers[1].blob_sum] = 500
    missing = FsLayer(blob_sum=calculate_digest(b"missing"), size=7)

    result = await BatchDownloader(transport, blob_cache).download(
        {BLOBS_URL: layers + [missing]}, Token("t")
    )

    assert not result.ok
    assert result.failure_count == 2
    assert len(result.downloaded) == 3
    failed = {outcome.digest for outcome in result.failed}
    assert failed == {layers[1].blob_sum, missing.blob_sum}
    assert all(outcome.error for outcome in result.failed)
    assert not await blob_cache.exists(layers[1].blob_sum)


@pytest.mark.asyncio
async def test_download_size_mismatch_fails_blob(transport, blob_cache):
    """Test that a blob shorter than declared is reported as failed."""
    (layer,) = layers_for(transport, 1)
    layer.size += 10

    result = await BatchDownloader(transport, blob_cache).download(
        {BLOBS_URL: [layer]}, Token("t")
    )

    assert result.failure_count == 1
    assert not await blob_cache.exists(layer.blob_sum)


@pytest.mark.asyncio
async def test_download_origin_from_original_ref(transport, blob_cache):
    """Test that an empty origin derives the URL from the layer's image."""
    origin = "https://quay.io/v2/org/bundle/blobs/"
    digest = transport.add_blob(b"bundle", origin)
    layer = FsLayer(
        blob_sum=digest, original_ref="quay.io/org/bundle@sha256:" + "0" * 64
    )

    result = await BatchDownloader(transport, blob_cache).download(
        {"": [layer]}, Token()
    )

    assert result.ok
    assert transport.blob_calls == [origin + digest]


@pytest.mark.asyncio
async def test_download_progress_callbacks(transport, blob_cache):
    """Test sync and async progress callbacks."""
    layers = layers_for(transport, 5)
    sync_calls = []
    async_calls = []

    def on_progress(done, total, message):
        sync_calls.append((done, total, message))

    async def on_progress_async(done, total, message):
        await asyncio.sleep(0)
        async_calls.append((done, total))

    await BatchDownloader(
        transport, blob_cache, progress_every=2, progress_callback=on_progress
    ).download({BLOBS_URL: layers[:3]}, Token("t"))
    await BatchDownloader(
        transport, blob_cache, progress_every=1, progress_callback=on_progress_async
    ).download({BLOBS_URL: layers[3:]}, Token("t"))

    assert [(done, total) for done, total, _ in sync_calls] == [(2, 3), (3, 3)]
    assert sync_calls[-1][2].startswith("100% completed [")
    assert sorted(async_calls) == [(1, 2), (2, 2)]


@pytest.mark.asyncio
async def test_download_cancellation_propagates(blob_cache):
    """Test that cancelling a batch cancels the fetches and leaves no partials."""
    transport = FakeRegistryTransport(delay=10)
    layers = layers_for(transport, 3)
    downloader = BatchDownloader(transport, blob_cache)

    task = asyncio.ensure_future(downloader.download({BLOBS_URL: layers}, Token("t")))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    for layer in layers:
        assert not await blob_cache.exists(layer.blob_sum)
