"""Tests for the blob cache, change detection and digest helpers."""

import json

import pytest

from operator_catalog_mirror.cache.change import ChangeDetector
from operator_catalog_mirror.exceptions import ParseError, TransportError
from operator_catalog_mirror.utils.digest import (
    digest_algorithm,
    digest_hex,
    new_hasher,
    verify_hasher,
)
from tests.helpers import calculate_digest

DATA = b"operator catalog layer"
DIGEST = calculate_digest(DATA)


async def chunks_of(*parts: bytes):
    for part in parts:
        yield part


def test_digest_helpers():
    """Test digest prefix handling."""
    assert digest_algorithm(DIGEST) == "sha256"
    assert digest_algorithm("sha512:abc") == "sha512"
    assert digest_algorithm("abc123") == "sha256"
    assert digest_hex(DIGEST) == DIGEST.split(":")[1]
    assert digest_hex("abc123") == "abc123"
    with pytest.raises(ValueError):
        digest_hex("sha256:")
    with pytest.raises(ValueError):
        new_hasher("nosuchalgo:abc")


def test_verify_hasher():
    """Test incremental digest verification."""
    hasher = new_hasher(DIGEST)
    hasher.update(DATA[:5])
    hasher.update(DATA[5:])
    assert verify_hasher(hasher, DIGEST) == DIGEST

    other = new_hasher(DIGEST)
    other.update(b"tampered")
    with pytest.raises(ValueError):
        verify_hasher(other, DIGEST)


def test_blob_path_layout(blob_cache):
    """Test the <hex[0:2]>/<hex> layout."""
    hex_part = digest_hex(DIGEST)
    assert blob_cache.path_for(DIGEST) == blob_cache.root / hex_part[:2] / hex_part


@pytest.mark.asyncio
async def test_write_and_exists(blob_cache):
    """Test writing a blob and checking it with its size."""
    assert not await blob_cache.exists(DIGEST)

    path = await blob_cache.write(DIGEST, DATA)

    assert path.read_bytes() == DATA
    assert await blob_cache.exists(DIGEST)
    assert await blob_cache.exists(DIGEST, len(DATA))
    assert not await blob_cache.exists(DIGEST, len(DATA) + 1)


@pytest.mark.asyncio
async def test_write_stream_verifies_size(blob_cache):
    """Test that a short stream is rejected and leaves no file behind."""
    with pytest.raises(TransportError):
        await blob_cache.write_stream(
            DIGEST, chunks_of(DATA[:5]), expected_size=len(DATA)
        )

    path = blob_cache.path_for(DIGEST)
    assert not path.exists()
    assert list(path.parent.iterdir()) == []


@pytest.mark.asyncio
async def test_write_stream_verifies_digest(blob_cache):
    """Test digest verification of streamed content."""
    with pytest.raises(TransportError):
        await blob_cache.write_stream(DIGEST, chunks_of(b"tampered"), verify=True)
    assert not await blob_cache.exists(DIGEST)

    written = await blob_cache.write_stream(
        DIGEST, chunks_of(DATA[:4], DATA[4:]), expected_size=len(DATA), verify=True
    )
    assert written == len(DATA)
    assert await blob_cache.exists(DIGEST, len(DATA))


@pytest.mark.asyncio
async def test_write_stream_replaces_truncated_blob(blob_cache):
    """Test that a blob with the wrong size is overwritten."""
    path = blob_cache.path_for(DIGEST)
    path.parent.mkdir(parents=True)
    path.write_bytes(DATA[:3])

    assert not await blob_cache.exists(DIGEST, len(DATA))
    await blob_cache.write_stream(DIGEST, chunks_of(DATA), expected_size=len(DATA))
    assert path.read_bytes() == DATA


@pytest.mark.asyncio
async def test_change_detector_first_run(tmp_path):
    """Test that a missing previous manifest counts as changed and is stored."""
    manifest_path = tmp_path / "index" / "v1" / "amd64" / "manifest.json"
    body = json.dumps({"layers": [{"digest": "sha256:1"}]})

    assert await ChangeDetector().check(body, manifest_path)
    assert manifest_path.read_text() == body


@pytest.mark.asyncio
async def test_change_detector_compare_then_record(tmp_path):
    """Test that comparing alone leaves the stored manifest untouched."""
    manifest_path = tmp_path / "amd64" / "manifest.json"
    detector = ChangeDetector()

    assert await detector.changed('{"a": 1}', manifest_path)
    assert not manifest_path.exists()

    await detector.record('{"a": 1}', manifest_path)
    assert json.loads(manifest_path.read_text()) == {"a": 1}
    assert not await detector.changed('{"a": 1}', manifest_path)


@pytest.mark.asyncio
async def test_change_detector_structural_equality(tmp_path):
    """Test that formatting differences are not a change."""
    manifest_path = tmp_path / "manifest.json"
    manifest_path.write_text('{"a": 1, "b": [1, 2]}')
    detector = ChangeDetector()

    assert not await detector.check('{\n  "b": [1, 2],\n  "a": 1\n}', manifest_path)
    assert manifest_path.read_text() == '{"a": 1, "b": [1, 2]}'

    assert await detector.check('{"a": 2, "b": [1, 2]}', manifest_path)
    assert json.loads(manifest_path.read_text()) == {"a": 2, "b": [1, 2]}


@pytest.mark.asyncio
async def test_change_detector_missing_cache_dir(tmp_path):
    """Test that a missing cache directory forces a change."""
    manifest_path = tmp_path / "manifest.json"
    manifest_path.write_text('{"a": 1}')
    cache_dir = tmp_path / "cache"
    detector = ChangeDetector()

    assert await detector.check('{"a": 1}', manifest_path, cache_dir)
    cache_dir.mkdir()
    assert not await detector.check('{"a": 1}', manifest_path, cache_dir)


@pytest.mark.asyncio
async def test_change_detector_corrupt_previous(tmp_path):
    """Test that an unreadable previous manifest counts as changed."""
    manifest_path = tmp_path / "manifest.json"
    manifest_path.write_text("{truncated")

    assert await ChangeDetector().check('{"a": 1}', manifest_path)
    assert manifest_path.read_text() == '{"a": 1}'


@pytest.mark.asyncio
async def test_change_detector_rejects_invalid_manifest(tmp_path):
    """Test that a non-JSON manifest raises ParseError and is not stored."""
    manifest_path = tmp_path / "manifest.json"
    with pytest.raises(ParseError):
        await ChangeDetector().check("<html>", manifest_path)
    assert not manifest_path.exists()
