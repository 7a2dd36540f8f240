"""Layer extraction from the blob cache into per-image cache directories."""

import asyncio
import logging
import os
import shutil
import tarfile
import zlib
from pathlib import Path
from typing import Iterable

import aiofiles.os

from ..cache.blob_store import BlobCache
from ..core.types import FsLayer
from ..exceptions import ExtractionError
from ..utils.digest import digest_hex

logger = logging.getLogger(__name__)

CONFIGS_DIR = "configs"
RELEASE_MANIFESTS_DIR = "release-manifests"

# Extracted layers live in <cache>/<first 6 hex chars of the digest>
LAYER_DIR_LENGTH = 6
STAGING_SUFFIX = ".extracting"


def layer_dir_name(digest: str) -> str:
    """Directory name of an extracted layer."""
    return digest_hex(digest)[:LAYER_DIR_LENGTH]


def unpack_blob(blob_path: Path, target: Path) -> None:
    """Unpack a (gzip-compressed) tar blob into target (sync helper).

    The archive is unpacked into a staging sibling that is renamed into
    place, so target only ever exists fully extracted.

    Raises:
        ExtractionError: If the blob is missing or not a readable archive
    """
    staging = target.with_name(target.name + STAGING_SUFFIX)
    try:
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        with tarfile.open(blob_path, "r:*") as tar:
            tar.extractall(staging, filter="tar")
        staging.rename(target)
    except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
        shutil.rmtree(staging, ignore_errors=True)
        raise ExtractionError(f"Failed to untar {blob_path.name}: {e}") from e


class LayerExtractor:
    """Unpacks cached layers, once per layer and cache directory."""

    def __init__(self, cache: BlobCache) -> None:
        self.cache = cache

    async def extract(
        self, dest_cache_dir: str | os.PathLike, layers: Iterable[FsLayer]
    ) -> list[Path]:
        """Untar layers into dest_cache_dir.

        Args:
            dest_cache_dir: Per-image-version cache directory
            layers: Layers to unpack (duplicates are ignored)

        Returns:
            Directories extracted by this call; layers already present and
            layers that failed to unpack are not included
        """
        dest = Path(dest_cache_dir)
        seen: set[str] = set()
        extracted: list[Path] = []
        loop = asyncio.get_event_loop()

        for layer in layers:
            name = layer_dir_name(layer.blob_sum)
            if name in seen:
                continue
            seen.add(name)

            target = dest / name
            if await aiofiles.os.path.exists(target):
                logger.info(f"cache exists {target}")
                continue

            logger.info(f"untarring file {name}")
            blob_path = self.cache.path_for(layer.blob_sum)
            try:
                await loop.run_in_executor(None, unpack_blob, blob_path, target)
            except ExtractionError as e:
                logger.warning(f"skipping layer {name}: {e}")
                continue
            extracted.append(target)

        return extracted


def _find_dir(root: Path, name: str) -> str:
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning(f"{e}")
        return ""

    for entry in entries:
        if not entry.is_dir() or entry.name.endswith(STAGING_SUFFIX):
            continue
        try:
            with os.scandir(entry.path) as it:
                sub_entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"{e}")
            continue
        for sub_entry in sub_entries:
            if sub_entry.name == name and sub_entry.is_dir():
                return sub_entry.path
    return ""


async def find_dir(root: str | os.PathLike, name: str = CONFIGS_DIR) -> str:
    """Find a directory two levels below root (root/<layer>/<name>).

    Args:
        root: Extracted cache directory
        name: Directory to look for ("configs" or "release-manifests")

    Returns:
        Full path of the directory, or "" when not found
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, _find_dir, Path(root), name)
