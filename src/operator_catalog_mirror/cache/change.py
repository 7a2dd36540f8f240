"""Manifest change detection against the last synchronized copy."""

import json
import logging
import os
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..core.session import parse_json_response
from ..exceptions import FilesystemError

logger = logging.getLogger(__name__)


async def _read_previous(path: Path) -> Any | None:
    try:
        async with aiofiles.open(path, "r") as f:
            content = await f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"cannot read previous manifest {path}: {e}")
        return None

    try:
        return json.loads(content)
    except json.JSONDecodeError:
        logger.warning(f"previous manifest {path} is not valid JSON")
        return None


class ChangeDetector:
    """Decides whether a freshly fetched manifest requires a resync."""

    async def changed(
        self,
        manifest: str,
        manifest_path: str | os.PathLike,
        cache_dir: str | os.PathLike | None = None,
    ) -> bool:
        """Compare a manifest with the stored copy without recording it.

        Raises:
            ParseError: If the new manifest is not a JSON object
        """
        current = parse_json_response(manifest, "manifest")
        if cache_dir is not None and not await aiofiles.os.path.isdir(cache_dir):
            logger.debug(f"cache directory {cache_dir} missing")
            return True
        previous = await _read_previous(Path(manifest_path))
        return previous is None or previous != current

    async def check(
        self,
        manifest: str,
        manifest_path: str | os.PathLike,
        cache_dir: str | os.PathLike | None = None,
    ) -> bool:
        """Compare a manifest with the stored copy and record it when changed.

        Args:
            manifest: Freshly fetched manifest body
            manifest_path: Where the previous manifest is stored
            cache_dir: Extracted cache directory; its absence forces a change

        Returns:
            True when the manifest differs (or nothing usable is on disk).
            The new manifest is already written to manifest_path by then.

        Raises:
            ParseError: If the new manifest is not a JSON object
            FilesystemError: If the manifest cannot be written
        """
        changed = await self.changed(manifest, manifest_path, cache_dir)
        if changed:
            await self.record(manifest, manifest_path)
        return changed

    async def record(self, manifest: str, manifest_path: str | os.PathLike) -> None:
        """Store a manifest as the last synchronized copy.

        Raises:
            FilesystemError: If the manifest cannot be written
        """
        manifest_path = Path(manifest_path)
        try:
            await aiofiles.os.makedirs(manifest_path.parent, exist_ok=True)
            async with aiofiles.open(manifest_path, "w") as f:
                await f.write(manifest)
        except OSError as e:
            raise FilesystemError(f"Cannot write manifest {manifest_path}: {e}") from e
        logger.debug(f"stored manifest {manifest_path}")
