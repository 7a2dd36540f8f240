"""Catalog index: flat JSON map of catalog key -> configs directory."""

import json
import logging
import os
import tempfile
from pathlib import Path

from ..exceptions import FilesystemError, ParseError

logger = logging.getLogger(__name__)


def catalog_key(
    configs_dir: str | os.PathLike,
    working_dir: str | os.PathLike,
    default_arch: str = "amd64",
) -> str:
    """Index key for an extracted configs directory.

    configs_dir is expected at <working_dir>/<name>/<version>/<arch>/cache/...
    The key is "<name>:<version>", with "/<arch>" appended for platforms
    other than default_arch.

    Raises:
        ValueError: If configs_dir does not live in that layout
    """
    relative = Path(os.path.abspath(configs_dir)).relative_to(
        os.path.abspath(working_dir)
    )
    parts = relative.parts
    if len(parts) < 4:
        raise ValueError(f"{configs_dir} is not inside a platform cache directory")

    name, version, arch = parts[0], parts[1], parts[2]
    key = f"{name}:{version}"
    if arch != default_arch:
        key = f"{key}/{arch}"
    return key


class CatalogIndex:
    """Key -> configs path index consumed by catalog viewers."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, str]:
        """Read the index; a missing file is an empty index.

        Raises:
            ParseError: If the file is not a JSON object of strings
            FilesystemError: If the file cannot be read
        """
        try:
            content = self.path.read_text()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise FilesystemError(f"Cannot read catalog index {self.path}: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid catalog index {self.path}: {e}") from e

        if not isinstance(data, dict) or not all(
            isinstance(v, str) for v in data.values()
        ):
            raise ParseError(f"Catalog index {self.path} must map keys to paths")
        return data

    def write(self, mapping: dict[str, str]) -> None:
        """Replace the index atomically.

        Raises:
            FilesystemError: If the file cannot be written
        """
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(mapping, f, indent=2, sort_keys=True)
                os.replace(tmp, self.path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as e:
            raise FilesystemError(
                f"Cannot write catalog index {self.path}: {e}"
            ) from e
        logger.debug(f"wrote {len(mapping)} entries to {self.path}")

    def update(self, entries: dict[str, str]) -> dict[str, str]:
        """Merge entries into the stored index and write it back once.

        A corrupt index is replaced by the new entries.

        Raises:
            FilesystemError: If the index cannot be read or written
        """
        try:
            mapping = self.read()
        except ParseError as e:
            logger.warning(f"rebuilding catalog index: {e}")
            mapping = {}
        mapping.update(entries)
        self.write(mapping)
        return mapping
