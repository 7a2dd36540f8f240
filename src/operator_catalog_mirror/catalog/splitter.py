"""Split concatenated catalog.json files into one file per object."""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import FilesystemError, ParseError
from .models import DeclarativeConfig

logger = logging.getLogger(__name__)

CATALOG_FILE = "catalog.json"
UPDATED_CONFIGS_DIR = "updated-configs"


def split_on_boundary(text: str) -> list[str]:
    """Split on the `}\\n{` boundary between pretty-printed objects.

    Spaces are removed before splitting, so string values containing
    spaces come out altered. Kept for compatibility with existing
    updated-configs trees; split_json_stream keeps the original text.

    Args:
        text: Contents of a catalog.json file

    Returns:
        One JSON text per top-level object
    """
    chunks = text.replace(" ", "").strip().split("}\n{")
    if len(chunks) == 1:
        return chunks if chunks[0] else []

    last = len(chunks) - 1
    result = []
    for pos, chunk in enumerate(chunks):
        if pos > 0:
            chunk = "{" + chunk
        if pos < last:
            chunk = chunk + "}"
        result.append(chunk)
    return result


def split_json_stream(text: str) -> list[str]:
    """Split a stream of concatenated JSON values.

    Args:
        text: Contents of a catalog.json file

    Returns:
        The original text of each top-level value, in order

    Raises:
        ParseError: If the stream contains invalid JSON
    """
    decoder = json.JSONDecoder()
    chunks = []
    pos = 0
    end = len(text)

    while True:
        while pos < end and text[pos].isspace():
            pos += 1
        if pos >= end:
            break
        try:
            _, stop = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON stream at offset {pos}: {e}") from e
        chunks.append(text[pos:stop])
        pos = stop

    return chunks


SPLITTERS = {
    "stream": split_json_stream,
    "boundary": split_on_boundary,
}


def _write_chunks(catalog_file: Path, chunks: list[str]) -> None:
    target = catalog_file.parent / UPDATED_CONFIGS_DIR
    try:
        if target.exists():
            shutil.rmtree(target)
        target.mkdir(parents=True)
        for pos, chunk in enumerate(chunks):
            (target / f"uc{pos}.json").write_text(chunk)
    except OSError as e:
        raise FilesystemError(f"Cannot write {target}: {e}") from e


def build_updated_configs(tree_root: str | os.PathLike, mode: str = "stream") -> int:
    """Split every catalog.json below tree_root into updated-configs/uc<N>.json.

    The updated-configs directory beside each catalog.json is recreated,
    so chunks from an earlier, longer catalog do not survive. A catalog.json
    that is not a valid JSON stream is logged and skipped.

    Args:
        tree_root: Directory to walk (usually the extracted "configs" dir)
        mode: "stream" (decoder based) or "boundary" (text based)

    Returns:
        Total number of chunk files written

    Raises:
        ValueError: If mode is unknown
        FilesystemError: If a file cannot be read or written
    """
    if mode not in SPLITTERS:
        raise ValueError(f"Unknown split mode: {mode}")
    split = SPLITTERS[mode]

    total = 0
    for dirpath, dirnames, filenames in os.walk(tree_root):
        dirnames[:] = sorted(d for d in dirnames if d != UPDATED_CONFIGS_DIR)
        if CATALOG_FILE not in filenames:
            continue

        catalog_file = Path(dirpath) / CATALOG_FILE
        try:
            text = catalog_file.read_text()
        except OSError as e:
            raise FilesystemError(f"Cannot read {catalog_file}: {e}") from e

        # YAML catalogs are left alone
        if "{" not in text:
            continue

        try:
            chunks = split(text)
        except ParseError as e:
            logger.warning(f"skipping {catalog_file}: {e}")
            continue
        _write_chunks(catalog_file, chunks)
        logger.debug(f"split {catalog_file} into {len(chunks)} chunks")
        total += len(chunks)

    return total


def read_declarative_config(path: str | os.PathLike) -> DeclarativeConfig:
    """Read one declarative config file (JSON or YAML).

    Raises:
        ParseError: If the file cannot be read or decoded
    """
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ParseError(f"Cannot read {path}: {e}") from e

    data: Any
    try:
        if "{" in text:
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(f"Invalid declarative config {path}: {e}") from e

    return DeclarativeConfig.from_dict(data)


def get_declarative_config_map(
    directory: str | os.PathLike,
) -> dict[str, DeclarativeConfig]:
    """Load the declarative configs of one directory keyed "<name>=<schema>".

    Only regular files directly inside directory are read. Files that do
    not parse are logged and skipped; later files win on duplicate keys.
    """
    configs: dict[str, DeclarativeConfig] = {}
    for path in sorted(Path(directory).iterdir()):
        if not path.is_file():
            continue
        try:
            config = read_declarative_config(path)
        except ParseError as e:
            logger.warning(f"skipping {path}: {e}")
            continue
        configs[config.key] = config
    return configs


def get_packages(configs_dir: str | os.PathLike) -> list[str]:
    """List package names (directory entries) of a configs directory."""
    return sorted(entry.name for entry in Path(configs_dir).iterdir())
