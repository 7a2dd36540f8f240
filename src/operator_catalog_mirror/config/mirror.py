"""Mirror configuration loading (ImageSetConfiguration operators)."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from ..core.types import IncludeChannel, Operator, Package
from ..exceptions import ParseError

logger = logging.getLogger(__name__)


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ParseError(f"{what} must be a mapping")
    return data


def _require_name(data: dict[str, Any], what: str) -> str:
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ParseError(f"{what} has no name")
    return name


def _parse_channel(data: Any) -> IncludeChannel:
    data = _require_mapping(data, "channel")
    return IncludeChannel(
        name=_require_name(data, "channel"),
        min_version=data.get("minVersion"),
        max_version=data.get("maxVersion"),
        min_bundle=data.get("minBundle"),
    )


def _parse_package(data: Any) -> Package:
    data = _require_mapping(data, "package")
    channels = data.get("channels")
    return Package(
        name=_require_name(data, "package"),
        channels=[_parse_channel(c) for c in channels] if channels else None,
        min_version=data.get("minVersion"),
        max_version=data.get("maxVersion"),
        min_bundle=data.get("minBundle"),
    )


def _parse_operator(data: Any) -> Operator:
    data = _require_mapping(data, "operator")
    catalog = data.get("catalog")
    if not isinstance(catalog, str) or not catalog:
        raise ParseError("operator entry has no catalog")
    packages = data.get("packages")
    return Operator(
        catalog=catalog,
        packages=[_parse_package(p) for p in packages] if packages else None,
    )


def parse_mirror_config(text: str) -> list[Operator]:
    """Parse mirror configuration text into operator entries.

    Accepts an ImageSetConfiguration (mirror.operators) or a bare list of
    operators, in YAML or JSON.

    Args:
        text: Configuration contents

    Returns:
        list[Operator]: Configured operator catalogs, in file order

    Raises:
        ParseError: If the text is not valid YAML or has the wrong shape

    Examples:
        operators = parse_mirror_config(
            "mirror:\\n  operators:\\n    - catalog: quay.io/org/index:v1\\n"
        )
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid mirror configuration: {e}") from e

    if isinstance(data, dict):
        mirror = data.get("mirror") or {}
        if not isinstance(mirror, dict):
            raise ParseError("mirror must be a mapping")
        data = mirror.get("operators") or []

    if not isinstance(data, list):
        raise ParseError("mirror configuration must list operators")

    operators = [_parse_operator(item) for item in data]
    logger.debug(f"parsed {len(operators)} operator catalogs")
    return operators


def load_mirror_config(path: str | os.PathLike) -> list[Operator]:
    """Load operator entries from a mirror configuration file.

    Raises:
        ParseError: If the file cannot be read or parsed
    """
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ParseError(f"Cannot read mirror configuration {path}: {e}") from e
    return parse_mirror_config(text)
