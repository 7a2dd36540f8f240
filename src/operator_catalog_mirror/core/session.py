"""aiohttp session helpers."""

import json
from typing import Any

import aiohttp

from ..exceptions import ParseError

USER_AGENT = "containers/5.29.1-dev (github.com/containers/image)"


async def create_session(
    timeout: int = 300, tls_verify: bool = True
) -> aiohttp.ClientSession:
    """Create a client session for registry requests.

    Args:
        timeout: Total request timeout in seconds
        tls_verify: Verify server certificates

    Returns:
        A new aiohttp session; the caller owns and closes it
    """
    connector = None if tls_verify else aiohttp.TCPConnector(ssl=False)
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers={"User-Agent": USER_AGENT},
    )


def parse_json_response(body: str, what: str = "response") -> dict[str, Any]:
    """Decode a JSON object returned by the registry.

    Raises:
        ParseError: If the body is not a JSON object
    """
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {what}: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object in {what}")
    return data
