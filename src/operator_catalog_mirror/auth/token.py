"""Registry token exchange."""

import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from ..core.session import create_session
from ..core.types import AUTH_MODES, SyncConfig, Token
from ..exceptions import AuthError
from .credentials import CredentialStore

logger = logging.getLogger(__name__)

REDHAT_REGISTRY = "registry.redhat.io"
QUAY_REGISTRY = "quay.io"

REDHAT_REALM = (
    "https://sso.redhat.com/auth/realms/rhcc/protocol/redhat-docker-v2/auth"
    "?service=docker-registry&client_id=curl&scope=repository:rhel:pull"
)
QUAY_REALM = "https://quay.io/v2/auth"
QUAY_SERVICE = "quay%2Eio"
QUAY_DEFAULT_SCOPE = "repository:openshift-release-dev/ocp-v4.0-art-dev:pull"

# Response field holding the token, per realm style
TOKEN_FIELD = "token"
ACCESS_TOKEN_FIELD = "access_token"


def token_field_for(registry: str) -> str:
    """quay.io answers with `token`, Docker-v2 realms with `access_token`."""
    return TOKEN_FIELD if registry == QUAY_REGISTRY else ACCESS_TOKEN_FIELD


def quay_token_url(account: str = "", scope: Optional[str] = None) -> str:
    """Build the quay.io auth URL with url-encoded account and scope."""
    params = []
    if account:
        params.append(f"account={quote(account, safe='')}")
    params.append(f"service={QUAY_SERVICE}")
    params.append(f"scope={quote(scope or QUAY_DEFAULT_SCOPE, safe='')}")
    return f"{QUAY_REALM}?{'&'.join(params)}"


def token_url(
    registry: str,
    account: str = "",
    scope: Optional[str] = None,
    realms: Optional[dict[str, str]] = None,
) -> str:
    """Resolve the authorization endpoint for a registry host.

    Args:
        registry: Registry hostname
        account: Login name (only used by quay.io)
        scope: Pull scope (only used by quay.io)
        realms: Per-host realm overrides

    Returns:
        Token endpoint URL
    """
    if realms and registry in realms:
        return realms[registry]
    if registry == REDHAT_REGISTRY:
        return REDHAT_REALM
    if registry == QUAY_REGISTRY:
        return quay_token_url(account, scope)
    return f"https://{registry}/auth"


def parse_token_response(
    data: dict[str, Any], field: str, allow_empty: bool = False
) -> Token:
    """Build a Token from a realm response.

    Args:
        data: Decoded JSON response
        field: Preferred field (`token` or `access_token`)
        allow_empty: Return an empty token instead of failing

    Raises:
        AuthError: If no token is present and allow_empty is False
    """
    other = ACCESS_TOKEN_FIELD if field == TOKEN_FIELD else TOKEN_FIELD
    if data.get(field):
        value, source = data[field], field
    elif data.get(other):
        value, source = data[other], other
    else:
        value, source = "", field

    if not value and not allow_empty:
        raise AuthError(f"Token response has no '{field}' field")

    expires_in = data.get("expires_in")
    return Token(
        value=value,
        kind="bearer" if source == TOKEN_FIELD else "access",
        expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        issued_at=data.get("issued_at"),
    )


class TokenProvider:
    """Exchanges registry credentials for short-lived tokens."""

    def __init__(
        self,
        mode: str = "credentials",
        store: Optional[CredentialStore] = None,
        realms: Optional[dict[str, str]] = None,
        timeout: int = 30,
        tls_verify: bool = True,
    ) -> None:
        """Initialize the provider.

        Args:
            mode: "credentials", "anonymous" or "none"
            store: Credential store (defaults to $XDG_RUNTIME_DIR)
            realms: Per-host realm URL overrides
            timeout: Request timeout in seconds
            tls_verify: Verify realm TLS certificates
        """
        if mode not in AUTH_MODES:
            raise ValueError(f"Unknown auth mode: {mode}")
        self.mode = mode
        self.store = store or CredentialStore()
        self.realms = realms or {}
        self.timeout = timeout
        self.tls_verify = tls_verify

    @classmethod
    def from_config(cls, config: SyncConfig) -> "TokenProvider":
        return cls(
            mode=config.auth_mode,
            store=CredentialStore(config.runtime_dir),
            realms=config.auth_realms,
            tls_verify=config.tls_verify,
        )

    async def get_token(self, registry: str, scope: Optional[str] = None) -> Token:
        """Get a token for a registry host.

        Args:
            registry: Registry hostname (may include a port)
            scope: Optional pull scope (used by quay.io)

        Returns:
            Token; empty when the mode is "none" or an anonymous realm
            returned no token

        Raises:
            CredentialError: If credentials are needed but unavailable
            AuthError: If the token exchange fails
        """
        if self.mode == "none":
            logger.debug(f"token exchange disabled for {registry}")
            return Token()

        auth = None
        account = ""
        if self.mode == "credentials":
            loop = asyncio.get_event_loop()
            user, password = await loop.run_in_executor(
                None, self.store.get_credentials, registry
            )
            auth = aiohttp.BasicAuth(user, password)
            account = user

        url = token_url(registry, account, scope, self.realms)
        field = token_field_for(registry)
        logger.info(f"requesting token for {registry}")

        session = await create_session(self.timeout, self.tls_verify)
        try:
            async with session.get(url, auth=auth) as resp:
                body = await resp.text()
                if resp.status >= 300:
                    raise AuthError(
                        f"Token request for {registry} returned HTTP {resp.status}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthError(f"Token request for {registry} failed: {e}") from e
        finally:
            await session.close()

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise AuthError(f"Invalid token response from {registry}: {e}") from e
        if not isinstance(data, dict):
            raise AuthError(f"Invalid token response from {registry}")

        return parse_token_response(data, field, allow_empty=self.mode == "anonymous")
