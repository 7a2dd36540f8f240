"""Registry credentials and token exchange."""

from .credentials import CredentialStore, decode_auth
from .token import TokenProvider, parse_token_response, token_url

__all__ = [
    "CredentialStore",
    "TokenProvider",
    "decode_auth",
    "parse_token_response",
    "token_url",
]
