"""Utility functions for the operator catalog mirror."""

from .digest import digest_algorithm, digest_hex, new_hasher, verify_hasher

__all__ = ["digest_algorithm", "digest_hex", "new_hasher", "verify_hasher"]
