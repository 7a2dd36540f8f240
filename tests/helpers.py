"""Test helpers: fake registry transport and catalog image builders."""

import asyncio
import hashlib
import io
import json
import tarfile
from typing import AsyncIterator

from operator_catalog_mirror.core.types import (
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V2,
    Token,
)
from operator_catalog_mirror.exceptions import TransportError

REGISTRY = "test.registry.io"
NAMESPACE = "test"
INDEX_NAME = "operator-index"
VERSION = "v0.0.1"
CATALOG = f"{REGISTRY}/{NAMESPACE}/{INDEX_NAME}:{VERSION}"

BASE_URL = f"https://{REGISTRY}/v2/{NAMESPACE}/{INDEX_NAME}"
BLOBS_URL = f"{BASE_URL}/blobs/"


def calculate_digest(data: bytes) -> str:
    """sha256 digest of data in "sha256:<hex>" form."""
    return "sha256:" + hashlib.sha256(data).hexdigest()


CATALOG_JSON = (
    '{\n    "schema": "olm.package",\n    "name": "etcd",\n'
    '    "defaultChannel": "stable"\n}\n'
    '{\n    "schema": "olm.channel",\n    "name": "stable",\n'
    '    "package": "etcd",\n    "entries": [\n'
    '        {\n            "name": "etcd.v0.9.4"\n        }\n    ]\n}\n'
    '{\n    "schema": "olm.bundle",\n    "name": "etcd.v0.9.4",\n'
    '    "package": "etcd",\n    "image": "quay.io/etcd/bundle:v0.9.4"\n}\n'
)


def make_layer(files: dict[str, str | bytes]) -> bytes:
    """Build a gzip-compressed tar archive holding the given files."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def manifest_body(layers: list[bytes]) -> str:
    """Docker v2 manifest JSON for the given layer blobs."""
    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": DOCKER_MANIFEST_V2,
            "layers": [
                {
                    "mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
                    "size": len(blob),
                    "digest": calculate_digest(blob),
                }
                for blob in layers
            ],
        }
    )


def manifest_list_body(entries: dict[str, str]) -> str:
    """Manifest list JSON mapping architecture -> platform manifest body."""
    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": DOCKER_MANIFEST_LIST,
            "manifests": [
                {
                    "mediaType": DOCKER_MANIFEST_V2,
                    "size": len(body),
                    "digest": calculate_digest(body.encode()),
                    "platform": {"architecture": arch, "os": "linux"},
                }
                for arch, body in entries.items()
            ],
        }
    )


class FakeRegistryTransport:
    """In-memory registry transport recording every request."""

    def __init__(self, delay: float = 0.0) -> None:
        self.manifests: dict[str, str] = {}
        self.blobs: dict[str, bytes] = {}
        self.failures: dict[str, int] = {}
        self.manifest_calls: list[str] = []
        self.blob_calls: list[str] = []
        self.tokens: list[Token] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def __aenter__(self) -> "FakeRegistryTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    def add_blob(self, data: bytes, blobs_url: str = BLOBS_URL) -> str:
        digest = calculate_digest(data)
        self.blobs[blobs_url + digest] = data
        return digest

    def add_image(
        self,
        arch_layers: dict[str, list[bytes]],
        base_url: str = BASE_URL,
        version: str = VERSION,
    ) -> None:
        """Register a manifest list with one platform manifest per architecture."""
        platform_bodies = {}
        for arch, layers in arch_layers.items():
            body = manifest_body(layers)
            platform_bodies[arch] = body
            digest = calculate_digest(body.encode())
            self.manifests[f"{base_url}/manifests/{digest}"] = body
            for blob in layers:
                self.add_blob(blob, f"{base_url}/blobs/")
        self.manifests[f"{base_url}/manifests/{version}"] = manifest_list_body(
            platform_bodies
        )

    async def fetch_manifest(self, url: str, token: Token) -> str:
        self.manifest_calls.append(url)
        self.tokens.append(token)
        if url in self.failures:
            raise TransportError(f"GET {url} failed", status=self.failures[url])
        if url not in self.manifests:
            raise TransportError(f"GET {url} returned HTTP 404", status=404)
        return self.manifests[url]

    async def fetch_blob(self, url: str, token: Token) -> AsyncIterator[bytes]:
        self.blob_calls.append(url)
        self.tokens.append(token)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if url in self.failures:
                raise TransportError(f"GET {url} failed", status=self.failures[url])
            if url not in self.blobs:
                raise TransportError(f"GET {url} returned HTTP 404", status=404)
            data = self.blobs[url]
            half = len(data) // 2
            yield data[:half]
            yield data[half:]
        finally:
            self.in_flight -= 1


class FakeTokenProvider:
    """Token provider handing out a fixed token and counting requests."""

    def __init__(self, value: str = "test-token") -> None:
        self.value = value
        self.calls: list[tuple[str, str | None]] = []

    async def get_token(self, registry: str, scope: str | None = None) -> Token:
        self.calls.append((registry, scope))
        return Token(value=self.value)
