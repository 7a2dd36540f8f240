"""Core data types for catalog synchronization."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# Manifest media types accepted when fetching manifests
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"

ACCEPTED_MANIFEST_TYPES = [
    OCI_MANIFEST,
    OCI_INDEX,
    DOCKER_MANIFEST_V2,
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V1_SIGNED,
]

AUTH_MODES = ("credentials", "anonymous", "none")
SPLIT_MODES = ("stream", "boundary")


@dataclass(frozen=True)
class ImageReference:
    """Catalog image reference (registry/namespace/name:version)."""

    registry: str
    namespace: str
    name: str
    version: str

    @property
    def repository(self) -> str:
        """Repository path used in registry API URLs."""
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        separator = "@" if ":" in self.version else ":"
        return f"{self.registry}/{self.repository}{separator}{self.version}"


@dataclass
class Token:
    """Registry access token scoped to one synchronization run."""

    value: str = ""
    kind: Literal["bearer", "access"] = "bearer"
    expires_in: int | None = None
    issued_at: str | None = None

    def __bool__(self) -> bool:
        return bool(self.value)

    def headers(self) -> dict[str, str]:
        """Authorization header for this token (empty when anonymous)."""
        if not self.value:
            return {}
        return {"Authorization": f"Bearer {self.value}"}


@dataclass
class Platform:
    """Platform of a manifest list entry."""

    os: str
    architecture: str
    variant: str | None = None


@dataclass
class ManifestDescriptor:
    """Entry of a manifest list pointing at a platform manifest."""

    digest: str
    media_type: str
    size: int | None = None
    platform: Platform | None = None

    @property
    def architecture(self) -> str:
        return self.platform.architecture if self.platform else "unknown"


@dataclass
class ManifestList:
    """Multi-platform manifest list (or OCI image index)."""

    media_type: str
    manifests: list[ManifestDescriptor] = field(default_factory=list)


@dataclass
class Layer:
    """Layer or config descriptor of a single-platform manifest."""

    media_type: str
    size: int
    digest: str


@dataclass
class Manifest:
    """Single-platform image manifest."""

    layers: list[Layer] = field(default_factory=list)
    config: Layer | None = None
    schema_version: int | None = None
    media_type: str | None = None


@dataclass
class FsLayer:
    """One blob to fetch; identity is the blob sum."""

    blob_sum: str
    original_ref: str | None = None
    size: int | None = None
    number: int | None = None


@dataclass
class SchemaV1Manifest:
    """Legacy schema-1 manifest used by older operator indexes."""

    fs_layers: list[FsLayer] = field(default_factory=list)
    name: str | None = None
    tag: str | None = None
    architecture: str | None = None
    schema_version: int | None = None


@dataclass
class IncludeChannel:
    """Channel filter of a mirrored package."""

    name: str
    min_version: str | None = None
    max_version: str | None = None
    min_bundle: str | None = None


@dataclass
class Package:
    """Package filter of a mirrored catalog."""

    name: str
    channels: list[IncludeChannel] | None = None
    min_version: str | None = None
    max_version: str | None = None
    min_bundle: str | None = None


@dataclass
class Operator:
    """Operator catalog entry of the mirror configuration."""

    catalog: str
    packages: list[Package] | None = None


@dataclass
class BlobOutcome:
    """Result of fetching one blob."""

    digest: str
    url: str
    status: Literal["downloaded", "failed"]
    size: int = 0
    error: str | None = None


@dataclass
class BatchResult:
    """Aggregate result of a blob batch."""

    requested: int = 0
    skipped: int = 0
    outcomes: list[BlobOutcome] = field(default_factory=list)

    @property
    def downloaded(self) -> list[BlobOutcome]:
        return [o for o in self.outcomes if o.status == "downloaded"]

    @property
    def failed(self) -> list[BlobOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def ok(self) -> bool:
        return self.failure_count == 0


@dataclass
class CatalogResult:
    """Outcome of synchronizing one configured catalog."""

    catalog: str
    key: str | None = None
    configs_dir: str | None = None
    platforms: list[str] = field(default_factory=list)
    changed: bool = False
    blobs: BatchResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    """Outcome of a whole synchronization run."""

    results: list[CatalogResult] = field(default_factory=list)

    @property
    def failures(self) -> list[CatalogResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class SyncConfig:
    """Synchronization configuration."""

    working_dir: Path = Path("working-dir")
    index_path: Path = Path("config.json")
    concurrency: int = 8
    progress_every: int = 10
    timeout: int = 300
    tls_verify: bool = True
    all_arch: bool = False
    default_arch: str = "amd64"
    auth_mode: str = "credentials"
    auth_realms: dict[str, str] = field(default_factory=dict)
    abort_on_blob_failure: bool = False
    verify_blobs: bool = False
    split_mode: str = "stream"
    runtime_dir: str | None = None

    def __post_init__(self) -> None:
        self.working_dir = Path(self.working_dir)
        self.index_path = Path(self.index_path)
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.progress_every < 1:
            raise ValueError("progress_every must be at least 1")
        if self.auth_mode not in AUTH_MODES:
            raise ValueError(f"Unknown auth mode: {self.auth_mode}")
        if self.split_mode not in SPLIT_MODES:
            raise ValueError(f"Unknown split mode: {self.split_mode}")

    @property
    def blobs_dir(self) -> Path:
        return self.working_dir / "blobs-store"

    def image_dir(self, ref: ImageReference) -> Path:
        return self.working_dir / ref.name / ref.version

    def platform_dir(self, ref: ImageReference, arch: str) -> Path:
        return self.image_dir(ref) / arch
