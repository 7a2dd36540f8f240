"""Operator catalog synchronization."""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Optional

import aiofiles.os

from .auth.token import TokenProvider
from .cache.blob_store import BlobCache
from .cache.change import ChangeDetector
from .catalog.splitter import build_updated_configs
from .config.index import CatalogIndex, catalog_key
from .core.transport import HttpRegistryTransport, RegistryTransport
from .core.types import (
    BatchResult,
    CatalogResult,
    ImageReference,
    ManifestDescriptor,
    ManifestList,
    Operator,
    SyncConfig,
    SyncReport,
    Token,
)
from .exceptions import FilesystemError, MirrorError, ParseError, TransportError
from .operations.blobs import BatchDownloader, ProgressCallback
from .operations.manifests import (
    get_manifest,
    manifest_fs_layers,
    parse_manifest_document,
)
from .operations.references import blobs_url, parse_image_reference
from .tar.extractor import CONFIGS_DIR, LayerExtractor, find_dir

logger = logging.getLogger(__name__)

MANIFEST_LIST_FILE = "manifest-list.json"
MANIFEST_FILE = "manifest.json"
CACHE_DIR = "cache"
ATTESTATION_ARCH = "unknown"


def _merge_batch(result: CatalogResult, batch: BatchResult) -> None:
    if result.blobs is None:
        result.blobs = BatchResult()
    result.blobs.requested += batch.requested
    result.blobs.skipped += batch.skipped
    result.blobs.outcomes.extend(batch.outcomes)


class SyncOrchestrator:
    """Drives catalog synchronization, one catalog after another."""

    def __init__(
        self,
        config: SyncConfig,
        transport: RegistryTransport,
        token_provider: Optional[TokenProvider] = None,
        index: Optional[CatalogIndex] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Synchronization settings
            transport: Registry transport for manifests and blobs
            token_provider: Token source (built from config when omitted)
            index: Catalog index (config.index_path when omitted)
            progress_callback: Optional blob download progress callback
        """
        self.config = config
        self.transport = transport
        self.token_provider = token_provider or TokenProvider.from_config(config)
        self.index = index or CatalogIndex(config.index_path)
        self.cache = BlobCache(config.blobs_dir)
        self.detector = ChangeDetector()
        self.downloader = BatchDownloader(
            transport,
            self.cache,
            concurrency=config.concurrency,
            progress_every=config.progress_every,
            progress_callback=progress_callback,
            verify=config.verify_blobs,
        )
        self.extractor = LayerExtractor(self.cache)

    async def run(self, operators: Iterable[Operator]) -> SyncReport:
        """Synchronize every configured catalog.

        Catalog failures are recorded in the report. The catalog index is
        written once at the end, also when a filesystem error aborts the run.

        Raises:
            FilesystemError: If the working directory cannot be written
        """
        report = SyncReport()
        tokens: dict[tuple[str, Optional[str]], Token] = {}
        accumulator: dict[str, str] = {}

        try:
            for operator in operators:
                result = await self.sync_catalog(operator, tokens, accumulator)
                report.results.append(result)
        finally:
            if accumulator:
                await self._commit(accumulator)

        logger.info(
            f"synchronized {len(report.results) - len(report.failures)} of "
            f"{len(report.results)} catalogs"
        )
        return report

    async def _commit(self, accumulator: dict[str, str]) -> None:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self.index.update, accumulator)
        logger.info(f"updated catalog index {self.index.path}")

    async def sync_catalog(
        self,
        operator: Operator,
        tokens: dict[tuple[str, Optional[str]], Token],
        accumulator: dict[str, str],
    ) -> CatalogResult:
        """Synchronize one catalog image.

        Args:
            operator: Configured catalog
            tokens: Per-run token cache keyed by (host, scope)
            accumulator: Index entries collected during the run

        Returns:
            CatalogResult; error is set when the catalog failed

        Raises:
            FilesystemError: If the working directory cannot be written
        """
        result = CatalogResult(catalog=operator.catalog)
        try:
            await self._sync(operator, tokens, accumulator, result)
        except FilesystemError:
            raise
        except MirrorError as e:
            logger.error(f"catalog {operator.catalog} failed: {e}")
            result.error = str(e)
        return result

    async def _token(
        self,
        registry: str,
        tokens: dict[tuple[str, Optional[str]], Token],
        scope: Optional[str] = None,
    ) -> Token:
        key = (registry, scope)
        if key not in tokens:
            tokens[key] = await self.token_provider.get_token(registry, scope)
        return tokens[key]

    def select_platforms(self, manifest_list: ManifestList) -> list[ManifestDescriptor]:
        """Pick the manifest list entries to synchronize.

        Raises:
            ParseError: If the list has no usable entry
        """
        candidates = [
            m for m in manifest_list.manifests if m.architecture != ATTESTATION_ARCH
        ]
        if not candidates:
            raise ParseError("Manifest list has no platform entries")

        if self.config.all_arch:
            return candidates

        for descriptor in candidates:
            if descriptor.architecture == self.config.default_arch:
                return [descriptor]

        fallback = candidates[0]
        logger.warning(
            f"no {self.config.default_arch} entry in manifest list, "
            f"using {fallback.architecture}"
        )
        return [fallback]

    async def _sync(
        self,
        operator: Operator,
        tokens: dict[tuple[str, Optional[str]], Token],
        accumulator: dict[str, str],
        result: CatalogResult,
    ) -> None:
        ref = parse_image_reference(operator.catalog)
        logger.info(f"synchronizing catalog {ref}")

        token = await self._token(ref.registry, tokens)
        body = await get_manifest(self.transport, ref, token)
        document = parse_manifest_document(body)

        if not isinstance(document, ManifestList):
            # single-platform image
            await self._sync_platform(
                ref, token, self.config.default_arch, body, accumulator, result
            )
            return

        await self.detector.check(body, self.config.image_dir(ref) / MANIFEST_LIST_FILE)
        for descriptor in self.select_platforms(document):
            manifest = await get_manifest(self.transport, ref, token, descriptor.digest)
            await self._sync_platform(
                ref, token, descriptor.architecture, manifest, accumulator, result
            )

    async def _sync_platform(
        self,
        ref: ImageReference,
        token: Token,
        arch: str,
        manifest: str,
        accumulator: dict[str, str],
        result: CatalogResult,
    ) -> None:
        platform_dir = self.config.platform_dir(ref, arch)
        cache_dir = platform_dir / CACHE_DIR
        manifest_path = platform_dir / MANIFEST_FILE
        logger.debug(f"manifest directory {platform_dir}")
        result.platforms.append(arch)

        changed = await self.detector.changed(manifest, manifest_path, cache_dir)
        if changed:
            logger.info(f"detected change in {arch} manifest of {ref}")
            result.changed = True
            await self._rebuild_cache(ref, token, manifest, cache_dir, result)
        else:
            logger.info(f"{arch} manifest of {ref} unchanged, reusing cache")

        configs_dir = await find_dir(cache_dir, CONFIGS_DIR)
        if not configs_dir and not changed:
            logger.warning(f"no '{CONFIGS_DIR}' directory in {cache_dir}, refilling")
            await self._fill_cache(ref, token, manifest, cache_dir, result)
            configs_dir = await find_dir(cache_dir, CONFIGS_DIR)
        if not configs_dir:
            logger.warning(f"'{CONFIGS_DIR}' directory not found in {cache_dir}")
            return

        loop = asyncio.get_event_loop()
        chunks = await loop.run_in_executor(
            None, build_updated_configs, configs_dir, self.config.split_mode
        )
        logger.info(f"configs directory {configs_dir} ({chunks} catalog chunks)")

        key = catalog_key(
            configs_dir, self.config.working_dir, self.config.default_arch
        )
        accumulator[key] = f"{configs_dir}/"
        if result.key is None:
            result.key = key
            result.configs_dir = configs_dir

    async def _rebuild_cache(
        self,
        ref: ImageReference,
        token: Token,
        manifest: str,
        cache_dir: Path,
        result: CatalogResult,
    ) -> None:
        """Wipe and repopulate a platform cache.

        The manifest is recorded only once every blob is cached and the
        layers are extracted, so an interrupted rebuild is redone next run.
        """
        manifest_path = cache_dir.parent / MANIFEST_FILE
        await self._forget(manifest_path)
        await self._reset_dir(cache_dir)

        if await self._fill_cache(ref, token, manifest, cache_dir, result):
            await self.detector.record(manifest, manifest_path)

    async def _fill_cache(
        self,
        ref: ImageReference,
        token: Token,
        manifest: str,
        cache_dir: Path,
        result: CatalogResult,
    ) -> bool:
        """Download missing blobs and extract missing layers into cache_dir.

        Returns:
            True when no blob failed
        """
        document = parse_manifest_document(manifest)
        if isinstance(document, ManifestList):
            raise ParseError(f"Expected a platform manifest for {ref}")
        layers = manifest_fs_layers(document, str(ref))

        batch = await self.downloader.download({blobs_url(ref): layers}, token)
        _merge_batch(result, batch)
        if not batch.ok:
            if self.config.abort_on_blob_failure:
                raise TransportError(
                    f"{batch.failure_count} blobs of {ref} failed to download"
                )
            logger.warning(
                f"continuing with {batch.failure_count} missing blobs for {ref}"
            )

        await self.extractor.extract(cache_dir, layers)
        logger.info(f"completed untar of {len(layers)} layers")
        return batch.ok

    async def _reset_dir(self, directory: Path) -> None:
        loop = asyncio.get_event_loop()
        try:
            if await aiofiles.os.path.exists(directory):
                await loop.run_in_executor(None, shutil.rmtree, directory)
            await aiofiles.os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot reset {directory}: {e}") from e

    async def _forget(self, manifest_path: Path) -> None:
        try:
            await aiofiles.os.remove(manifest_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise FilesystemError(f"Cannot remove {manifest_path}: {e}") from e


async def sync_operator_catalogs(
    operators: Iterable[Operator | str],
    working_dir: str | os.PathLike,
    progress_callback: Optional[ProgressCallback] = None,
    **options,
) -> SyncReport:
    """오퍼레이터 카탈로그 이미지를 로컬 작업 디렉토리로 동기화합니다.

    변경되지 않은 카탈로그는 다시 다운로드하지 않으며, 추출된 configs
    디렉토리는 카탈로그 인덱스 파일에 기록됩니다.

    Args:
        operators: 카탈로그 목록 (Operator 또는 이미지 문자열,
            예: "registry.redhat.io/redhat/redhat-operator-index:v4.15")
        working_dir: 작업 디렉토리 (blobs-store, 매니페스트, 캐시 저장 위치)
        progress_callback: 진행 상황 콜백 함수 (동기/비동기 모두 지원)
        **options: SyncConfig 옵션 (concurrency, all_arch, auth_mode,
            index_path, tls_verify 등)

    Returns:
        SyncReport: 카탈로그별 동기화 결과

    Raises:
        ValueError: 잘못된 옵션 값
        FilesystemError: 작업 디렉토리 쓰기 실패 시

    Examples:
        # 기본 사용법 (amd64 플랫폼만)
        report = await sync_operator_catalogs(
            ["registry.redhat.io/redhat/redhat-operator-index:v4.15"],
            "working-dir",
        )

        # 모든 아키텍처, 익명 인증
        report = await sync_operator_catalogs(
            ["quay.io/operatorhubio/catalog:latest"],
            "working-dir",
            all_arch=True,
            auth_mode="anonymous",
        )
        if not report.ok:
            for failure in report.failures:
                print(f"실패: {failure.catalog} - {failure.error}")
    """
    config = SyncConfig(working_dir=Path(working_dir), **options)
    entries = [
        Operator(catalog=op) if isinstance(op, str) else op for op in operators
    ]

    async with HttpRegistryTransport(config.timeout, config.tls_verify) as transport:
        orchestrator = SyncOrchestrator(
            config, transport, progress_callback=progress_callback
        )
        return await orchestrator.run(entries)
