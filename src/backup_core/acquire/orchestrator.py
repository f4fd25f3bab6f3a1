"""Per-unit acquisition: resume check, dispatch, fallback, manifest bookkeeping.

Units are processed strictly one at a time. Inside a unit, direct fetches run
through the bounded batch; browser-session strategies share one page and run
sequentially afterwards. The manifest is saved after every unit, so killing
the process loses at most the unit in flight.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from backup_core.acquire.batch import DEFAULT_MAX_CONCURRENT_DOWNLOADS, run_batch
from backup_core.acquire.context import LINK_KIND_LINK, LINK_KIND_MEDIA, CandidateLink, DownloadContext, Unit
from backup_core.acquire.strategies.base import AcquisitionStrategy
from backup_core.acquire.strategies.direct import (
    DEFAULT_USER_AGENT,
    DirectFetchStrategy,
    can_fetch_as_file,
    download_to_path,
)
from backup_core.acquire.strategies.registry import StrategyRegistry
from backup_core.layout import IMAGE_EXTENSIONS, VIDEO_EXTENSIONS, avatar_filename, unit_media_root
from backup_core.logging_config import LogContext
from backup_core.manifest import (
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_PARTIAL,
    AvatarRecord,
    Manifest,
    ManifestStore,
    has_avatar,
    is_complete,
    mark_processing,
    upsert_avatar,
    upsert_post,
)
from backup_core.network_utils import RetryPolicy, is_transient_http_error, with_retries
from backup_core.render import Renderer, write_unit_record
from backup_core.result import DownloadResult
from backup_core.utils.logging import log_event

logger = logging.getLogger(__name__)

DEFAULT_AVATAR_TIMEOUT = 15.0


@dataclasses.dataclass
class UnitOutcome:
    """Everything the renderer needs to describe one unit's acquisition."""

    unit_id: str
    status: str = STATUS_COMPLETE
    media: list[DownloadResult] = dataclasses.field(default_factory=list)
    gallery: list[DownloadResult] = dataclasses.field(default_factory=list)
    attachments: list[DownloadResult] = dataclasses.field(default_factory=list)
    failures: list[DownloadResult] = dataclasses.field(default_factory=list)
    unfetchable: list[CandidateLink] = dataclasses.field(default_factory=list)
    output_path: Path | None = None
    skipped: bool = False
    error: str | None = None
    link_count: int = 0

    @property
    def successes(self) -> list[DownloadResult]:
        return self.media + self.gallery + self.attachments

    def count_extensions(self, extensions: frozenset[str]) -> int:
        return sum(1 for result in self.successes if (result.extension or "") in extensions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "status": self.status,
            "skipped": self.skipped,
            "output_path": str(self.output_path) if self.output_path else None,
            "media": len(self.media),
            "gallery": len(self.gallery),
            "attachments": len(self.attachments),
            "failed": [result.to_dict() for result in self.failures],
            "unfetchable": [link.url for link in self.unfetchable],
            "error": self.error,
        }


@dataclasses.dataclass
class RunSummary:
    collection: str
    outcomes: list[UnitOutcome] = dataclasses.field(default_factory=list)
    started_at: float = dataclasses.field(default_factory=time.monotonic)

    def record(self, outcome: UnitOutcome) -> None:
        self.outcomes.append(outcome)

    def counts(self) -> dict[str, int]:
        counts = {"total": len(self.outcomes), "skipped": 0, STATUS_COMPLETE: 0, STATUS_PARTIAL: 0, STATUS_FAILED: 0}
        for outcome in self.outcomes:
            if outcome.skipped:
                counts["skipped"] += 1
            else:
                counts[outcome.status] = counts.get(outcome.status, 0) + 1
        return counts

    @property
    def has_failures(self) -> bool:
        return any(outcome.status == STATUS_FAILED for outcome in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "counts": self.counts(),
            "duration_s": round(time.monotonic() - self.started_at, 3),
            "units": [outcome.to_dict() for outcome in self.outcomes],
        }


def dedupe_links(links: Iterable[CandidateLink]) -> list[CandidateLink]:
    """Drop repeated URLs (exact string match); the first occurrence wins."""
    seen: set[str] = set()
    unique: list[CandidateLink] = []
    for link in links:
        if link.url in seen:
            continue
        seen.add(link.url)
        unique.append(link)
    return unique


def collect_avatars(units: Iterable[Unit]) -> list[tuple[str, str]]:
    return [(unit.author, unit.author_avatar) for unit in units if unit.author and unit.author_avatar]


@dataclasses.dataclass
class _Job:
    index: int
    link: CandidateLink
    strategy: AcquisitionStrategy


class AcquisitionOrchestrator:
    def __init__(
        self,
        registry: StrategyRegistry,
        store: ManifestStore,
        collection_id: str,
        *,
        output_root: Path,
        renderer: Renderer | None = None,
        concurrency: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
        retry_policy: RetryPolicy | None = None,
        avatar_timeout: float = DEFAULT_AVATAR_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.store = store
        self.collection_id = collection_id
        self.output_root = Path(output_root)
        self.renderer = renderer or write_unit_record(self.output_root, collection_id)
        self.concurrency = concurrency
        self.retry_policy = retry_policy or RetryPolicy()
        self.avatar_timeout = avatar_timeout
        self._manifest: Manifest | None = None

    @property
    def manifest(self) -> Manifest:
        if self._manifest is None:
            # ManifestCorruptError propagates: the caller skips this collection
            self._manifest = self.store.load(self.collection_id)
        return self._manifest

    async def run(self, units: Iterable[Unit], session: Any = None) -> RunSummary:
        summary = RunSummary(collection=self.collection_id)
        manifest = self.manifest
        log_event(
            logger,
            "Collection run started",
            collection=self.collection_id,
            known_posts=len(manifest.posts),
        )
        for unit in units:
            summary.record(await self.process_unit(unit, session=session))
        log_event(logger, "Collection run finished", collection=self.collection_id, **summary.counts())
        return summary

    async def process_unit(self, unit: Unit, session: Any = None) -> UnitOutcome:
        manifest = self.manifest
        with LogContext(collection=self.collection_id, unit_id=unit.id):
            if is_complete(manifest, unit.id):
                recorded = manifest.posts[unit.id].output_path
                if recorded and Path(recorded).exists():
                    logger.info("Unit already complete, skipping")
                    return UnitOutcome(
                        unit_id=unit.id, status=STATUS_COMPLETE, output_path=Path(recorded), skipped=True
                    )
                logger.warning("Unit marked complete but %s is missing, reprocessing", recorded)

            mark_processing(manifest, unit.id, title=unit.title, url=unit.url)
            try:
                outcome = await self._acquire(unit, session)
                outcome.output_path = self.renderer(unit, outcome)
                outcome.status = (
                    STATUS_PARTIAL if outcome.failures or outcome.unfetchable else STATUS_COMPLETE
                )
            except Exception as exc:
                logger.exception("Unit processing failed")
                outcome = UnitOutcome(unit_id=unit.id, status=STATUS_FAILED, error=str(exc) or type(exc).__name__)

            upsert_post(
                manifest,
                unit.id,
                title=unit.title,
                url=unit.url,
                status=outcome.status,
                output_path=str(outcome.output_path) if outcome.output_path else manifest.posts[unit.id].output_path,
                images_count=outcome.count_extensions(IMAGE_EXTENSIONS),
                videos_count=outcome.count_extensions(VIDEO_EXTENSIONS),
                external_links_count=outcome.link_count,
                failed_count=len(outcome.failures),
                unfetchable_count=len(outcome.unfetchable),
                error=outcome.error,
            )
            self.store.save(self.collection_id, manifest)

            with LogContext(status=outcome.status):
                if outcome.status == STATUS_COMPLETE:
                    logger.info("Unit finished: %s files", len(outcome.successes))
                else:
                    logger.warning(
                        "Unit finished with problems: %s files, %s failed, %s unfetchable",
                        len(outcome.successes),
                        len(outcome.failures),
                        len(outcome.unfetchable),
                    )
        return outcome

    async def _acquire(self, unit: Unit, session: Any) -> UnitOutcome:
        links = dedupe_links(unit.links)
        outcome = UnitOutcome(
            unit_id=unit.id, link_count=sum(1 for link in links if link.kind == LINK_KIND_LINK)
        )
        media_root = unit_media_root(self.output_root, self.collection_id, unit.posted_at)

        batchable: list[_Job] = []
        sequential: list[_Job] = []
        for index, link in enumerate(links):
            strategy = self.registry.resolve(link.url)
            if strategy is None:
                logger.info("No strategy can fetch %s", link.url)
                outcome.unfetchable.append(link)
                continue
            job = _Job(index=index, link=link, strategy=strategy)
            (sequential if strategy.requires_session else batchable).append(job)

        claimed: set[str] = set()

        def context_for(job: _Job) -> DownloadContext:
            return DownloadContext(
                output_dir=media_root,
                unit=unit,
                index=job.index,
                session=session,
                display_name=job.link.label,
                options={"kind": job.link.kind, "source": job.link.source},
                claimed_names=claimed,
            )

        async def run_batchable(job: _Job, _position: int) -> list[DownloadResult]:
            return await self._fetch(job.strategy, job.link.url, context_for(job))

        settled: list[tuple[_Job, AcquisitionStrategy, list[DownloadResult]]] = []
        batch_results = await run_batch(batchable, run_batchable, self.concurrency)
        settled.extend((job, job.strategy, results) for job, results in zip(batchable, batch_results))

        # the shared page allows exactly one session strategy at a time
        for job in sequential:
            ctx = context_for(job)
            results = await self._fetch(job.strategy, job.link.url, ctx)
            used = job.strategy
            if not any(result.ok for result in results):
                fallback = self._fallback_for(job.link.url, job.strategy)
                if fallback is not None:
                    logger.info("%s found nothing for %s, trying %s", job.strategy.name, job.link.url, fallback.name)
                    fallback_results = await self._fetch(fallback, job.link.url, ctx)
                    if any(result.ok for result in fallback_results):
                        results, used = fallback_results, fallback
                    else:
                        results = results + fallback_results
            settled.append((job, used, results))

        settled.sort(key=lambda entry: entry[0].index)
        for job, used, results in settled:
            for result in results:
                if not result.ok:
                    outcome.failures.append(result)
                elif used.enumerates:
                    outcome.gallery.append(result)
                elif job.link.kind == LINK_KIND_MEDIA:
                    outcome.media.append(result)
                else:
                    outcome.attachments.append(result)
        return outcome

    def _fallback_for(self, url: str, failed: AcquisitionStrategy) -> AcquisitionStrategy | None:
        if failed.enumerates:
            # Containers are sometimes served as a single downloadable object
            direct = self.registry.get(DirectFetchStrategy.name)
            if isinstance(direct, DirectFetchStrategy) and can_fetch_as_file(url):
                return direct
        for candidate in self.registry.candidates(url):
            if candidate is not failed and not candidate.requires_session:
                return candidate
        return None

    async def _fetch(self, strategy: AcquisitionStrategy, url: str, ctx: DownloadContext) -> list[DownloadResult]:
        with LogContext(strategy=strategy.name):
            try:
                results = await strategy.fetch(url, ctx)
            except Exception as exc:
                logger.exception("Strategy %s raised for %s", strategy.name, url)
                return [DownloadResult.failed(url, f"{type(exc).__name__}: {exc}")]
        if not results:
            return [DownloadResult.failed(url, "strategy returned no results")]
        return results

    async def download_avatars(
        self, avatars: Iterable[tuple[str, str]], dest_dir: Path
    ) -> dict[str, AvatarRecord]:
        """Fetch one avatar per distinct display name, skipping names already complete."""
        manifest = self.manifest
        unique: dict[str, str] = {}
        for name, url in avatars:
            if name and url and name not in unique:
                unique[name] = url
        pending = [(name, url) for name, url in unique.items() if not has_avatar(manifest, name)]
        if not pending:
            return {}
        logger.info("Downloading %s avatars (%s already present)", len(pending), len(unique) - len(pending))

        async def fetch_avatar(entry: tuple[str, str], _position: int) -> AvatarRecord:
            name, url = entry
            filename = avatar_filename(name, url)
            path = Path(dest_dir) / filename
            try:
                await with_retries(
                    lambda: download_to_path(url, path, timeout=self.avatar_timeout, user_agent=DEFAULT_USER_AGENT),
                    self.retry_policy,
                    retry_on=is_transient_http_error,
                )
            except Exception as exc:
                path.unlink(missing_ok=True)
                logger.warning("Avatar for %s failed: %s", name, exc)
                return upsert_avatar(
                    manifest, name, url=url, filename=filename, status=STATUS_FAILED, error=str(exc) or type(exc).__name__
                )
            return upsert_avatar(manifest, name, url=url, filename=filename, status=STATUS_COMPLETE)

        records = await run_batch(pending, fetch_avatar, self.concurrency)
        self.store.save(self.collection_id, manifest)
        return {record.author: record for record in records}
