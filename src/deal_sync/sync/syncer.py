"""
Deal sync orchestrator.

Wires the sync stages into straight-line calls:

    resolve stages -> fetch deals -> resolve references -> normalize
    (-> upsert, for run_sync)

Any error raised by a stage aborts the call; nothing is persisted after a
failed sync_deals(). Engagement timelines are on demand only and are never
part of the bulk path.

Every public call runs under its own trace id and a SyncBudget (built from
SYNC_TIMEOUT_SECONDS when the caller passes none).
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import uuid4

import structlog

from ..budget import SyncBudget
from ..clients.hubspot_client import HubSpotClient
from ..config import get_settings
from ..errors import PipelineNotFoundError
from ..logging import PipelineTimer, logging_context
from ..models.deal import NormalizedDeal
from ..models.engagement import Engagement, EngagementSummary, EngagementType
from ..models.pipeline import Pipeline
from ..repository import DealRepository, DealStore, UpsertResult
from .engagements import EngagementAggregator, EngagementStrategy, EngagementTimeline
from .fetcher import DEAL_ASSOCIATIONS, DEAL_PROPERTIES, DealFetcher, ProgressCallback
from .normalizer import normalize_deal
from .references import ReferenceResolver
from .stages import StageResolution, StageResolver, StageRule

logger = structlog.get_logger(__name__)


# =============================================================================
# Result Models
# =============================================================================


@dataclass
class SyncResult:
    """Aggregate result of one run_sync() call."""

    pipeline_id: str
    pipeline_name: str | None = None
    deals: list[NormalizedDeal] = field(default_factory=list)
    pages_fetched: int = 0

    # Persistence
    created: int = 0
    updated: int = 0
    upsert: UpsertResult | None = None

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return self.upsert.failed if self.upsert else 0

    @property
    def success(self) -> bool:
        """True when every deal was persisted."""
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            'pipeline_id': self.pipeline_id,
            'pipeline_name': self.pipeline_name,
            'deals': len(self.deals),
            'pages_fetched': self.pages_fetched,
            'created': self.created,
            'updated': self.updated,
            'failed': self.failed,
            'processing_time_ms': self.processing_time_ms,
            'stage_timings': self.stage_timings,
        }


@dataclass
class DealDetail:
    """One deal with its engagement timeline."""

    deal: NormalizedDeal
    engagements: list[Engagement]
    summary: EngagementSummary
    unavailable_engagement_types: list[EngagementType] = field(default_factory=list)


@dataclass
class _SyncRun:
    resolution: StageResolution
    deals: list[NormalizedDeal]
    pages: int


# =============================================================================
# DealSyncer
# =============================================================================


class DealSyncer:
    """
    Orchestrates HubSpot deal sync for one credential context.

    Holds no per-sync state; concurrent calls for different pipelines are
    safe on one instance.
    """

    def __init__(
        self,
        client: HubSpotClient,
        store: DealStore | None = None,
        stage_rules: Sequence[StageRule] | None = None,
        engagement_strategies: Sequence[EngagementStrategy] | None = None,
        reference_chunk_size: int | None = None,
        sync_timeout_seconds: float | None = None,
    ):
        """
        Initialize the syncer and its stage components.

        Args:
            client: HubSpot client
            store: Deal store for run_sync() (optional for read-only use)
            stage_rules: Stage classification rules (default keyword rules)
            engagement_strategies: Ordered engagement strategies
            reference_chunk_size: Concurrent reference fetches per kind
            sync_timeout_seconds: Default budget per call (SYNC_TIMEOUT_SECONDS)
        """
        self.client = client
        self.stage_resolver = StageResolver(client, rules=stage_rules)
        self.fetcher = DealFetcher(client)
        self.reference_resolver = ReferenceResolver(client, chunk_size=reference_chunk_size)
        self.engagements = EngagementAggregator(client, strategies=engagement_strategies)
        self.repository = DealRepository(store) if store is not None else None
        self.sync_timeout_seconds = (
            sync_timeout_seconds
            if sync_timeout_seconds is not None
            else get_settings().SYNC_TIMEOUT_SECONDS
        )

    def _budget(self, budget: SyncBudget | None) -> SyncBudget:
        return budget if budget is not None else SyncBudget(self.sync_timeout_seconds)

    # =========================================================================
    # Bulk sync
    # =========================================================================

    async def sync_deals(
        self,
        pipeline_id: str,
        budget: SyncBudget | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[NormalizedDeal]:
        """
        Fetch and normalize every deal of one pipeline.

        Args:
            pipeline_id: HubSpot pipeline id
            budget: Optional sync budget
            on_progress: Called with (pages_fetched, deals_kept) after each page

        Returns:
            Normalized deals, in fetch order

        Raises:
            PipelineNotFoundError: Unknown pipeline id
            HubSpotError: Pipeline or deal page request failed
            SyncAbortedError: Budget ran out or was cancelled
        """
        with logging_context(trace_id=str(uuid4()), pipeline_id=pipeline_id):
            run = await self._sync(pipeline_id, self._budget(budget), on_progress, PipelineTimer())
            return run.deals

    async def run_sync(
        self,
        pipeline_id: str,
        budget: SyncBudget | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Sync one pipeline and upsert the result into the store.

        Raises:
            ValueError: The syncer was built without a store
            PipelineNotFoundError / HubSpotError / SyncAbortedError: as sync_deals()
        """
        if self.repository is None:
            raise ValueError('run_sync() requires a deal store')

        started_at = datetime.now(tz=timezone.utc)
        timer = PipelineTimer()

        with logging_context(trace_id=str(uuid4()), pipeline_id=pipeline_id):
            logger.info('sync.started')
            run = await self._sync(pipeline_id, self._budget(budget), on_progress, timer)

            with timer.stage('upsert'):
                upsert = await self.repository.upsert_deals(run.deals)

            result = SyncResult(
                pipeline_id=pipeline_id,
                pipeline_name=run.resolution.pipeline.label,
                deals=run.deals,
                pages_fetched=run.pages,
                created=upsert.created,
                updated=upsert.updated,
                upsert=upsert,
                started_at=started_at,
                completed_at=datetime.now(tz=timezone.utc),
                processing_time_ms=int(timer.total_ms),
                stage_timings=timer.stages.copy(),
            )
            logger.info(
                'sync.completed',
                deals=len(run.deals),
                created=result.created,
                updated=result.updated,
                failed=result.failed,
                **timer.summary(),
            )
            return result

    async def _sync(
        self,
        pipeline_id: str,
        budget: SyncBudget,
        on_progress: ProgressCallback | None,
        timer: PipelineTimer,
    ) -> _SyncRun:
        with timer.stage('resolve_stages'):
            resolution = await self.stage_resolver.resolve_stages(pipeline_id, budget=budget)

        pages = 0

        def track(pages_fetched: int, deals_kept: int) -> None:
            nonlocal pages
            pages = pages_fetched
            if on_progress is not None:
                on_progress(pages_fetched, deals_kept)

        with timer.stage('fetch_deals'):
            raw_deals = await self.fetcher.fetch_all_deals(
                pipeline_id, budget=budget, on_progress=track
            )

        with timer.stage('resolve_references'):
            references = await self.reference_resolver.resolve_references(raw_deals, budget=budget)

        with timer.stage('normalize'):
            deals = [normalize_deal(d, resolution, references) for d in raw_deals]

        logger.info('sync.deals_normalized', deals=len(deals), pages=pages)
        return _SyncRun(resolution=resolution, deals=deals, pages=pages)

    # =========================================================================
    # On-demand paths
    # =========================================================================

    async def get_deal_engagements(
        self,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> list[Engagement]:
        """A deal's engagements across all types, newest first (best-effort)."""
        with logging_context(trace_id=str(uuid4()), deal_id=deal_id):
            return await self.engagements.get_deal_engagements(deal_id, budget=self._budget(budget))

    async def get_deal_detail(
        self,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> DealDetail:
        """
        Fetch one deal, normalize it and attach its engagement timeline.

        A deal whose pipeline no longer exists still normalizes, with every
        stage falling back to QUALIFIED.

        Raises:
            HubSpotError: The deal or pipeline request failed
            SyncAbortedError: Budget ran out or was cancelled
        """
        budget = self._budget(budget)
        with logging_context(trace_id=str(uuid4()), deal_id=deal_id):
            raw, pipelines = await asyncio.gather(
                self.client.get_deal(
                    deal_id, DEAL_PROPERTIES, DEAL_ASSOCIATIONS, budget=budget
                ),
                self.stage_resolver.get_pipelines(budget=budget),
            )

            pipeline_id = (raw.get('properties') or {}).get('pipeline') or ''
            try:
                resolution = self.stage_resolver.build_resolution(pipelines, pipeline_id)
            except PipelineNotFoundError:
                logger.warning('sync.deal_pipeline_missing', deal_pipeline=pipeline_id)
                resolution = StageResolution(
                    pipeline=Pipeline(id=pipeline_id, label='Unknown'),
                    pipeline_names={p.id: p.label for p in pipelines},
                )

            references, timeline = await asyncio.gather(
                self.reference_resolver.resolve_references([raw], budget=budget),
                self.engagements.fetch_timeline(deal_id, budget=budget),
            )
            deal = normalize_deal(raw, resolution, references)
            return _detail(deal, timeline)

    async def get_pipelines(self, budget: SyncBudget | None = None) -> list[Pipeline]:
        """All deal pipelines of the portal."""
        return await self.stage_resolver.get_pipelines(budget=self._budget(budget))

    async def get_portal_id(self, budget: SyncBudget | None = None) -> int:
        """The HubSpot portal id for building record links."""
        return await self.client.get_portal_id(budget=self._budget(budget))


def _detail(deal: NormalizedDeal, timeline: EngagementTimeline) -> DealDetail:
    return DealDetail(
        deal=deal,
        engagements=timeline.engagements,
        summary=EngagementSummary.from_engagements(timeline.engagements),
        unavailable_engagement_types=timeline.failed_types,
    )
