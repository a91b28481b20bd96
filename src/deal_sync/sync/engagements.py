"""
Engagement aggregation: one chronological timeline per deal.

Emails, calls, meetings, notes and tasks live in separate HubSpot object
types. Each type is retrieved independently through an ordered list of
strategies:

1. SearchStrategy: CRM search filtered on the deal association, newest first
2. AssociationWalkStrategy: list associated ids, then fetch each record
   (bounded chunks, same discipline as reference resolution)

A strategy is tried only if every earlier one raised a HubSpotError. A type
where all strategies fail contributes nothing; the timeline is best-effort.
Records without any usable timestamp, and malformed records, are dropped.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

import structlog

from ..budget import SyncBudget
from ..clients.hubspot_client import HubSpotClient
from ..config import get_settings
from ..errors import EngagementFetchError, HubSpotError
from ..models.engagement import Engagement, EngagementType
from ..utils import parse_hubspot_timestamp
from .references import gather_in_chunks

logger = structlog.get_logger(__name__)

_COMMON_PROPERTIES = ['hs_timestamp', 'hs_createdate']

ENGAGEMENT_PROPERTIES: dict[EngagementType, list[str]] = {
    EngagementType.EMAIL: _COMMON_PROPERTIES + [
        'hs_email_subject',
        'hs_body_preview',
        'hs_email_text',
        'hs_email_direction',
        'hs_email_status',
    ],
    EngagementType.CALL: _COMMON_PROPERTIES + [
        'hs_call_title',
        'hs_call_body',
        'hs_call_direction',
        'hs_call_duration',
        'hs_call_disposition',
        'hs_call_status',
    ],
    EngagementType.MEETING: _COMMON_PROPERTIES + [
        'hs_meeting_title',
        'hs_meeting_body',
        'hs_meeting_start_time',
        'hs_meeting_outcome',
    ],
    EngagementType.NOTE: _COMMON_PROPERTIES + ['hs_note_body'],
    EngagementType.TASK: _COMMON_PROPERTIES + [
        'hs_task_subject',
        'hs_task_body',
        'hs_task_status',
    ],
}


# =============================================================================
# Normalization
# =============================================================================


def _text(props: dict[str, Any], key: str) -> str | None:
    value = props.get(key)
    return str(value) if value not in (None, '') else None


def _duration_seconds(raw: Any) -> int | None:
    """hs_call_duration is milliseconds; stored as whole seconds."""
    if raw in (None, ''):
        return None
    try:
        return round(float(raw) / 1000)
    except (TypeError, ValueError, OverflowError):
        return None


def engagement_timestamp(props: dict[str, Any], engagement_type: EngagementType) -> datetime | None:
    """First parseable of hs_timestamp, hs_meeting_start_time (meetings), hs_createdate."""
    candidates = ['hs_timestamp']
    if engagement_type is EngagementType.MEETING:
        candidates.append('hs_meeting_start_time')
    candidates.append('hs_createdate')

    for key in candidates:
        parsed = parse_hubspot_timestamp(props.get(key))
        if parsed is not None:
            return parsed
    return None


def normalize_engagement(
    record: dict[str, Any],
    engagement_type: EngagementType,
) -> Engagement | None:
    """
    Map one raw HubSpot engagement record onto Engagement.

    Returns:
        Engagement, or None when the record has no usable timestamp
    """
    props = record.get('properties') or {}
    timestamp = engagement_timestamp(props, engagement_type)
    if timestamp is None:
        return None

    if engagement_type is EngagementType.EMAIL:
        fields = {
            'subject': _text(props, 'hs_email_subject'),
            'body': _text(props, 'hs_body_preview') or _text(props, 'hs_email_text'),
            'direction': _text(props, 'hs_email_direction'),
            'status': _text(props, 'hs_email_status'),
        }
    elif engagement_type is EngagementType.CALL:
        fields = {
            'subject': _text(props, 'hs_call_title'),
            'body': _text(props, 'hs_call_body'),
            'direction': _text(props, 'hs_call_direction'),
            'status': _text(props, 'hs_call_status'),
            'duration': _duration_seconds(props.get('hs_call_duration')),
            'outcome': _text(props, 'hs_call_disposition'),
        }
    elif engagement_type is EngagementType.MEETING:
        fields = {
            'subject': _text(props, 'hs_meeting_title'),
            'body': _text(props, 'hs_meeting_body'),
            'outcome': _text(props, 'hs_meeting_outcome'),
        }
    elif engagement_type is EngagementType.NOTE:
        fields = {'body': _text(props, 'hs_note_body')}
    else:
        fields = {
            'subject': _text(props, 'hs_task_subject'),
            'body': _text(props, 'hs_task_body'),
            'status': _text(props, 'hs_task_status'),
        }

    return Engagement(
        id=str(record['id']),
        type=engagement_type,
        timestamp=timestamp,
        **fields,
    )


def _normalize_records(raw: list[dict[str, Any]], engagement_type: EngagementType) -> list[Engagement]:
    """Normalize a batch; malformed records and records without a timestamp are dropped."""
    records: list[Engagement] = []
    without_timestamp = 0

    for record in raw:
        try:
            engagement = normalize_engagement(record, engagement_type)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning(
                'engagements.malformed_record',
                engagement_type=engagement_type.value,
                record_id=record.get('id') if isinstance(record, dict) else None,
                error=str(exc),
            )
            continue
        if engagement is None:
            without_timestamp += 1
            continue
        records.append(engagement)

    if without_timestamp:
        logger.debug(
            'engagements.records_without_timestamp',
            engagement_type=engagement_type.value,
            dropped=without_timestamp,
        )
    return records


# =============================================================================
# Retrieval Strategies
# =============================================================================


class EngagementStrategy:
    """One way of listing a deal's raw engagement records of one type."""

    name = 'base'

    def __init__(self, client: HubSpotClient):
        self.client = client

    async def fetch(
        self,
        engagement_type: EngagementType,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError


class SearchStrategy(EngagementStrategy):
    """CRM search on ``associations.deal``, sorted newest first."""

    name = 'search'

    def __init__(self, client: HubSpotClient, page_size: int = 100, max_pages: int = 10):
        super().__init__(client)
        self.page_size = page_size
        self.max_pages = max_pages

    async def fetch(
        self,
        engagement_type: EngagementType,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        after: str | None = None

        for _ in range(self.max_pages):
            body: dict[str, Any] = {
                'filterGroups': [
                    {
                        'filters': [
                            {
                                'propertyName': 'associations.deal',
                                'operator': 'EQ',
                                'value': deal_id,
                            }
                        ]
                    }
                ],
                'sorts': [{'propertyName': 'hs_timestamp', 'direction': 'DESCENDING'}],
                'properties': ENGAGEMENT_PROPERTIES[engagement_type],
                'limit': self.page_size,
            }
            if after:
                body['after'] = after

            data = await self.client.search_objects(
                engagement_type.object_type, body, budget=budget
            )
            records.extend(data.get('results') or [])

            after = ((data.get('paging') or {}).get('next') or {}).get('after')
            if not after:
                break
        else:
            logger.warning(
                'engagements.search_page_limit_reached',
                engagement_type=engagement_type.value,
                deal_id=deal_id,
                max_pages=self.max_pages,
                records=len(records),
            )

        return records


class AssociationWalkStrategy(EngagementStrategy):
    """Associated ids first, then each record fetched in bounded chunks."""

    name = 'association_walk'

    def __init__(self, client: HubSpotClient, chunk_size: int | None = None):
        super().__init__(client)
        self.chunk_size = chunk_size or get_settings().ENGAGEMENT_CHUNK_SIZE

    async def fetch(
        self,
        engagement_type: EngagementType,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> list[dict[str, Any]]:
        object_type = engagement_type.object_type
        ids = await self.client.get_associations('deals', deal_id, object_type, budget=budget)

        async def fetch_one(object_id: str) -> dict[str, Any]:
            return await self.client.get_object(
                object_type,
                object_id,
                ENGAGEMENT_PROPERTIES[engagement_type],
                budget=budget,
            )

        fetched = await gather_in_chunks(ids, fetch_one, self.chunk_size, kind=engagement_type.value)
        return [fetched[i] for i in ids if i in fetched]


# =============================================================================
# Aggregator
# =============================================================================


@dataclass
class TypeFetchOutcome:
    """How one engagement type was retrieved (``strategy`` None if all failed)."""

    type: EngagementType
    strategy: str | None
    records: list[Engagement] = field(default_factory=list)
    errors: list[EngagementFetchError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.strategy is not None


@dataclass
class EngagementTimeline:
    """Per-type outcomes plus the merged, newest-first engagement list."""

    deal_id: str
    outcomes: dict[EngagementType, TypeFetchOutcome]
    engagements: list[Engagement]

    @property
    def failed_types(self) -> list[EngagementType]:
        return [t for t, outcome in self.outcomes.items() if not outcome.succeeded]


class EngagementAggregator:
    """Builds a deal's engagement timeline across all five types."""

    def __init__(
        self,
        client: HubSpotClient,
        strategies: Sequence[EngagementStrategy] | None = None,
        chunk_size: int | None = None,
    ):
        """
        Args:
            client: HubSpot client
            strategies: Ordered strategies (default: search, then association walk)
            chunk_size: Chunk size for the default association walk
        """
        self.client = client
        self.strategies: list[EngagementStrategy] = (
            list(strategies)
            if strategies is not None
            else [SearchStrategy(client), AssociationWalkStrategy(client, chunk_size)]
        )

    async def fetch_type(
        self,
        engagement_type: EngagementType,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> TypeFetchOutcome:
        """Run the strategies for one type until one succeeds."""
        errors: list[EngagementFetchError] = []

        for strategy in self.strategies:
            try:
                raw = await strategy.fetch(engagement_type, deal_id, budget=budget)
            except HubSpotError as exc:
                error = EngagementFetchError(
                    f'{strategy.name} failed for {engagement_type.value}: {exc.message}',
                    engagement_type=engagement_type.value,
                    strategy=strategy.name,
                    context={'deal_id': deal_id, 'status': exc.status},
                )
                errors.append(error)
                logger.warning(
                    'engagements.strategy_failed',
                    engagement_type=engagement_type.value,
                    strategy=strategy.name,
                    status=exc.status,
                    error=exc.message,
                )
                continue

            records = _normalize_records(raw, engagement_type)
            return TypeFetchOutcome(engagement_type, strategy.name, records, errors)

        logger.warning(
            'engagements.type_unavailable',
            engagement_type=engagement_type.value,
            strategies_tried=len(errors),
        )
        return TypeFetchOutcome(engagement_type, None, [], errors)

    async def fetch_timeline(
        self,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> EngagementTimeline:
        """
        Fetch all five types concurrently and merge them newest first.

        Raises:
            SyncAbortedError: The budget ran out or was cancelled
        """
        types = list(EngagementType)
        outcomes = await asyncio.gather(
            *(self.fetch_type(t, deal_id, budget=budget) for t in types)
        )

        merged = [e for outcome in outcomes for e in outcome.records]
        merged.sort(key=lambda e: e.timestamp, reverse=True)

        logger.info(
            'engagements.timeline_built',
            deal_id=deal_id,
            engagements=len(merged),
            strategies={o.type.value: o.strategy for o in outcomes},
        )
        return EngagementTimeline(
            deal_id=deal_id,
            outcomes={o.type: o for o in outcomes},
            engagements=merged,
        )

    async def get_deal_engagements(
        self,
        deal_id: str,
        budget: SyncBudget | None = None,
    ) -> list[Engagement]:
        """All of a deal's engagements, sorted newest first."""
        timeline = await self.fetch_timeline(deal_id, budget=budget)
        return timeline.engagements
