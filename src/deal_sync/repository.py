"""
Upsert repository for normalized deals.

Reconciles a batch of NormalizedDeals against a deal store keyed by HubSpot
id: existing rows are updated, missing rows inserted.

Key design decisions:
- The store is a small protocol (find_by_external_id / insert / update) so
  any backend can sit behind it; PostgresDealStore is the shipped one.
- Writes are failure-isolated per deal. A failing deal is recorded in the
  result and counted neither as created nor as updated; the rest continue.
- All rows of one batch share a single last_synced_at.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import structlog

from .errors import DealSyncError, PartialSuccessResult, PersistenceError, SyncAbortedError
from .models.deal import DealStats, NormalizedDeal

logger = structlog.get_logger(__name__)


class DealStore(Protocol):
    """Persistence contract for normalized deal rows."""

    async def find_by_external_id(self, hubspot_id: str) -> dict[str, Any] | None:
        ...

    async def insert(self, record: dict[str, Any]) -> Any:
        ...

    async def update(self, record_id: Any, record: dict[str, Any]) -> None:
        ...


@dataclass
class UpsertResult:
    """Outcome of upserting one batch."""

    created: int = 0
    updated: int = 0
    failures: PartialSuccessResult = field(default_factory=PartialSuccessResult)

    @property
    def failed(self) -> int:
        return self.failures.failure_count

    def to_dict(self) -> dict[str, Any]:
        return {
            'created': self.created,
            'updated': self.updated,
            'failed': self.failed,
            'failures': self.failures.to_dict(),
        }


class DealRepository:
    """Create-or-update of normalized deals against a DealStore."""

    def __init__(self, store: DealStore):
        self.store = store

    async def upsert_deals(self, deals: Sequence[NormalizedDeal]) -> UpsertResult:
        """
        Upsert a batch of deals, one at a time.

        Args:
            deals: Normalized deals from a sync

        Returns:
            UpsertResult with created/updated counts and per-deal failures
        """
        result = UpsertResult()
        synced_at = datetime.now(tz=timezone.utc)

        for deal in deals:
            record = deal.to_record(synced_at=synced_at)
            try:
                existing = await self.store.find_by_external_id(deal.hubspot_id)
                if existing is not None:
                    await self.store.update(existing['id'], record)
                    result.updated += 1
                    action = 'updated'
                else:
                    await self.store.insert(record)
                    result.created += 1
                    action = 'created'
            except SyncAbortedError:
                raise
            except Exception as exc:
                error = exc if isinstance(exc, DealSyncError) else PersistenceError(
                    f'Failed to upsert deal: {exc}',
                    context={'hubspot_id': deal.hubspot_id, 'error_type': type(exc).__name__},
                )
                result.failures.add_failure(error, item_id=deal.hubspot_id)
                logger.warning(
                    'repository.upsert_failed',
                    hubspot_id=deal.hubspot_id,
                    error=str(exc),
                )
                continue

            result.failures.add_success(item_id=deal.hubspot_id, data={'action': action})

        logger.info(
            'repository.upsert_completed',
            created=result.created,
            updated=result.updated,
            failed=result.failed,
        )
        return result

    @staticmethod
    def stats(deals: Sequence[NormalizedDeal]) -> DealStats:
        """Per-stage counts and total value for a set of deals."""
        return DealStats.from_deals(list(deals))
