"""
Cross-reference resolution for a batch of deals.

Turns the company, contact and owner ids referenced by a batch of raw deals
into display-ready reference models.

Key design decisions:
- Each id is fetched at most once per batch (ids are deduplicated up front)
- Fan-out is bounded: ids go out in chunks of ``chunk_size`` concurrent
  requests, chunks run sequentially
- The three kinds resolve concurrently with each other
- A failed id is logged and left out of its map; the batch goes on
- Budget aborts and task cancellation are never swallowed
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

import structlog

from ..budget import SyncBudget
from ..clients.hubspot_client import HubSpotClient
from ..config import get_settings
from ..errors import SyncAbortedError
from ..models.deal import CompanyRef, ContactRef, OwnerRef
from ..utils import chunked

logger = structlog.get_logger(__name__)

T = TypeVar('T')


def association_ids(deal: dict[str, Any], kind: str) -> list[str]:
    """
    Ids of ``kind`` ('companies' / 'contacts') associated with a raw deal.

    HubSpot may list one target twice (labelled and unlabelled association);
    duplicates are dropped, first occurrence order kept.
    """
    results = ((deal.get('associations') or {}).get(kind) or {}).get('results') or []
    ids: list[str] = []
    for item in results:
        item_id = item.get('id')
        if item_id is None:
            continue
        item_id = str(item_id)
        if item_id not in ids:
            ids.append(item_id)
    return ids


async def gather_in_chunks(
    ids: Sequence[str],
    fetch: Callable[[str], Awaitable[T | None]],
    chunk_size: int,
    kind: str = 'object',
) -> dict[str, T]:
    """
    Fetch ``ids`` with at most ``chunk_size`` requests in flight.

    Args:
        ids: Ids to fetch (caller deduplicates)
        fetch: Coroutine fetching one id; None results are dropped
        chunk_size: Concurrent requests per chunk
        kind: Label for log entries

    Returns:
        Map of id to fetched value, for ids that succeeded

    Raises:
        SyncAbortedError: The budget ran out or was cancelled mid-way
    """
    resolved: dict[str, T] = {}

    for chunk in chunked(ids, chunk_size):
        results = await asyncio.gather(*(fetch(i) for i in chunk), return_exceptions=True)
        for item_id, result in zip(chunk, results):
            if isinstance(result, SyncAbortedError):
                raise result
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                logger.warning(
                    'references.fetch_failed',
                    kind=kind,
                    object_id=item_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            if result is not None:
                resolved[item_id] = result

    return resolved


@dataclass
class ReferenceMaps:
    """Resolved references for one batch, keyed by HubSpot id."""

    companies: dict[str, CompanyRef] = field(default_factory=dict)
    contacts: dict[str, ContactRef] = field(default_factory=dict)
    owners: dict[str, OwnerRef] = field(default_factory=dict)


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


class ReferenceResolver:
    """Resolves company, contact and owner references for a deal batch."""

    def __init__(self, client: HubSpotClient, chunk_size: int | None = None):
        """
        Args:
            client: HubSpot client
            chunk_size: Concurrent requests per kind (default: REFERENCE_CHUNK_SIZE)
        """
        self.client = client
        self.chunk_size = chunk_size or get_settings().REFERENCE_CHUNK_SIZE

    async def resolve_references(
        self,
        deals: Sequence[dict[str, Any]],
        budget: SyncBudget | None = None,
    ) -> ReferenceMaps:
        """
        Resolve every reference in ``deals``.

        Args:
            deals: Raw HubSpot deal records
            budget: Optional sync budget

        Returns:
            ReferenceMaps holding only the references that resolved
        """
        company_ids: list[str] = []
        contact_ids: list[str] = []
        owner_ids: list[str] = []
        for deal in deals:
            company_ids.extend(association_ids(deal, 'companies'))
            contact_ids.extend(association_ids(deal, 'contacts'))
            owner_id = (deal.get('properties') or {}).get('hubspot_owner_id')
            if owner_id:
                owner_ids.append(str(owner_id))

        company_ids = _unique(company_ids)
        contact_ids = _unique(contact_ids)
        owner_ids = _unique(owner_ids)

        async def fetch_company(company_id: str) -> CompanyRef:
            return CompanyRef.from_hubspot(await self.client.get_company(company_id, budget=budget))

        async def fetch_contact(contact_id: str) -> ContactRef:
            return ContactRef.from_hubspot(await self.client.get_contact(contact_id, budget=budget))

        async def fetch_owner(owner_id: str) -> OwnerRef:
            return OwnerRef.from_hubspot(await self.client.get_owner(owner_id, budget=budget))

        companies, contacts, owners = await asyncio.gather(
            gather_in_chunks(company_ids, fetch_company, self.chunk_size, kind='company'),
            gather_in_chunks(contact_ids, fetch_contact, self.chunk_size, kind='contact'),
            gather_in_chunks(owner_ids, fetch_owner, self.chunk_size, kind='owner'),
        )

        logger.info(
            'references.resolved',
            companies=f'{len(companies)}/{len(company_ids)}',
            contacts=f'{len(contacts)}/{len(contact_ids)}',
            owners=f'{len(owners)}/{len(owner_ids)}',
        )
        return ReferenceMaps(companies=companies, contacts=contacts, owners=owners)
