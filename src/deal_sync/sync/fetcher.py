"""
Paginated deal fetcher.

Walks the HubSpot deal collection by cursor and keeps only the deals of the
requested pipeline. The list endpoint cannot filter by pipeline, so filtering
happens client-side after each page.
"""

from typing import Any, Callable

import structlog

from ..budget import SyncBudget
from ..clients.hubspot_client import HubSpotClient
from ..config import get_settings

logger = structlog.get_logger(__name__)

DEAL_PROPERTIES = [
    'dealname',
    'amount',
    'dealstage',
    'pipeline',
    'closedate',
    'hubspot_owner_id',
    'createdate',
    'hs_lastmodifieddate',
    'hs_last_sales_activity_timestamp',
    'hs_latest_meeting_activity',
    'hs_sales_email_last_replied',
    'notes_last_updated',
]

DEAL_ASSOCIATIONS = ['companies', 'contacts']

ProgressCallback = Callable[[int, int], None]


class DealFetcher:
    """Cursor pagination over /crm/v3/objects/deals with a page ceiling."""

    def __init__(
        self,
        client: HubSpotClient,
        page_size: int | None = None,
        max_pages: int | None = None,
    ):
        """
        Args:
            client: HubSpot client
            page_size: Deals per page (default: HUBSPOT_PAGE_SIZE, max 100)
            max_pages: Page ceiling per sync (default: HUBSPOT_MAX_PAGES)
        """
        settings = get_settings()
        self.client = client
        self.page_size = page_size or settings.HUBSPOT_PAGE_SIZE
        self.max_pages = max_pages or settings.HUBSPOT_MAX_PAGES

    async def fetch_all_deals(
        self,
        pipeline_id: str,
        budget: SyncBudget | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch every deal in ``pipeline_id``.

        Stops when HubSpot returns no cursor or after ``max_pages`` requests,
        whichever comes first. Hitting the ceiling is logged and the deals
        gathered so far are returned.

        Args:
            pipeline_id: Pipeline to keep
            budget: Optional sync budget
            on_progress: Called with (pages_fetched, deals_kept) after each page

        Returns:
            Raw deal records, in the order HubSpot returned them

        Raises:
            HubSpotError: Any page request failed
        """
        deals: list[dict[str, Any]] = []
        after: str | None = None
        pages = 0

        while pages < self.max_pages:
            page = await self.client.list_deals_page(
                properties=DEAL_PROPERTIES,
                associations=DEAL_ASSOCIATIONS,
                limit=self.page_size,
                after=after,
                budget=budget,
            )
            pages += 1

            results = page.get('results') or []
            kept = [
                deal for deal in results
                if (deal.get('properties') or {}).get('pipeline') == pipeline_id
            ]
            deals.extend(kept)

            logger.debug(
                'deal_fetcher.page_fetched',
                page=pages,
                received=len(results),
                kept=len(kept),
                total_kept=len(deals),
            )
            if on_progress is not None:
                on_progress(pages, len(deals))

            after = ((page.get('paging') or {}).get('next') or {}).get('after')
            if not after:
                break
        else:
            if after:
                logger.warning(
                    'deal_fetcher.page_limit_reached',
                    max_pages=self.max_pages,
                    deals_kept=len(deals),
                )

        logger.info('deal_fetcher.completed', pages=pages, deals=len(deals))
        return deals
