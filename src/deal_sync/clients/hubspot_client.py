"""
HubSpot CRM client for the deal sync engine.

Handles:
- Authenticated requests (bearer token, JSON content type) via httpx
- Mapping every non-2xx response onto the typed HubSpotError hierarchy
- Per-request timeouts capped by the caller's SyncBudget
- Thin endpoint helpers for pipelines, deals, companies, contacts, owners,
  engagement search, associations, account info, and task/note creation

The client holds no business logic and never retries; callers decide what a
failure means.
"""

from datetime import datetime, timezone
from typing import Any, Sequence

import httpx
import structlog

from ..budget import SyncBudget
from ..config import get_settings
from ..errors import error_from_response, wrap_http_error

logger = structlog.get_logger(__name__)

HUBSPOT_API_BASE = 'https://api.hubapi.com'
HUBSPOT_APP_BASE = 'https://app.hubspot.com'

COMPANY_PROPERTIES = ['name', 'domain', 'industry', 'city', 'country']
CONTACT_PROPERTIES = ['firstname', 'lastname', 'email', 'jobtitle', 'phone', 'company']

# HubSpot-defined association type ids for engagements this client creates
_WRITE_ASSOCIATION_TYPE_IDS: dict[str, dict[str, int]] = {
    'tasks': {'contact': 204, 'company': 192, 'deal': 216},
    'notes': {'contact': 202, 'company': 190, 'deal': 214},
}

# Object type ids used in HubSpot record URLs
_RECORD_TYPE_IDS = {'contact': '0-1', 'company': '0-2', 'deal': '0-3'}

TASK_PRIORITIES = ('LOW', 'MEDIUM', 'HIGH')


def record_url(
    portal_id: int,
    object_type: str,
    object_id: str,
    app_base: str = HUBSPOT_APP_BASE,
) -> str:
    """
    Build the HubSpot UI link for a contact, company, or deal.

    Args:
        portal_id: HubSpot portal (account) id
        object_type: 'contact', 'company', or 'deal'
        object_id: HubSpot object id
        app_base: HubSpot app host (EU portals use app-eu1.hubspot.com)

    Returns:
        Record URL
    """
    type_id = _RECORD_TYPE_IDS.get(object_type)
    if type_id is None:
        raise ValueError(f'Unsupported object type for record URL: {object_type}')
    return f"{app_base.rstrip('/')}/contacts/{portal_id}/record/{type_id}/{object_id}"


class HubSpotClient:
    """
    Async HubSpot REST client.

    Configuration via environment variables (see Settings):
    - HUBSPOT_ACCESS_TOKEN: Private app / OAuth access token
    - HUBSPOT_API_BASE: API host (default: https://api.hubapi.com)
    - REQUEST_TIMEOUT_SECONDS: Per-request timeout

    One instance serves one credential context. All per-sync state lives in
    values passed by the caller, so one instance can serve concurrent syncs.
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the HubSpot client.

        Args:
            access_token: Bearer token (defaults to HUBSPOT_ACCESS_TOKEN)
            base_url: API host (defaults to HUBSPOT_API_BASE)
            timeout: Per-request timeout in seconds (defaults to REQUEST_TIMEOUT_SECONDS)
            transport: Optional httpx transport (used by tests)
        """
        settings = get_settings()
        self.access_token = access_token or settings.HUBSPOT_ACCESS_TOKEN
        self.base_url = (base_url or settings.HUBSPOT_API_BASE or HUBSPOT_API_BASE).rstrip('/')
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS

        if not self.access_token:
            raise ValueError('HUBSPOT_ACCESS_TOKEN environment variable is required')

        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client. Idempotent."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    'Authorization': f'Bearer {self.access_token}',
                    'Content-Type': 'application/json',
                },
                timeout=self.timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> 'HubSpotClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """
        Issue one authenticated request.

        Args:
            method: HTTP method
            path: Path below the API base (e.g. /crm/v3/objects/deals)
            params: Query parameters
            json: JSON body
            budget: Optional sync budget; checked first and caps the timeout

        Returns:
            Parsed JSON body ({} for empty responses)

        Raises:
            HubSpotError: Any non-2xx status (subclass chosen by status)
            HubSpotConnectionError: Network failure or timeout
            SyncTimeoutError / SyncCancelledError: Budget spent or cancelled
        """
        operation = f'{method} {path}'
        timeout = budget.timeout_for(operation, self.timeout) if budget else self.timeout

        await self.connect()
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            raise wrap_http_error(exc, context={'operation': operation}) from exc

        if not response.is_success:
            error = error_from_response(response)
            logger.debug(
                'hubspot_client.request_failed',
                operation=operation,
                status=response.status_code,
                error=error.message,
            )
            raise error

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # =========================================================================
    # Pipelines and account
    # =========================================================================

    async def get_pipelines(self, budget: SyncBudget | None = None) -> list[dict[str, Any]]:
        """Fetch all deal pipelines with their stages."""
        data = await self.request('GET', '/crm/v3/pipelines/deals', budget=budget)
        return data.get('results', [])

    async def get_portal_id(self, budget: SyncBudget | None = None) -> int:
        """Fetch the HubSpot portal (account) id for this token."""
        data = await self.request('GET', '/account-info/v3/details', budget=budget)
        return int(data['portalId'])

    # =========================================================================
    # Deals
    # =========================================================================

    async def list_deals_page(
        self,
        properties: Sequence[str],
        associations: Sequence[str] = (),
        limit: int = 100,
        after: str | None = None,
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """
        Fetch one page of the deal collection.

        Returns the raw page: ``results`` plus ``paging.next.after`` when more
        pages exist. The endpoint cannot filter by pipeline.
        """
        params: dict[str, Any] = {
            'limit': limit,
            'properties': ','.join(properties),
        }
        if associations:
            params['associations'] = ','.join(associations)
        if after:
            params['after'] = after
        return await self.request('GET', '/crm/v3/objects/deals', params=params, budget=budget)

    async def get_deal(
        self,
        deal_id: str,
        properties: Sequence[str],
        associations: Sequence[str] = (),
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """Fetch a single deal with the given properties and associations."""
        params: dict[str, Any] = {'properties': ','.join(properties)}
        if associations:
            params['associations'] = ','.join(associations)
        return await self.request(
            'GET', f'/crm/v3/objects/deals/{deal_id}', params=params, budget=budget
        )

    # =========================================================================
    # Referenced objects
    # =========================================================================

    async def get_company(
        self,
        company_id: str,
        associations: Sequence[str] = (),
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """Fetch a company with display properties."""
        return await self.get_object(
            'companies', company_id, COMPANY_PROPERTIES, associations, budget=budget
        )

    async def get_contact(
        self,
        contact_id: str,
        associations: Sequence[str] = (),
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """Fetch a contact with display properties."""
        return await self.get_object(
            'contacts', contact_id, CONTACT_PROPERTIES, associations, budget=budget
        )

    async def get_owner(self, owner_id: str, budget: SyncBudget | None = None) -> dict[str, Any]:
        """Fetch a HubSpot owner (user)."""
        return await self.request('GET', f'/crm/v3/owners/{owner_id}', budget=budget)

    async def get_object(
        self,
        object_type: str,
        object_id: str,
        properties: Sequence[str],
        associations: Sequence[str] = (),
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """Fetch any CRM object by type and id."""
        params: dict[str, Any] = {'properties': ','.join(properties)}
        if associations:
            params['associations'] = ','.join(associations)
        return await self.request(
            'GET', f'/crm/v3/objects/{object_type}/{object_id}', params=params, budget=budget
        )

    # =========================================================================
    # Search and associations
    # =========================================================================

    async def search_objects(
        self,
        object_type: str,
        body: dict[str, Any],
        budget: SyncBudget | None = None,
    ) -> dict[str, Any]:
        """Run a CRM search (filter-group body) against one object type."""
        return await self.request(
            'POST', f'/crm/v3/objects/{object_type}/search', json=body, budget=budget
        )

    async def get_associations(
        self,
        from_type: str,
        from_id: str,
        to_type: str,
        budget: SyncBudget | None = None,
        max_pages: int = 50,
    ) -> list[str]:
        """
        List ids of ``to_type`` objects associated with one object.

        Follows the paging cursor up to ``max_pages``. HubSpot can list the
        same target twice (labelled and unlabelled association), so ids are
        deduplicated preserving order.
        """
        ids: list[str] = []
        seen: set[str] = set()
        after: str | None = None

        for _ in range(max_pages):
            params: dict[str, Any] = {'limit': 500}
            if after:
                params['after'] = after
            data = await self.request(
                'GET',
                f'/crm/v3/objects/{from_type}/{from_id}/associations/{to_type}',
                params=params,
                budget=budget,
            )
            for item in data.get('results', []):
                target = str(item.get('id') or item.get('toObjectId') or '')
                if target and target not in seen:
                    seen.add(target)
                    ids.append(target)

            after = ((data.get('paging') or {}).get('next') or {}).get('after')
            if not after:
                break

        return ids

    # =========================================================================
    # Write operations (tasks and notes)
    # =========================================================================

    async def create_task(
        self,
        subject: str,
        object_type: str,
        object_id: str,
        body: str | None = None,
        due_date: str | None = None,
        priority: str = 'MEDIUM',
        budget: SyncBudget | None = None,
    ) -> str:
        """
        Create a task associated with a deal, contact, or company.

        Args:
            subject: Task subject
            object_type: 'deal', 'contact', or 'company'
            object_id: HubSpot id of the associated object
            body: Optional task body
            due_date: Optional ISO due date (defaults to now)
            priority: LOW, MEDIUM, or HIGH

        Returns:
            The new task's HubSpot id
        """
        if priority not in TASK_PRIORITIES:
            raise ValueError(f'priority must be one of {TASK_PRIORITIES}, got {priority!r}')

        properties: dict[str, Any] = {
            'hs_task_subject': subject,
            'hs_task_status': 'NOT_STARTED',
            'hs_task_priority': priority,
            'hs_timestamp': due_date or _now_iso(),
        }
        if body:
            properties['hs_task_body'] = body

        return await self._create_engagement('tasks', properties, object_type, object_id, budget)

    async def create_note(
        self,
        body: str,
        object_type: str,
        object_id: str,
        budget: SyncBudget | None = None,
    ) -> str:
        """
        Create a note associated with a deal, contact, or company.

        Returns:
            The new note's HubSpot id
        """
        properties = {
            'hs_note_body': body,
            'hs_timestamp': _now_iso(),
        }
        return await self._create_engagement('notes', properties, object_type, object_id, budget)

    async def _create_engagement(
        self,
        engagement_object: str,
        properties: dict[str, Any],
        object_type: str,
        object_id: str,
        budget: SyncBudget | None,
    ) -> str:
        type_ids = _WRITE_ASSOCIATION_TYPE_IDS[engagement_object]
        if object_type not in type_ids:
            raise ValueError(
                f'object_type must be one of {sorted(type_ids)}, got {object_type!r}'
            )

        payload = {
            'properties': properties,
            'associations': [
                {
                    'to': {'id': object_id},
                    'types': [
                        {
                            'associationCategory': 'HUBSPOT_DEFINED',
                            'associationTypeId': type_ids[object_type],
                        }
                    ],
                }
            ],
        }
        data = await self.request(
            'POST', f'/crm/v3/objects/{engagement_object}', json=payload, budget=budget
        )
        logger.info(
            'hubspot_client.engagement_created',
            engagement_object=engagement_object,
            object_type=object_type,
            object_id=object_id,
            engagement_id=data.get('id'),
        )
        return str(data['id'])


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat().replace('+00:00', 'Z')
