"""
Tests for the HubSpot transport and endpoint helpers.

All requests go through httpx.MockTransport; nothing touches the network.
"""

import json
from types import SimpleNamespace

import httpx
import pytest

from deal_sync.budget import SyncBudget
from deal_sync.clients.hubspot_client import HubSpotClient, record_url
from deal_sync.errors import (
    HubSpotConnectionError,
    HubSpotError,
    HubSpotNotFoundError,
    SyncCancelledError,
    SyncTimeoutError,
)


def make_client(handler) -> tuple[HubSpotClient, list[httpx.Request]]:
    """Client whose transport records requests and answers via ``handler``."""
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = HubSpotClient(
        access_token='pat-test',
        base_url='https://api.hubapi.com',
        timeout=5.0,
        transport=httpx.MockTransport(_handler),
    )
    return client, seen


class TestRequest:
    """Test the authenticated request primitive."""

    def test_requires_token(self, monkeypatch):
        monkeypatch.setattr(
            'deal_sync.clients.hubspot_client.get_settings',
            lambda: SimpleNamespace(
                HUBSPOT_ACCESS_TOKEN='',
                HUBSPOT_API_BASE='https://api.hubapi.com',
                REQUEST_TIMEOUT_SECONDS=30.0,
            ),
        )
        with pytest.raises(ValueError, match='HUBSPOT_ACCESS_TOKEN'):
            HubSpotClient()

    @pytest.mark.asyncio
    async def test_injects_auth_and_content_type(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={'ok': True}))

        async with client:
            data = await client.request('GET', '/crm/v3/owners/7')

        assert data == {'ok': True}
        assert seen[0].headers['Authorization'] == 'Bearer pat-test'
        assert seen[0].headers['Content-Type'] == 'application/json'
        assert str(seen[0].url) == 'https://api.hubapi.com/crm/v3/owners/7'

    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_body_message(self):
        client, seen = make_client(
            lambda r: httpx.Response(400, json={'message': 'Invalid input JSON'})
        )

        async with client:
            with pytest.raises(HubSpotError) as exc_info:
                await client.request('POST', '/crm/v3/objects/notes', json={})

        assert exc_info.value.status == 400
        assert exc_info.value.message == 'HubSpot API error: 400 - Invalid input JSON'
        assert len(seen) == 1  # never retried

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        client, _ = make_client(lambda r: httpx.Response(503, text='upstream down'))

        async with client:
            with pytest.raises(HubSpotError, match='503 - Unknown error'):
                await client.request('GET', '/crm/v3/pipelines/deals')

    @pytest.mark.asyncio
    async def test_not_found_subclass(self):
        client, _ = make_client(lambda r: httpx.Response(404, json={'message': 'Not found'}))

        async with client:
            with pytest.raises(HubSpotNotFoundError):
                await client.get_company('999')

    @pytest.mark.asyncio
    async def test_empty_body_returns_empty_dict(self):
        client, _ = make_client(lambda r: httpx.Response(204))

        async with client:
            assert await client.request('DELETE', '/crm/v3/objects/tasks/1') == {}

    @pytest.mark.asyncio
    async def test_network_failure_wrapped(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        client, _ = make_client(handler)

        async with client:
            with pytest.raises(HubSpotConnectionError) as exc_info:
                await client.get_pipelines()

        assert exc_info.value.status is None
        assert exc_info.value.context['operation'] == 'GET /crm/v3/pipelines/deals'

    @pytest.mark.asyncio
    async def test_cancelled_budget_blocks_request(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={}))
        budget = SyncBudget.unlimited()
        budget.cancel()

        async with client:
            with pytest.raises(SyncCancelledError):
                await client.get_pipelines(budget=budget)

        assert seen == []

    @pytest.mark.asyncio
    async def test_expired_budget_blocks_request(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={}))
        budget = SyncBudget(0.0)

        async with client:
            with pytest.raises(SyncTimeoutError):
                await client.get_owner('7', budget=budget)

        assert seen == []


class TestEndpointHelpers:
    """Test the thin endpoint wrappers."""

    @pytest.mark.asyncio
    async def test_get_pipelines_returns_results(self, pipelines_payload):
        client, _ = make_client(lambda r: httpx.Response(200, json={'results': pipelines_payload}))

        async with client:
            pipelines = await client.get_pipelines()

        assert [p['id'] for p in pipelines] == ['default', 'renewals']

    @pytest.mark.asyncio
    async def test_list_deals_page_query_params(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={'results': []}))

        async with client:
            await client.list_deals_page(
                properties=['dealname', 'amount'],
                associations=['companies', 'contacts'],
                limit=100,
                after='abc',
            )

        params = seen[0].url.params
        assert seen[0].url.path == '/crm/v3/objects/deals'
        assert params['limit'] == '100'
        assert params['properties'] == 'dealname,amount'
        assert params['associations'] == 'companies,contacts'
        assert params['after'] == 'abc'

    @pytest.mark.asyncio
    async def test_first_page_has_no_cursor(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={'results': []}))

        async with client:
            await client.list_deals_page(properties=['dealname'])

        assert 'after' not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_search_objects_posts_body(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={'results': []}))
        body = {'filterGroups': [], 'limit': 10}

        async with client:
            await client.search_objects('calls', body)

        assert seen[0].method == 'POST'
        assert seen[0].url.path == '/crm/v3/objects/calls/search'
        assert json.loads(seen[0].content) == body

    @pytest.mark.asyncio
    async def test_get_associations_follows_cursor_and_dedupes(self):
        pages = [
            {
                'results': [{'id': '1', 'type': 'deal_to_call'}, {'id': '2', 'type': 'deal_to_call'}],
                'paging': {'next': {'after': 'p2'}},
            },
            {'results': [{'id': '2', 'type': 'labelled'}, {'id': '3', 'type': 'deal_to_call'}]},
        ]

        def handler(request):
            return httpx.Response(200, json=pages.pop(0))

        client, seen = make_client(handler)

        async with client:
            ids = await client.get_associations('deals', '1001', 'calls')

        assert ids == ['1', '2', '3']
        assert seen[0].url.path == '/crm/v3/objects/deals/1001/associations/calls'
        assert seen[1].url.params['after'] == 'p2'

    @pytest.mark.asyncio
    async def test_get_portal_id(self):
        client, seen = make_client(lambda r: httpx.Response(200, json={'portalId': 4242}))

        async with client:
            assert await client.get_portal_id() == 4242

        assert seen[0].url.path == '/account-info/v3/details'

    @pytest.mark.asyncio
    async def test_create_task_associates_with_deal(self):
        client, seen = make_client(lambda r: httpx.Response(201, json={'id': '555'}))

        async with client:
            task_id = await client.create_task(
                'Send contract',
                object_type='deal',
                object_id='1001',
                body='Redlines from legal',
                due_date='2024-05-01T00:00:00Z',
                priority='HIGH',
            )

        assert task_id == '555'
        payload = json.loads(seen[0].content)
        assert seen[0].url.path == '/crm/v3/objects/tasks'
        assert payload['properties']['hs_task_subject'] == 'Send contract'
        assert payload['properties']['hs_task_priority'] == 'HIGH'
        assert payload['properties']['hs_timestamp'] == '2024-05-01T00:00:00Z'
        assert payload['associations'][0]['to'] == {'id': '1001'}
        assert payload['associations'][0]['types'][0]['associationTypeId'] == 216

    @pytest.mark.asyncio
    async def test_create_task_rejects_bad_priority(self):
        client, seen = make_client(lambda r: httpx.Response(201, json={'id': '1'}))

        async with client:
            with pytest.raises(ValueError):
                await client.create_task('x', object_type='deal', object_id='1', priority='URGENT')

        assert seen == []

    @pytest.mark.asyncio
    async def test_create_note_on_contact(self):
        client, seen = make_client(lambda r: httpx.Response(201, json={'id': '777'}))

        async with client:
            note_id = await client.create_note('Met at conference', object_type='contact', object_id='51')

        assert note_id == '777'
        payload = json.loads(seen[0].content)
        assert payload['properties']['hs_note_body'] == 'Met at conference'
        assert payload['associations'][0]['types'][0]['associationTypeId'] == 202

    @pytest.mark.asyncio
    async def test_create_note_rejects_unknown_object_type(self):
        client, _ = make_client(lambda r: httpx.Response(201, json={'id': '1'}))

        async with client:
            with pytest.raises(ValueError):
                await client.create_note('x', object_type='ticket', object_id='1')


class TestRecordUrl:
    """Test HubSpot UI link building."""

    def test_deal_url(self):
        assert record_url(4242, 'deal', '1001') == 'https://app.hubspot.com/contacts/4242/record/0-3/1001'

    def test_custom_app_host(self):
        url = record_url(4242, 'contact', '51', app_base='https://app-eu1.hubspot.com/')
        assert url == 'https://app-eu1.hubspot.com/contacts/4242/record/0-1/51'

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            record_url(1, 'ticket', '1')
