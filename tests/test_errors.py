"""
Tests for the errors module.
"""

import httpx
import pytest

from deal_sync.errors import (
    ClientError,
    DealSyncError,
    EngagementFetchError,
    HubSpotAuthError,
    HubSpotConnectionError,
    HubSpotError,
    HubSpotNotFoundError,
    HubSpotRateLimitError,
    PartialSuccessResult,
    PipelineNotFoundError,
    SyncAbortedError,
    SyncCancelledError,
    SyncError,
    SyncTimeoutError,
    error_from_response,
    wrap_http_error,
)


def _response(status: int, **kwargs) -> httpx.Response:
    request = httpx.Request('GET', 'https://api.hubapi.com/crm/v3/objects/deals')
    return httpx.Response(status, request=request, **kwargs)


class TestErrorHierarchy:
    """Test error class hierarchy."""

    def test_base_error_with_context(self):
        error = DealSyncError('Something went wrong', context={'deal_id': '42'})

        assert error.message == 'Something went wrong'
        assert error.context == {'deal_id': '42'}
        assert 'deal_id' in str(error)

    def test_base_error_without_context(self):
        error = DealSyncError('Simple error')

        assert error.context == {}
        assert str(error) == 'Simple error'

    def test_hubspot_errors_are_client_errors(self):
        for cls in (HubSpotAuthError, HubSpotNotFoundError, HubSpotRateLimitError, HubSpotConnectionError):
            error = cls('boom')
            assert isinstance(error, HubSpotError)
            assert isinstance(error, ClientError)

    def test_abort_errors_are_sync_errors(self):
        assert isinstance(SyncTimeoutError('t'), SyncAbortedError)
        assert isinstance(SyncCancelledError('c'), SyncAbortedError)
        assert isinstance(SyncCancelledError('c'), SyncError)

    def test_pipeline_not_found_carries_available_ids(self):
        error = PipelineNotFoundError('missing', available=['default', 'renewals'])

        assert error.pipeline_id == 'missing'
        assert error.available == ['default', 'renewals']
        assert "'missing'" in error.message

    def test_engagement_fetch_error_context(self):
        error = EngagementFetchError('search failed', engagement_type='call', strategy='search')

        assert error.context['engagement_type'] == 'call'
        assert error.context['strategy'] == 'search'


class TestErrorFromResponse:
    """Test mapping of HTTP responses onto HubSpotError."""

    def test_message_from_body(self):
        error = error_from_response(_response(400, json={'message': 'Property values were not valid'}))

        assert type(error) is HubSpotError
        assert error.status == 400
        assert error.message == 'HubSpot API error: 400 - Property values were not valid'
        assert error.context['path'] == '/crm/v3/objects/deals'

    def test_unparseable_body_gives_unknown_error(self):
        error = error_from_response(_response(502, text='<html>Bad Gateway</html>'))

        assert error.message == 'HubSpot API error: 502 - Unknown error'

    def test_body_without_message_gives_unknown_error(self):
        error = error_from_response(_response(500, json={'status': 'error'}))

        assert error.message.endswith('Unknown error')

    @pytest.mark.parametrize('status', [401, 403])
    def test_auth_statuses(self, status):
        assert isinstance(error_from_response(_response(status)), HubSpotAuthError)

    def test_not_found(self):
        assert isinstance(error_from_response(_response(404)), HubSpotNotFoundError)

    def test_rate_limit_reads_retry_after(self):
        error = error_from_response(_response(429, headers={'Retry-After': '10'}))

        assert isinstance(error, HubSpotRateLimitError)
        assert error.retry_after == 10.0

    def test_rate_limit_without_header(self):
        error = error_from_response(_response(429))

        assert error.retry_after is None


class TestWrapHttpError:
    """Test wrapping of httpx transport exceptions."""

    def test_timeout(self):
        wrapped = wrap_http_error(httpx.ReadTimeout('timed out'), context={'operation': 'GET /x'})

        assert isinstance(wrapped, HubSpotConnectionError)
        assert wrapped.status is None
        assert 'timed out' in wrapped.message
        assert wrapped.context['operation'] == 'GET /x'
        assert wrapped.context['error_type'] == 'ReadTimeout'

    def test_connect_error(self):
        wrapped = wrap_http_error(httpx.ConnectError('refused'))

        assert isinstance(wrapped, HubSpotConnectionError)
        assert 'failed' in wrapped.message


class TestPartialSuccessResult:
    """Test partial success handling."""

    def test_counts_and_serialization(self):
        result = PartialSuccessResult()
        result.add_success(item_id='1')
        result.add_success(item_id='2')
        result.add_failure(DealSyncError('write failed'), item_id='3')

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.total_count == 3
        assert not result.all_succeeded

        data = result.to_dict()
        assert data['succeeded_ids'] == ['1', '2']
        assert data['failed_ids'] == ['3']
        assert data['errors'][0]['error'] == 'write failed'

    def test_empty_result_all_succeeded(self):
        assert PartialSuccessResult().all_succeeded
