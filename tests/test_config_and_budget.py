"""
Tests for settings and the sync budget.
"""

import time

import pytest

from deal_sync.budget import SyncBudget
from deal_sync.config import Settings
from deal_sync.errors import SyncCancelledError, SyncTimeoutError


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for key in ('HUBSPOT_API_BASE', 'HUBSPOT_PAGE_SIZE', 'HUBSPOT_MAX_PAGES', 'REFERENCE_CHUNK_SIZE'):
            monkeypatch.delenv(key, raising=False)

        settings = Settings()

        assert settings.HUBSPOT_API_BASE == 'https://api.hubapi.com'
        assert settings.HUBSPOT_PAGE_SIZE == 100
        assert settings.HUBSPOT_MAX_PAGES == 50
        assert settings.REFERENCE_CHUNK_SIZE == 10

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv('HUBSPOT_PAGE_SIZE', '25')
        monkeypatch.setenv('SYNC_TIMEOUT_SECONDS', '120')

        settings = Settings()

        assert settings.HUBSPOT_PAGE_SIZE == 25
        assert settings.SYNC_TIMEOUT_SECONDS == 120.0

    def test_page_size_capped_at_100(self, monkeypatch):
        monkeypatch.setenv('HUBSPOT_PAGE_SIZE', '500')

        with pytest.raises(ValueError):
            Settings()

    def test_validate_required(self, monkeypatch):
        monkeypatch.setenv('HUBSPOT_ACCESS_TOKEN', '')
        assert Settings().validate_required() == ['HUBSPOT_ACCESS_TOKEN']

        monkeypatch.setenv('HUBSPOT_ACCESS_TOKEN', 'pat-na1-test')
        assert Settings().validate_required() == []


class TestSyncBudget:
    """Test deadline and cancellation handling."""

    def test_unlimited_budget(self):
        budget = SyncBudget.unlimited()

        budget.check('GET /x')
        assert budget.remaining() is None
        assert budget.timeout_for('GET /x', 30.0) == 30.0

    def test_timeout_capped_by_remaining(self):
        budget = SyncBudget(5.0)

        assert budget.timeout_for('GET /x', 30.0) <= 5.0
        assert budget.timeout_for('GET /x', 1.0) == 1.0

    def test_expired_budget_raises(self):
        budget = SyncBudget(0.001)
        time.sleep(0.01)

        assert budget.expired
        with pytest.raises(SyncTimeoutError) as exc_info:
            budget.check('GET /crm/v3/objects/deals')
        assert exc_info.value.context['operation'] == 'GET /crm/v3/objects/deals'

    def test_cancelled_budget_raises(self):
        budget = SyncBudget(60.0)
        budget.cancel('user navigated away')

        assert budget.cancelled
        with pytest.raises(SyncCancelledError, match='user navigated away'):
            budget.timeout_for('GET /x', 30.0)
