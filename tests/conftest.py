"""
Pytest configuration and shared fixtures.

Key fixtures:
- pipelines_payload: Raw /crm/v3/pipelines/deals results (two pipelines)
- make_deal: Builder for raw HubSpot deal records
- hubspot_token: Live token from environment (skips when unset)

Unit tests never touch the network: transport tests use httpx.MockTransport,
higher layers use AsyncMock or small fakes.
"""

import os
import sys
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)


@pytest.fixture
def hubspot_token() -> str:
    """Get a live HubSpot token from environment."""
    token = os.getenv('HUBSPOT_ACCESS_TOKEN')
    if not token:
        pytest.skip('HUBSPOT_ACCESS_TOKEN not set')
    return token


@pytest.fixture
def pipelines_payload() -> list[dict[str, Any]]:
    """Two deal pipelines as HubSpot returns them."""
    return [
        {
            'id': 'default',
            'label': 'Sales Pipeline',
            'displayOrder': 0,
            'stages': [
                {'id': 'closedwon', 'label': 'Closed Won', 'displayOrder': 5, 'metadata': {'probability': '1.0'}},
                {'id': 'appointmentscheduled', 'label': 'Appointment Scheduled', 'displayOrder': 0},
                {'id': 'qualifiedtobuy', 'label': 'Qualified To Buy', 'displayOrder': 1},
                {'id': 'presentationscheduled', 'label': 'Presentation Scheduled', 'displayOrder': 2},
                {'id': 'decisionmakerboughtin', 'label': 'Decision Maker Bought-In', 'displayOrder': 3},
                {'id': 'contractsent', 'label': 'Contract Sent', 'displayOrder': 4},
                {'id': 'closedlost', 'label': 'Closed Lost', 'displayOrder': 6},
            ],
        },
        {
            'id': 'renewals',
            'label': 'Renewals',
            'displayOrder': 1,
            'stages': [
                {'id': 'r_discovery', 'label': 'Discovery Call', 'displayOrder': 0},
            ],
        },
    ]


@pytest.fixture
def make_deal():
    """Build a raw HubSpot deal record."""

    def _make(
        deal_id: str = '1001',
        pipeline: str = 'default',
        stage: str | None = 'qualifiedtobuy',
        companies: list[str] | None = None,
        contacts: list[str] | None = None,
        **properties: Any,
    ) -> dict[str, Any]:
        props: dict[str, Any] = {
            'dealname': f'Deal {deal_id}',
            'pipeline': pipeline,
        }
        if stage is not None:
            props['dealstage'] = stage
        props.update(properties)

        deal: dict[str, Any] = {'id': deal_id, 'properties': props}
        associations: dict[str, Any] = {}
        if companies:
            associations['companies'] = {
                'results': [{'id': c, 'type': 'deal_to_company'} for c in companies]
            }
        if contacts:
            associations['contacts'] = {
                'results': [{'id': c, 'type': 'deal_to_contact'} for c in contacts]
            }
        if associations:
            deal['associations'] = associations
        return deal

    return _make
