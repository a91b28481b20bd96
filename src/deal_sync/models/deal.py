"""
Deal, reference, and statistics models for the HubSpot deal sync engine.

NormalizedDeal is the canonical unit handed to persistence. It joins a raw
HubSpot deal with resolved stage, pipeline, company, contact and owner data,
while keeping the raw ``properties`` blob verbatim.

Key design decisions:
- DealStage is the application's fixed 7-value enum, independent of any
  HubSpot stage vocabulary
- companies/contacts hold only references that actually resolved
- Field names are snake_case; to_record() is the flat row the store writes
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DealStage(str, Enum):
    """Canonical deal stage."""

    QUALIFIED = 'qualified'
    DISCOVERY = 'discovery'
    DEMO = 'demo'
    PROPOSAL = 'proposal'
    NEGOTIATION = 'negotiation'
    CLOSED_WON = 'closed_won'
    CLOSED_LOST = 'closed_lost'


class CompanyRef(BaseModel):
    """A company associated with a deal."""

    id: str
    name: str
    domain: str | None = None
    industry: str | None = None

    @classmethod
    def from_hubspot(cls, raw: dict[str, Any]) -> 'CompanyRef':
        props = raw.get('properties') or {}
        return cls(
            id=str(raw['id']),
            name=props.get('name') or 'Unknown Company',
            domain=props.get('domain') or None,
            industry=props.get('industry') or None,
        )


class ContactRef(BaseModel):
    """A contact associated with a deal."""

    id: str
    name: str
    email: str | None = None
    job_title: str | None = None
    phone: str | None = None

    @classmethod
    def from_hubspot(cls, raw: dict[str, Any]) -> 'ContactRef':
        props = raw.get('properties') or {}
        full_name = ' '.join(
            part for part in (props.get('firstname'), props.get('lastname')) if part
        )
        return cls(
            id=str(raw['id']),
            name=full_name or props.get('email') or 'Unknown Contact',
            email=props.get('email') or None,
            job_title=props.get('jobtitle') or None,
            phone=props.get('phone') or None,
        )


class OwnerRef(BaseModel):
    """A HubSpot user that owns deals."""

    id: str
    name: str
    email: str | None = None

    @classmethod
    def from_hubspot(cls, raw: dict[str, Any]) -> 'OwnerRef':
        full_name = ' '.join(
            part for part in (raw.get('firstName'), raw.get('lastName')) if part
        )
        return cls(
            id=str(raw['id']),
            name=full_name or raw.get('email') or 'Unknown',
            email=raw.get('email') or None,
        )


class NormalizedDeal(BaseModel):
    """
    A HubSpot deal joined with its resolved references.

    ``stage`` is canonical; ``hubspot_stage_id``/``hubspot_stage_label`` keep
    the CRM's own vocabulary for display.
    """

    hubspot_id: str = Field(..., description='HubSpot deal id')
    name: str

    # Stage
    stage: DealStage = DealStage.QUALIFIED
    hubspot_stage_id: str | None = None
    hubspot_stage_label: str = 'Unknown'

    # Pipeline
    pipeline_id: str | None = None
    pipeline_name: str | None = None

    # Money and dates
    amount: float | None = None
    close_date: str | None = Field(default=None, description='ISO date string, not validated')

    # Owner
    owner_id: str | None = None
    owner_name: str | None = None

    # Primary company (first association) for flat display
    company_id: str | None = None
    company_name: str | None = None

    # All resolved associations
    companies: list[CompanyRef] = Field(default_factory=list)
    contacts: list[ContactRef] = Field(default_factory=list)

    last_engagement_date: str | None = Field(
        default=None, description='Latest of the deal-level activity timestamps'
    )

    properties: dict[str, Any] = Field(
        default_factory=dict, description='Raw HubSpot properties, verbatim'
    )

    def to_record(self, synced_at: datetime | None = None) -> dict[str, Any]:
        """Flatten to the row shape written by the deal store."""
        return {
            'hubspot_id': self.hubspot_id,
            'name': self.name,
            'stage': self.stage.value,
            'hubspot_stage_id': self.hubspot_stage_id,
            'hubspot_stage_label': self.hubspot_stage_label,
            'pipeline_id': self.pipeline_id,
            'pipeline_name': self.pipeline_name,
            'amount': self.amount,
            'close_date': self.close_date,
            'owner_id': self.owner_id,
            'owner_name': self.owner_name,
            'company_id': self.company_id,
            'company_name': self.company_name,
            'companies': [c.model_dump() for c in self.companies],
            'contacts': [c.model_dump() for c in self.contacts],
            'last_engagement_date': self.last_engagement_date,
            'properties': self.properties,
            'last_synced_at': synced_at or datetime.now(tz=timezone.utc),
        }


class DealStats(BaseModel):
    """Counts and value totals over a set of deals."""

    total: int = 0
    by_stage: dict[DealStage, int] = Field(
        default_factory=lambda: {stage: 0 for stage in DealStage}
    )
    total_value: float = 0.0

    @classmethod
    def from_deals(cls, deals: list[NormalizedDeal]) -> 'DealStats':
        stats = cls()
        for deal in deals:
            stats.total += 1
            stats.by_stage[deal.stage] += 1
            if deal.amount:
                stats.total_value += deal.amount
        return stats
