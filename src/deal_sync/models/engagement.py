"""
Engagement models: the normalized activity timeline of a deal.

Engagement is discriminated by ``type``. Fields that do not apply to a type
stay None and are omitted by to_dict(); nothing is defaulted.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EngagementType(str, Enum):
    """HubSpot engagement object types aggregated per deal."""

    EMAIL = 'email'
    CALL = 'call'
    MEETING = 'meeting'
    NOTE = 'note'
    TASK = 'task'

    @property
    def object_type(self) -> str:
        """HubSpot CRM v3 object path segment (e.g. 'calls')."""
        return f'{self.value}s'


class Engagement(BaseModel):
    """One normalized activity record."""

    id: str
    type: EngagementType
    timestamp: datetime = Field(..., description='Aware UTC datetime; never None')
    subject: str | None = None
    body: str | None = None
    direction: str | None = None
    status: str | None = None
    duration: int | None = Field(default=None, description='Call length in seconds')
    outcome: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize, dropping fields that do not apply to this type."""
        return self.model_dump(mode='json', exclude_none=True)


class EngagementSummary(BaseModel):
    """Per-type counts and recency over a deal's engagements."""

    total: int = 0
    by_type: dict[EngagementType, int] = Field(
        default_factory=lambda: {t: 0 for t in EngagementType}
    )
    most_recent: datetime | None = None

    @classmethod
    def from_engagements(cls, engagements: list[Engagement]) -> 'EngagementSummary':
        summary = cls()
        for engagement in engagements:
            summary.total += 1
            summary.by_type[engagement.type] += 1
            if summary.most_recent is None or engagement.timestamp > summary.most_recent:
                summary.most_recent = engagement.timestamp
        return summary
