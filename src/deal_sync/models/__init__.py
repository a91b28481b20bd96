"""
Data models for the HubSpot deal sync engine.
"""

from .deal import CompanyRef, ContactRef, DealStage, DealStats, NormalizedDeal, OwnerRef
from .engagement import Engagement, EngagementSummary, EngagementType
from .pipeline import Pipeline, PipelineStage

__all__ = [
    'DealStage',
    'CompanyRef',
    'ContactRef',
    'OwnerRef',
    'NormalizedDeal',
    'DealStats',
    'Engagement',
    'EngagementType',
    'EngagementSummary',
    'Pipeline',
    'PipelineStage',
]
