"""
HubSpot Deal Sync

Pulls HubSpot deals with their pipelines, companies, contacts, owners and
engagement activity into normalized, display-ready records and upserts them
into a deal store.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .budget import SyncBudget
from .clients import HubSpotClient, PostgresDealStore, record_url
from .sync import (
    DealDetail,
    DealSyncer,
    SyncResult,
    StageRule,
    DEFAULT_STAGE_RULES,
)
from .repository import DealRepository, DealStore, UpsertResult
from .models import (
    DealStage,
    NormalizedDeal,
    DealStats,
    Engagement,
    EngagementType,
    EngagementSummary,
    Pipeline,
)
from .logging import (
    configure_logging,
    logging_context,
    PipelineTimer,
)
from .errors import (
    DealSyncError,
    HubSpotError,
    HubSpotAuthError,
    HubSpotNotFoundError,
    HubSpotRateLimitError,
    HubSpotConnectionError,
    PersistenceError,
    PipelineNotFoundError,
    SyncAbortedError,
    SyncTimeoutError,
    SyncCancelledError,
    PartialSuccessResult,
)

__all__ = [
    # Version
    '__version__',
    # Orchestrator
    'DealSyncer',
    'SyncResult',
    'DealDetail',
    'SyncBudget',
    'StageRule',
    'DEFAULT_STAGE_RULES',
    # Clients
    'HubSpotClient',
    'PostgresDealStore',
    'record_url',
    # Repository
    'DealRepository',
    'DealStore',
    'UpsertResult',
    # Models
    'DealStage',
    'NormalizedDeal',
    'DealStats',
    'Engagement',
    'EngagementType',
    'EngagementSummary',
    'Pipeline',
    # Logging
    'configure_logging',
    'logging_context',
    'PipelineTimer',
    # Errors
    'DealSyncError',
    'HubSpotError',
    'HubSpotAuthError',
    'HubSpotNotFoundError',
    'HubSpotRateLimitError',
    'HubSpotConnectionError',
    'PersistenceError',
    'PipelineNotFoundError',
    'SyncAbortedError',
    'SyncTimeoutError',
    'SyncCancelledError',
    'PartialSuccessResult',
]
