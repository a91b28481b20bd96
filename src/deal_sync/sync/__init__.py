"""
Deal sync components: stage resolution, deal fetching, reference resolution,
normalization, engagement aggregation, and orchestration.
"""

from .engagements import (
    AssociationWalkStrategy,
    EngagementAggregator,
    EngagementStrategy,
    EngagementTimeline,
    SearchStrategy,
    TypeFetchOutcome,
    normalize_engagement,
)
from .fetcher import DealFetcher
from .normalizer import last_engagement_date, normalize_deal, parse_amount
from .references import ReferenceMaps, ReferenceResolver, gather_in_chunks
from .stages import (
    DEFAULT_STAGE_RULES,
    StageMapEntry,
    StageResolution,
    StageResolver,
    StageRule,
    build_stage_map,
    classify_stage,
)
from .syncer import DealDetail, DealSyncer, SyncResult

__all__ = [
    # Orchestrator
    'DealSyncer',
    'SyncResult',
    'DealDetail',
    # Stages
    'StageResolver',
    'StageResolution',
    'StageMapEntry',
    'StageRule',
    'DEFAULT_STAGE_RULES',
    'build_stage_map',
    'classify_stage',
    # Deals
    'DealFetcher',
    'ReferenceResolver',
    'ReferenceMaps',
    'gather_in_chunks',
    'normalize_deal',
    'parse_amount',
    'last_engagement_date',
    # Engagements
    'EngagementAggregator',
    'EngagementStrategy',
    'SearchStrategy',
    'AssociationWalkStrategy',
    'EngagementTimeline',
    'TypeFetchOutcome',
    'normalize_engagement',
]
