"""
Pipeline and stage resolution.

Maps HubSpot pipeline stage ids onto the canonical DealStage enum by matching
stage labels against an ordered rule list (first match wins, default
QUALIFIED). The resolution is a per-call value returned to the caller, never
cached on the resolver, so one resolver serves concurrent syncs for
different pipelines.

Default rule order:
- won -> closed_won, lost -> closed_lost (checked first so "Closed Won" never
  lands elsewhere)
- negotiat / contract -> negotiation
- proposal / quote / decision maker -> proposal
- demo / presentation -> demo
- discover -> discovery
- qualif -> qualified
"""

from dataclasses import dataclass, field
from typing import Callable, Sequence

import structlog

from ..budget import SyncBudget
from ..clients.hubspot_client import HubSpotClient
from ..errors import PipelineNotFoundError
from ..models.deal import DealStage
from ..models.pipeline import Pipeline

logger = structlog.get_logger(__name__)


# =============================================================================
# Stage Rules
# =============================================================================


@dataclass(frozen=True)
class StageRule:
    """A predicate over a lowercased stage label and the stage it selects."""

    predicate: Callable[[str], bool]
    stage: DealStage

    @classmethod
    def keywords(cls, stage: DealStage, *words: str) -> 'StageRule':
        """Rule matching when the label contains any of ``words``."""
        lowered = tuple(w.lower() for w in words)
        return cls(lambda label: any(w in label for w in lowered), stage)


DEFAULT_STAGE_RULES: tuple[StageRule, ...] = (
    StageRule.keywords(DealStage.CLOSED_WON, 'won'),
    StageRule.keywords(DealStage.CLOSED_LOST, 'lost'),
    StageRule.keywords(DealStage.NEGOTIATION, 'negotiat', 'contract'),
    StageRule.keywords(DealStage.PROPOSAL, 'proposal', 'quote', 'decision maker'),
    StageRule.keywords(DealStage.DEMO, 'demo', 'presentation'),
    StageRule.keywords(DealStage.DISCOVERY, 'discover'),
    StageRule.keywords(DealStage.QUALIFIED, 'qualif'),
)


def classify_stage(
    label: str,
    rules: Sequence[StageRule] = DEFAULT_STAGE_RULES,
) -> DealStage:
    """Return the stage of the first rule matching ``label``, else QUALIFIED."""
    lowered = (label or '').lower()
    for rule in rules:
        if rule.predicate(lowered):
            return rule.stage
    return DealStage.QUALIFIED


# =============================================================================
# Stage Resolution
# =============================================================================


@dataclass(frozen=True)
class StageMapEntry:
    """HubSpot stage label plus the canonical stage it maps to."""

    label: str
    stage: DealStage


@dataclass(frozen=True)
class StageResolution:
    """
    Everything the normalizer needs from pipeline metadata for one sync.

    ``pipeline_names`` covers every pipeline in the portal, not only the
    target one.
    """

    pipeline: Pipeline
    stage_map: dict[str, StageMapEntry] = field(default_factory=dict)
    pipeline_names: dict[str, str] = field(default_factory=dict)

    def lookup(self, stage_id: str | None) -> StageMapEntry:
        """
        Map a deal's ``dealstage`` value.

        Unknown ids fall back to QUALIFIED, labelled with the raw id (or
        "Unknown" when the deal has no stage at all).
        """
        if stage_id and stage_id in self.stage_map:
            return self.stage_map[stage_id]
        return StageMapEntry(label=stage_id or 'Unknown', stage=DealStage.QUALIFIED)

    def pipeline_name(self, pipeline_id: str | None) -> str | None:
        if not pipeline_id:
            return None
        return self.pipeline_names.get(pipeline_id)


def build_stage_map(
    pipeline: Pipeline,
    rules: Sequence[StageRule] = DEFAULT_STAGE_RULES,
) -> dict[str, StageMapEntry]:
    """Classify every stage of ``pipeline``."""
    return {
        stage.id: StageMapEntry(label=stage.label, stage=classify_stage(stage.label, rules))
        for stage in pipeline.stages
    }


class StageResolver:
    """Fetches deal pipelines and builds the stage map for one of them."""

    def __init__(
        self,
        client: HubSpotClient,
        rules: Sequence[StageRule] | None = None,
    ):
        """
        Args:
            client: HubSpot client
            rules: Ordered stage rules (defaults to DEFAULT_STAGE_RULES)
        """
        self.client = client
        self.rules: tuple[StageRule, ...] = tuple(rules) if rules is not None else DEFAULT_STAGE_RULES

    async def get_pipelines(self, budget: SyncBudget | None = None) -> list[Pipeline]:
        """Fetch and parse every deal pipeline in the portal."""
        raw = await self.client.get_pipelines(budget=budget)
        return [Pipeline.from_hubspot(p) for p in raw]

    async def resolve_stages(
        self,
        pipeline_id: str,
        budget: SyncBudget | None = None,
    ) -> StageResolution:
        """
        Build the stage resolution for ``pipeline_id``.

        Raises:
            PipelineNotFoundError: The portal has no pipeline with that id
            HubSpotError: Fetching pipelines failed
        """
        pipelines = await self.get_pipelines(budget=budget)
        return self.build_resolution(pipelines, pipeline_id)

    def build_resolution(self, pipelines: Sequence[Pipeline], pipeline_id: str) -> StageResolution:
        """
        Build the stage resolution for ``pipeline_id`` from fetched pipelines.

        Raises:
            PipelineNotFoundError: ``pipeline_id`` is not among ``pipelines``
        """
        pipeline_names = {p.id: p.label for p in pipelines}

        target = next((p for p in pipelines if p.id == pipeline_id), None)
        if target is None:
            raise PipelineNotFoundError(pipeline_id, available=list(pipeline_names))

        stage_map = build_stage_map(target, self.rules)
        logger.info(
            'stage_resolver.stages_resolved',
            pipeline_id=pipeline_id,
            pipeline_name=target.label,
            stage_count=len(stage_map),
            pipelines_total=len(pipelines),
        )
        return StageResolution(
            pipeline=target,
            stage_map=stage_map,
            pipeline_names=pipeline_names,
        )
