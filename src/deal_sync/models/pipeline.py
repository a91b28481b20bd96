"""
Pipeline and stage models.

A Pipeline is an immutable snapshot of a HubSpot deal pipeline, fetched once
per sync and used only to build the stage map.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PipelineStage(BaseModel):
    """One stage of a HubSpot deal pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    display_order: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_hubspot(cls, raw: dict[str, Any]) -> 'PipelineStage':
        return cls(
            id=str(raw['id']),
            label=raw.get('label') or '',
            display_order=raw.get('displayOrder') or 0,
            metadata=raw.get('metadata') or {},
        )


class Pipeline(BaseModel):
    """A HubSpot deal pipeline with its ordered stages."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    display_order: int = 0
    stages: tuple[PipelineStage, ...] = ()

    @classmethod
    def from_hubspot(cls, raw: dict[str, Any]) -> 'Pipeline':
        stages = sorted(
            (PipelineStage.from_hubspot(s) for s in raw.get('stages') or []),
            key=lambda s: s.display_order,
        )
        return cls(
            id=str(raw['id']),
            label=raw.get('label') or 'Unnamed Pipeline',
            display_order=raw.get('displayOrder') or 0,
            stages=tuple(stages),
        )
