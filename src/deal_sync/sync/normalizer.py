"""
Deal normalization: a pure join of one raw deal with the stage resolution
and resolved references of its sync.

No I/O happens here. Malformed numeric or date fields become None rather
than errors.
"""

import math
from typing import Any

from ..models.deal import NormalizedDeal
from ..utils import parse_hubspot_timestamp
from .references import ReferenceMaps, association_ids
from .stages import StageResolution

# Deal-level activity timestamps; the latest one becomes last_engagement_date
ENGAGEMENT_DATE_PROPERTIES = (
    'hs_last_sales_activity_timestamp',
    'hs_latest_meeting_activity',
    'hs_sales_email_last_replied',
    'notes_last_updated',
)


def parse_amount(value: Any) -> float | None:
    """Parse a HubSpot amount; absent, non-numeric or non-finite gives None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    return amount


def last_engagement_date(properties: dict[str, Any]) -> str | None:
    """
    Latest deal-level activity timestamp, as HubSpot sent it.

    Values are compared by parsed time; unparseable values are skipped.
    """
    latest_raw: str | None = None
    latest_at = None
    for key in ENGAGEMENT_DATE_PROPERTIES:
        raw = properties.get(key)
        parsed = parse_hubspot_timestamp(raw)
        if parsed is None:
            continue
        if latest_at is None or parsed > latest_at:
            latest_at = parsed
            latest_raw = str(raw)
    return latest_raw


def normalize_deal(
    deal: dict[str, Any],
    resolution: StageResolution,
    references: ReferenceMaps,
) -> NormalizedDeal:
    """
    Build the canonical record for one raw HubSpot deal.

    Args:
        deal: Raw deal (``id``, ``properties``, ``associations``); not mutated
        resolution: Stage resolution of the current sync
        references: Resolved references of the current batch

    Returns:
        NormalizedDeal; unresolved company/contact ids are left out of the lists,
        but the first listed company stays primary even when unresolved
    """
    props = deal.get('properties') or {}

    stage_id = props.get('dealstage') or None
    entry = resolution.lookup(stage_id)

    pipeline_id = props.get('pipeline') or None

    owner_id = props.get('hubspot_owner_id') or None
    owner = references.owners.get(str(owner_id)) if owner_id else None

    companies = [
        references.companies[cid]
        for cid in association_ids(deal, 'companies')
        if cid in references.companies
    ]
    contacts = [
        references.contacts[cid]
        for cid in association_ids(deal, 'contacts')
        if cid in references.contacts
    ]
    primary_id = next(iter(association_ids(deal, 'companies')), None)
    primary = references.companies.get(primary_id) if primary_id else None

    return NormalizedDeal(
        hubspot_id=str(deal['id']),
        name=props.get('dealname') or 'Untitled Deal',
        stage=entry.stage,
        hubspot_stage_id=stage_id,
        hubspot_stage_label=entry.label,
        pipeline_id=pipeline_id,
        pipeline_name=resolution.pipeline_name(pipeline_id),
        amount=parse_amount(props.get('amount')),
        close_date=props.get('closedate') or None,
        owner_id=str(owner_id) if owner_id else None,
        owner_name=owner.name if owner else None,
        company_id=primary_id,
        company_name=primary.name if primary else None,
        companies=companies,
        contacts=contacts,
        last_engagement_date=last_engagement_date(props),
        properties=dict(props),
    )
