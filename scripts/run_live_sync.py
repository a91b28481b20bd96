#!/usr/bin/env python3
"""
Live smoke test for the HubSpot deal sync.

Lists the portal's deal pipelines, syncs one of them, prints a per-stage
summary and the engagement timeline of the most recently active deal. With
DATABASE_URL set, the result is also upserted into Postgres (twice, to show
the second run only updates).

Usage:
    python scripts/run_live_sync.py [PIPELINE_ID]
"""

import asyncio
import os
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

from deal_sync.clients import HubSpotClient, PostgresDealStore, record_url
from deal_sync.config import get_settings
from deal_sync.models import DealStats
from deal_sync.sync import DealSyncer
from deal_sync.utils import parse_hubspot_timestamp


def print_header(title: str) -> None:
    print('\n' + '=' * 70)
    print(title)
    print('=' * 70)


async def main() -> int:
    settings = get_settings()
    missing = settings.validate_required()
    if missing:
        print(f"Missing required configuration: {', '.join(missing)}")
        return 1

    async with HubSpotClient() as client:
        store = None
        if os.getenv('DATABASE_URL'):
            store = PostgresDealStore(require_ssl=True)
            await store.connect()
            await store.ensure_schema()

        try:
            syncer = DealSyncer(client, store=store)

            print_header('PIPELINES')
            pipelines = await syncer.get_pipelines()
            for pipeline in pipelines:
                print(f'  {pipeline.id:<24} {pipeline.label} ({len(pipeline.stages)} stages)')
            if not pipelines:
                print('No deal pipelines in this portal')
                return 1

            pipeline_id = sys.argv[1] if len(sys.argv) > 1 else pipelines[0].id

            print_header(f'SYNC {pipeline_id}')
            deals = await syncer.sync_deals(
                pipeline_id,
                on_progress=lambda pages, kept: print(f'  page {pages}: {kept} deals kept'),
            )
            stats = DealStats.from_deals(deals)
            print(f'\n  {stats.total} deals, total value {stats.total_value:,.2f}')
            for stage, count in stats.by_stage.items():
                print(f'    {stage.value:<12} {count}')

            active = [d for d in deals if d.last_engagement_date]
            if active:
                portal_id = await syncer.get_portal_id()
                latest = max(active, key=lambda d: parse_hubspot_timestamp(d.last_engagement_date))
                print_header(f'TIMELINE {latest.name}')
                print(f'  {record_url(portal_id, "deal", latest.hubspot_id)}')
                detail = await syncer.get_deal_detail(latest.hubspot_id)
                for engagement in detail.engagements[:10]:
                    print(f'  {engagement.timestamp:%Y-%m-%d %H:%M}  {engagement.type.value:<8} '
                          f'{engagement.subject or ""}')
                if detail.unavailable_engagement_types:
                    print(f'  unavailable: {[t.value for t in detail.unavailable_engagement_types]}')

            if store is not None:
                print_header('UPSERT')
                for run in (1, 2):
                    result = await syncer.run_sync(pipeline_id)
                    print(f'  run {run}: created={result.created} updated={result.updated} '
                          f'failed={result.failed} ({result.processing_time_ms} ms)')
        finally:
            if store is not None:
                await store.close()

    return 0


if __name__ == '__main__':
    sys.exit(asyncio.run(main()))
