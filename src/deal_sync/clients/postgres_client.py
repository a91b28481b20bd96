"""
Postgres deal store for the HubSpot deal sync engine.

Implements the DealStore contract (find_by_external_id / insert / update)
on a single ``deals`` table using SQLAlchemy 2.0 async engine + asyncpg.
The sync engine decides insert vs. update; this module only executes SQL.

Table written:
- deals (unique hubspot_id; companies, contacts, properties as JSONB)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse
from uuid import uuid4

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tenacity import retry, stop_after_attempt, wait_exponential

from ..config import get_settings

logger = structlog.get_logger(__name__)

# Columns written from NormalizedDeal.to_record(), in table order
DEAL_COLUMNS = (
    'hubspot_id',
    'name',
    'stage',
    'hubspot_stage_id',
    'hubspot_stage_label',
    'pipeline_id',
    'pipeline_name',
    'amount',
    'close_date',
    'owner_id',
    'owner_name',
    'company_id',
    'company_name',
    'companies',
    'contacts',
    'last_engagement_date',
    'properties',
    'last_synced_at',
)

_JSONB_COLUMNS = frozenset({'companies', 'contacts', 'properties'})

CREATE_DEALS_TABLE = """
    CREATE TABLE IF NOT EXISTS deals (
        id UUID PRIMARY KEY,
        hubspot_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        stage TEXT NOT NULL,
        hubspot_stage_id TEXT,
        hubspot_stage_label TEXT,
        pipeline_id TEXT,
        pipeline_name TEXT,
        amount DOUBLE PRECISION,
        close_date TEXT,
        owner_id TEXT,
        owner_name TEXT,
        company_id TEXT,
        company_name TEXT,
        companies JSONB NOT NULL DEFAULT '[]'::jsonb,
        contacts JSONB NOT NULL DEFAULT '[]'::jsonb,
        last_engagement_date TEXT,
        properties JSONB NOT NULL DEFAULT '{}'::jsonb,
        last_synced_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
"""


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Hosted Postgres URLs often carry ``sslmode`` / ``channel_binding``, which
    are libpq parameters. asyncpg rejects unknown connection params, so SSL is
    passed through ``connect_args`` instead.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _asyncpg_url(url: str) -> str:
    """Sanitize the URL and force the asyncpg driver prefix."""
    url = _sanitize_url(url)
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql+asyncpg://', 1)
    elif url.startswith('postgresql://') and '+asyncpg' not in url:
        url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


def _row_params(record: dict[str, Any]) -> dict[str, Any]:
    """Bind parameters for a deal row; JSONB columns are serialized."""
    params: dict[str, Any] = {}
    for column in DEAL_COLUMNS:
        value = record.get(column)
        if column in _JSONB_COLUMNS:
            if value is None:
                value = {} if column == 'properties' else []
            value = json.dumps(value)
        params[column] = value
    return params


class PostgresDealStore:
    """
    Async Postgres implementation of the deal store contract.

    Reads are retried with exponential backoff; writes are not, so a failed
    write surfaces to the repository, which records it per deal.
    """

    def __init__(self, database_url: str | None = None, require_ssl: bool = False):
        """
        Args:
            database_url: Postgres connection URL (defaults to DATABASE_URL).
                          postgres:// and postgresql:// are rewritten to use
                          the asyncpg driver.
            require_ssl: Pass ssl='require' to asyncpg
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url
        self._require_ssl = require_ssl

    async def connect(self, database_url: str | None = None) -> None:
        """Create the async engine. No-op if already connected."""
        if self._engine is not None:
            return

        url = database_url or self._database_url or get_settings().DATABASE_URL
        if not url:
            raise ValueError('DATABASE_URL is required')

        connect_args: dict[str, Any] = {'prepared_statement_cache_size': 0}
        if self._require_ssl:
            connect_args['ssl'] = 'require'

        self._engine = create_async_engine(
            _asyncpg_url(url),
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresDealStore not connected, call connect() first')
        return self._engine

    async def ensure_schema(self) -> None:
        """Create the deals table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.execute(text(CREATE_DEALS_TABLE))
        logger.info('postgres_client.schema_ensured', table='deals')

    # =========================================================================
    # DealStore contract
    # =========================================================================

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
    )
    async def find_by_external_id(self, hubspot_id: str) -> dict[str, Any] | None:
        """
        Look up a stored deal by its HubSpot id.

        Returns:
            The row as a dict (including the store's ``id``), or None
        """
        sql = text('SELECT * FROM deals WHERE hubspot_id = :hubspot_id')
        async with self.engine.connect() as conn:
            result = await conn.execute(sql, {'hubspot_id': hubspot_id})
            row = result.mappings().first()
        return dict(row) if row is not None else None

    async def insert(self, record: dict[str, Any]) -> str:
        """
        INSERT a new deal row.

        Returns:
            The generated row id
        """
        columns = ', '.join(DEAL_COLUMNS)
        values = ', '.join(
            f'CAST(:{c} AS jsonb)' if c in _JSONB_COLUMNS else f':{c}' for c in DEAL_COLUMNS
        )
        sql = text(f'INSERT INTO deals (id, {columns}) VALUES (:id, {values})')

        row_id = str(uuid4())
        params = _row_params(record)
        params['id'] = row_id

        async with self.engine.begin() as conn:
            await conn.execute(sql, params)

        logger.debug('postgres_client.deal_inserted', hubspot_id=record.get('hubspot_id'))
        return row_id

    async def update(self, record_id: str, record: dict[str, Any]) -> None:
        """UPDATE an existing deal row identified by the store's id."""
        assignments = ', '.join(
            f'{c} = CAST(:{c} AS jsonb)' if c in _JSONB_COLUMNS else f'{c} = :{c}'
            for c in DEAL_COLUMNS
        )
        sql = text(f'UPDATE deals SET {assignments}, updated_at = :updated_at WHERE id = :id')

        params = _row_params(record)
        params['id'] = str(record_id)
        params['updated_at'] = datetime.now(tz=timezone.utc)

        async with self.engine.begin() as conn:
            await conn.execute(sql, params)

        logger.debug('postgres_client.deal_updated', hubspot_id=record.get('hubspot_id'))
