"""
External service clients for the HubSpot deal sync engine.
"""

from .hubspot_client import HubSpotClient, record_url
from .postgres_client import PostgresDealStore

__all__ = [
    'HubSpotClient',
    'PostgresDealStore',
    'record_url',
]
