"""
Carrier lookup exports.
"""

from app.scraping.providers.carrier_client import CarrierLookupClient, HTTPCarrierLookupClient
from app.scraping.providers.lookup_service import ProviderLookupConfig, ProviderLookupService
from app.scraping.providers.phone import normalize_phone

__all__ = [
    "CarrierLookupClient",
    "HTTPCarrierLookupClient",
    "ProviderLookupConfig",
    "ProviderLookupService",
    "normalize_phone",
]
