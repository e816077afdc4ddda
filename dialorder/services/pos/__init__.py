"""
POS Provider Factory

Provides a single entry point for obtaining the adapter of a tenant's POS.
The rest of the application stays agnostic about which provider, and whether
it is live or mocked.

Usage:
    from dialorder.services.pos import get_pos_provider

    provider = get_pos_provider(restaurant, db)
    mapped = provider.map_payload(menu, draft)
    result = await provider.submit_order(restaurant, mapped)

Mode Switching (per provider):
    - TOAST_MOCK / CLOVER_MOCK=true  -> MockPOSProvider around the real adapter
    - TOAST_MOCK / CLOVER_MOCK=false -> real adapter
    - unset -> mock in development, real in staging and production

Adapters hold a request-scoped session, so unlike the settings they are
built per call rather than cached.
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from dialorder.core.config import Settings, get_settings
from dialorder.core.errors import MisconfiguredError
from dialorder.models import PosProvider, Restaurant
from dialorder.services.pos.base import (
    BasePOSProvider,
    MappedOrder,
    PricingResult,
    ProviderToken,
    SubmissionResult,
)
from dialorder.services.pos.clover import CloverPOSProvider
from dialorder.services.pos.mock import MockPOSProvider
from dialorder.services.pos.toast import ToastPOSProvider

logger = logging.getLogger(__name__)

PROVIDER_REGISTRY: dict[str, type[BasePOSProvider]] = {
    PosProvider.TOAST.value: ToastPOSProvider,
    PosProvider.CLOVER.value: CloverPOSProvider,
}


def get_pos_provider(
    restaurant: Restaurant,
    db: AsyncSession,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BasePOSProvider:
    """
    Get the adapter for the restaurant's configured POS provider.

    Raises:
        MisconfiguredError: Provider unset or not in the registry
    """
    settings = settings or get_settings()
    name = (restaurant.pos_provider or "").strip().lower()

    if not name:
        raise MisconfiguredError(
            "pos provider not configured for restaurant",
            {"restaurant_id": restaurant.id},
        )

    adapter_class = PROVIDER_REGISTRY.get(name)
    if adapter_class is None:
        raise MisconfiguredError(
            f"unsupported pos provider: {name}",
            {"restaurant_id": restaurant.id, "provider": name},
        )

    adapter = adapter_class(db, settings=settings, transport=transport)
    if settings.provider_mock_enabled(name):
        logger.debug(f"POS provider: {name} (mock) for restaurant {restaurant.id}")
        return MockPOSProvider(adapter)

    logger.debug(f"POS provider: {name} (live) for restaurant {restaurant.id}")
    return adapter


__all__ = [
    "get_pos_provider",
    "PROVIDER_REGISTRY",
    "BasePOSProvider",
    "MappedOrder",
    "PricingResult",
    "ProviderToken",
    "SubmissionResult",
    "ToastPOSProvider",
    "CloverPOSProvider",
    "MockPOSProvider",
]
