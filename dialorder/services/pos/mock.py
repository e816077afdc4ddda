"""
Mock POS Provider

Wraps a real adapter for development and testing. Mapping is delegated to
the wrapped adapter, so missing provider ids still fail exactly as they would
live; everything that would touch the network is replaced:

    - get_token returns a placeholder token, no credentials required
    - price_order prices locally with zero tax (pricing_mode "mock")
    - submit_order returns a generated "mock-..." order id

Example:
    >>> provider = MockPOSProvider(ToastPOSProvider(db))
    >>> result = await provider.submit_order(restaurant, mapped)
    >>> result.provider_order_id
    'mock-3f2a9c...'
"""

import logging
import uuid

from dialorder.core.errors import MisconfiguredError
from dialorder.models import Restaurant
from dialorder.schemas import DraftOrder, NormalizedMenu
from dialorder.services.pos.base import (
    BasePOSProvider,
    MappedOrder,
    PricingResult,
    ProviderToken,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

MOCK_TOKEN = "mock-token"


class MockPOSProvider(BasePOSProvider):
    """Network-free stand-in for any POS adapter."""

    def __init__(self, delegate: BasePOSProvider):
        super().__init__(delegate.db, settings=delegate.settings)
        self.delegate = delegate
        self.submitted: list[MappedOrder] = []

    @property
    def provider_name(self) -> str:
        return self.delegate.provider_name

    @property
    def sandbox_base_url(self) -> str:
        return self.delegate.sandbox_base_url

    @property
    def prod_base_url(self) -> str:
        return self.delegate.prod_base_url

    async def get_token(self, restaurant: Restaurant) -> ProviderToken:
        credential = await self.credentials.get(restaurant.id, self.provider_name)
        environment = credential.environment if credential else None
        return ProviderToken(
            token=MOCK_TOKEN,
            base_url=self.resolve_base_url(environment),
            merchant_ref=credential.external_ref if credential else None,
        )

    def map_payload(self, menu: NormalizedMenu, draft: DraftOrder) -> MappedOrder:
        return self.delegate.map_payload(menu, draft)

    async def price_order(self, restaurant: Restaurant, mapped: MappedOrder) -> PricingResult:
        logger.info(
            f"[MOCK {self.provider_name}] priced order for {restaurant.id}: "
            f"{mapped.subtotal_cents} cents"
        )
        return PricingResult(
            pricing_mode="mock",
            subtotal_cents=mapped.subtotal_cents,
            tax_cents=0,
            total_cents=mapped.subtotal_cents,
            raw={"summary": mapped.summary.model_dump(mode="json")},
        )

    async def submit_order(self, restaurant: Restaurant, mapped: MappedOrder) -> SubmissionResult:
        provider_order_id = f"mock-{uuid.uuid4().hex[:24]}"
        self.submitted.append(mapped)
        logger.info(f"[MOCK {self.provider_name}] order submitted for {restaurant.id}: {provider_order_id}")
        return SubmissionResult(
            provider_order_id=provider_order_id,
            status="SUBMITTED",
            raw={"mock": True},
        )

    async def fetch_menu(self, restaurant: Restaurant) -> NormalizedMenu:
        raise MisconfiguredError(
            f"{self.provider_name} is in mock mode; menu sync needs a live provider",
            {"provider": self.provider_name},
        )
