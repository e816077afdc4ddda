"""
POS Provider Abstract Base Class

Defines the contract every POS adapter (Toast, Clover, ...) implements, so the
order pipeline can price and submit without knowing which backend a tenant
uses:

    get_token(restaurant)          -> ProviderToken
    map_payload(menu, draft)       -> MappedOrder
    price_order(restaurant, mapped) -> PricingResult
    submit_order(restaurant, mapped) -> SubmissionResult
    fetch_menu(restaurant)         -> NormalizedMenu   (catalog sync, optional)

Shared plumbing lives here too: environment -> base URL selection, the token
lifecycle against the credential store, resolution of provider ids for the
selected menu entities, and an httpx request helper that classifies failures
(5xx/timeout -> UpstreamFailureError, 4xx -> ProviderRejectedError).

Design Pattern: Strategy Pattern
    - Adapters are chosen per tenant by get_pos_provider()
    - Adding a provider means adding one subclass and one registry entry
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from dialorder.core.config import Settings, get_settings
from dialorder.core.errors import (
    BadMappingError,
    MisconfiguredError,
    ProviderRejectedError,
    UpstreamFailureError,
)
from dialorder.models import Restaurant
from dialorder.schemas import DraftOrder, DraftSummary, NormalizedMenu
from dialorder.services.credentials import CredentialStore, token_is_fresh, utcnow
from dialorder.services.menu.pricer import build_draft_summary

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


@dataclass
class ProviderToken:
    """A usable bearer token plus where and for whom to use it."""
    token: str
    base_url: str
    merchant_ref: Optional[str] = None


@dataclass
class TokenGrant:
    """Token issued by a provider's auth endpoint."""
    access_token: str
    expires_in: Optional[int] = None
    expires_at: Optional[datetime] = None
    refresh_token: Optional[str] = None


@dataclass
class MappedModifier:
    group_ref: str
    option_ref: str
    name: str


@dataclass
class MappedLine:
    """One draft line with provider-native ids resolved."""
    item_ref: str
    name: str
    quantity: int
    modifiers: list[MappedModifier] = field(default_factory=list)
    special_instructions: Optional[str] = None


@dataclass
class MappedOrder:
    """
    Provider payload ready to send.

    subtotal_cents is the locally computed subtotal of the summary the
    payload was built from; adapters without a pricing endpoint use it.
    """
    provider: str
    payload: dict[str, Any]
    subtotal_cents: int
    summary: DraftSummary


@dataclass
class PricingResult:
    """Standardized pricing result; amounts in cents."""
    pricing_mode: str
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    raw: Optional[dict] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "pricing_mode": self.pricing_mode,
            "totals": {
                "subtotal_cents": self.subtotal_cents,
                "tax_cents": self.tax_cents,
                "total_cents": self.total_cents,
            },
            "raw": self.raw,
        }


@dataclass
class SubmissionResult:
    """Standardized submission result."""
    provider_order_id: str
    status: str = "SUBMITTED"
    raw: Optional[dict] = None


def dollars_to_cents(amount: Any) -> int:
    """Convert a provider dollar amount (float or str) to integer cents."""
    cents = Decimal(str(amount or 0)) * 100
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def decode_body(response: httpx.Response) -> Any:
    """JSON body if it parses, otherwise raw text (None when empty)."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


class BasePOSProvider(ABC):
    """
    Abstract base class for POS adapters.

    Attributes:
        db: Request-scoped session (credentials are read and refreshed here)
        settings: Application settings (base URLs, timeouts, refresh margin)
        transport: Optional httpx transport, used by tests to fake the network
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.credentials = CredentialStore(db)
        self._transport = transport

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier, matching Restaurant.pos_provider."""

    @property
    @abstractmethod
    def sandbox_base_url(self) -> str:
        pass

    @property
    @abstractmethod
    def prod_base_url(self) -> str:
        pass

    @property
    def timeout(self) -> float:
        return self.settings.provider_timeout(self.provider_name)

    def resolve_base_url(self, environment: Optional[str]) -> str:
        """Production URL when the environment mentions "prod", else sandbox."""
        if environment and "prod" in environment.lower():
            return self.prod_base_url
        return self.sandbox_base_url

    # =========================================================================
    # TOKEN LIFECYCLE
    # =========================================================================

    async def get_token(self, restaurant: Restaurant) -> ProviderToken:
        """
        Return a bearer token for the tenant, refreshing it when needed.

        A cached token with more than the refresh margin left is reused;
        otherwise a new one is requested and written back with its absolute
        expiry before being used.

        Raises:
            MisconfiguredError: No credentials for this tenant + provider
            UpstreamFailureError: Auth endpoint failed or sent no token
        """
        credential = await self.credentials.require(restaurant.id, self.provider_name)
        base_url = self.resolve_base_url(credential.environment)

        if token_is_fresh(credential, self.settings.token_refresh_margin_seconds):
            return ProviderToken(credential.access_token, base_url, credential.external_ref)

        logger.info(f"{self.provider_name}: refreshing token for restaurant {restaurant.id}")
        grant = await self._request_token(credential, base_url)

        expires_at = grant.expires_at or utcnow() + timedelta(
            seconds=grant.expires_in or DEFAULT_TOKEN_LIFETIME_SECONDS
        )
        await self.credentials.save_token(
            credential,
            grant.access_token,
            expires_at,
            refresh_token=grant.refresh_token,
        )
        return ProviderToken(grant.access_token, base_url, credential.external_ref)

    async def _request_token(self, credential, base_url: str) -> TokenGrant:
        """Exchange stored credentials for a new token."""
        raise MisconfiguredError(
            f"{self.provider_name} does not support token exchange",
            {"provider": self.provider_name},
        )

    # =========================================================================
    # CONTRACT
    # =========================================================================

    @abstractmethod
    def map_payload(self, menu: NormalizedMenu, draft: DraftOrder) -> MappedOrder:
        """
        Translate a draft into this provider's order payload.

        Raises:
            BadMappingError: A selected item/group/option has no provider id
        """

    @abstractmethod
    async def price_order(self, restaurant: Restaurant, mapped: MappedOrder) -> PricingResult:
        pass

    @abstractmethod
    async def submit_order(self, restaurant: Restaurant, mapped: MappedOrder) -> SubmissionResult:
        pass

    async def fetch_menu(self, restaurant: Restaurant) -> NormalizedMenu:
        """Pull the provider catalog as a NormalizedMenu."""
        raise MisconfiguredError(
            f"menu sync is not supported for {self.provider_name}",
            {"provider": self.provider_name},
        )

    # =========================================================================
    # MAPPING HELPERS
    # =========================================================================

    def resolve_lines(
        self,
        menu: NormalizedMenu,
        draft: DraftOrder,
    ) -> tuple[DraftSummary, list[MappedLine]]:
        """
        Validate the draft against the menu and attach provider ids.

        Every missing mapping is reported at once; nothing is dropped.
        """
        summary = draft.summary or build_draft_summary(
            menu,
            draft.selections,
            draft.notes,
            draft.pickup_name,
            draft.pickup_phone,
        )
        items = menu.item_index()
        groups = menu.group_index()
        options = menu.option_index()
        provider = self.provider_name

        missing: list[dict[str, str]] = []
        lines: list[MappedLine] = []

        for line in summary.items:
            item = items.get(line.item_id)
            item_ref = item.provider_id(provider) if item else None
            if not item_ref:
                missing.append({"item_id": line.item_id})

            modifiers = []
            for modifier in line.modifiers:
                group = groups.get(modifier.group_id)
                group_ref = group.provider_id(provider) if group else None
                for chosen in modifier.options:
                    option = options.get(chosen.id)
                    option_ref = option.provider_id(provider) if option else None
                    if not group_ref or not option_ref:
                        missing.append({"group_id": modifier.group_id, "option_id": chosen.id})
                        continue
                    modifiers.append(MappedModifier(group_ref, option_ref, chosen.name))

            lines.append(
                MappedLine(
                    item_ref=item_ref or "",
                    name=line.name,
                    quantity=line.quantity,
                    modifiers=modifiers,
                    special_instructions=line.special_instructions,
                )
            )

        if missing:
            raise BadMappingError(
                f"menu entities missing {provider} mapping",
                {"provider": provider, "missing": missing},
            )
        return summary, lines

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(
        self,
        method: str,
        url: str,
        *,
        token: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request to the provider and return the decoded body.

        Raises:
            UpstreamFailureError: 5xx, timeout or connection failure
            ProviderRejectedError: 4xx
        """
        request_headers = {"Accept": "application/json"}
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        request_headers.update(headers or {})

        name = self.provider_name
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=request_headers,
                    json=json,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"{name}: request timed out - {method} {url}")
            raise UpstreamFailureError(
                f"{name} request timed out",
                {"provider": name, "url": url, "reason": str(e)},
            ) from e
        except httpx.TransportError as e:
            logger.error(f"{name}: connection error - {method} {url} - {e}")
            raise UpstreamFailureError(
                f"{name} connection failed",
                {"provider": name, "url": url, "reason": str(e)},
            ) from e

        body = decode_body(response)

        if response.status_code >= 500:
            logger.error(f"{name}: {method} {url} -> {response.status_code}")
            raise UpstreamFailureError(
                f"{name} request failed",
                {"provider": name, "status": response.status_code, "body": body},
            )
        if response.status_code >= 400:
            logger.warning(f"{name}: {method} {url} -> {response.status_code}")
            raise ProviderRejectedError(
                f"{name} request rejected",
                {"provider": name, "status": response.status_code, "body": body},
            )

        logger.debug(f"{name}: {method} {url} -> {response.status_code}")
        return body if body is not None else {}
