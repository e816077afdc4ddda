"""
Clover POS Adapter

Production adapter for the Clover REST API (v3).

Tokens come from Clover's OAuth flow; the onboarding callback stores the
access and refresh tokens on the credential row. When the access token is
near expiry it is exchanged at ``/oauth/v2/refresh`` and both tokens are
written back.

Clover has no price-quote endpoint for ad-hoc orders, so pricing is local:
the subtotal computed from the normalized menu, tax left at zero.

Submission builds the order in three steps: create the order shell, add one
line item per unit, then attach each chosen modifier to its line item.
Catalog sync reads items with their categories and modifier groups expanded.

Clover API Reference: https://docs.clover.com/reference
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from dialorder.core.errors import DialOrderError, MisconfiguredError, UpstreamFailureError
from dialorder.models import PosProvider, Restaurant
from dialorder.schemas import (
    DraftOrder,
    MenuCategory,
    MenuItem,
    ModifierGroup,
    ModifierOption,
    NormalizedMenu,
    ProviderIds,
)
from dialorder.services.pos.base import (
    BasePOSProvider,
    MappedOrder,
    PricingResult,
    SubmissionResult,
    TokenGrant,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 200
UNCATEGORIZED_ID = "cat-uncategorized"
ITEM_EXPAND = "categories,modifierGroups,modifierGroups.modifiers"


def _elements(body: Any) -> list[dict]:
    """Clover wraps collections as {"elements": [...]}."""
    if isinstance(body, dict):
        return [e for e in body.get("elements") or [] if isinstance(e, dict)]
    return []


def _expiry(timestamp: Any) -> Optional[datetime]:
    """Clover reports token expiry as unix seconds."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


class CloverPOSProvider(BasePOSProvider):
    """Clover REST API adapter."""

    @property
    def provider_name(self) -> str:
        return PosProvider.CLOVER.value

    @property
    def sandbox_base_url(self) -> str:
        return self.settings.clover_sandbox_base_url

    @property
    def prod_base_url(self) -> str:
        return self.settings.clover_prod_base_url

    async def _request_token(self, credential, base_url: str) -> TokenGrant:
        if not credential.refresh_token:
            raise MisconfiguredError(
                "clover access token expired and no refresh token is stored",
                {"restaurant_id": credential.restaurant_id, "provider": self.provider_name},
            )

        client_id = credential.client_id or self.settings.clover_client_id
        body = await self._request(
            "POST",
            f"{base_url}/oauth/v2/refresh",
            json={"client_id": client_id, "refresh_token": credential.refresh_token},
        )

        data = body if isinstance(body, dict) else {}
        if not data.get("access_token"):
            raise UpstreamFailureError(
                "clover refresh response missing access token",
                {"provider": self.provider_name, "body": body},
            )
        return TokenGrant(
            access_token=data["access_token"],
            expires_at=_expiry(data.get("access_token_expiration")),
            refresh_token=data.get("refresh_token"),
        )

    def _merchant_url(self, base_url: str, merchant_ref: str) -> str:
        return f"{base_url}/v3/merchants/{merchant_ref}"

    # =========================================================================
    # ORDERS
    # =========================================================================

    def map_payload(self, menu: NormalizedMenu, draft: DraftOrder) -> MappedOrder:
        summary, lines = self.resolve_lines(menu, draft)

        order: dict[str, Any] = {"state": "open"}
        if summary.pickup_name:
            order["title"] = summary.pickup_name
        note = " | ".join(
            part for part in (
                summary.notes,
                f"Pickup phone: {summary.pickup_phone}" if summary.pickup_phone else None,
            ) if part
        )
        if note:
            order["note"] = note

        payload = {
            "order": order,
            "line_items": [
                {
                    "item": {"id": line.item_ref},
                    "name": line.name,
                    "quantity": line.quantity,
                    "note": line.special_instructions,
                    "modifications": [
                        {"modifier": {"id": modifier.option_ref}, "group_id": modifier.group_ref}
                        for modifier in line.modifiers
                    ],
                }
                for line in lines
            ],
        }
        return MappedOrder(
            provider=self.provider_name,
            payload=payload,
            subtotal_cents=summary.subtotal_cents,
            summary=summary,
        )

    async def price_order(self, restaurant: Restaurant, mapped: MappedOrder) -> PricingResult:
        """Local pricing; no network call."""
        return PricingResult(
            pricing_mode="local",
            subtotal_cents=mapped.subtotal_cents,
            tax_cents=0,
            total_cents=mapped.subtotal_cents,
            raw={"summary": mapped.summary.model_dump(mode="json")},
        )

    async def submit_order(self, restaurant: Restaurant, mapped: MappedOrder) -> SubmissionResult:
        """
        Create the order, its line items and their modifications.

        A failure after the order shell exists leaves a partial Clover order
        behind; the local order is not confirmed in that case. The shell's id is
        logged and added to the error details as clover_order_id.

        Raises:
            UpstreamFailureError: 5xx, timeout, or a response without an id
            ProviderRejectedError: Clover rejected a request
        """
        token = await self.get_token(restaurant)
        merchant_url = self._merchant_url(token.base_url, token.merchant_ref)

        created = await self._request(
            "POST",
            f"{merchant_url}/orders",
            token=token.token,
            json=mapped.payload["order"],
        )
        order_id = self._require_id(created, "order")
        orders_url = f"{merchant_url}/orders/{order_id}"

        try:
            line_count = await self._add_line_items(orders_url, token.token, mapped.payload["line_items"])
        except Exception as e:
            # The shell already exists on the merchant's Clover; it has to be voided there.
            logger.error(f"Clover order {order_id} for {restaurant.id} left incomplete: {e}")
            if isinstance(e, DialOrderError):
                e.details["clover_order_id"] = order_id
            raise

        logger.info(f"Clover order created for {restaurant.id}: {order_id} ({line_count} line items)")
        return SubmissionResult(
            provider_order_id=order_id,
            status="SUBMITTED",
            raw=created if isinstance(created, dict) else None,
        )

    async def _add_line_items(self, orders_url: str, token: str, lines: list[dict[str, Any]]) -> int:
        line_count = 0
        for line in lines:
            for _ in range(line["quantity"]):
                line_body: dict[str, Any] = {"item": line["item"]}
                if line.get("note"):
                    line_body["note"] = line["note"]
                added = await self._request(
                    "POST",
                    f"{orders_url}/line_items",
                    token=token,
                    json=line_body,
                )
                line_item_id = self._require_id(added, "line item")
                line_count += 1

                for modification in line["modifications"]:
                    await self._request(
                        "POST",
                        f"{orders_url}/line_items/{line_item_id}/modifications",
                        token=token,
                        json={"modifier": modification["modifier"]},
                    )
        return line_count

    def _require_id(self, body: Any, what: str) -> str:
        entity_id = body.get("id") if isinstance(body, dict) else None
        if not entity_id:
            raise UpstreamFailureError(
                f"clover {what} response missing id",
                {"provider": self.provider_name, "body": body},
            )
        return str(entity_id)

    # =========================================================================
    # CATALOG SYNC
    # =========================================================================

    async def _paginate(self, url: str, token: str, params: Optional[dict] = None) -> list[dict]:
        elements: list[dict] = []
        offset = 0
        while True:
            body = await self._request(
                "GET",
                url,
                token=token,
                params={**(params or {}), "limit": PAGE_SIZE, "offset": offset},
            )
            page = _elements(body)
            elements.extend(page)
            if len(page) < PAGE_SIZE:
                return elements
            offset += PAGE_SIZE

    async def fetch_menu(self, restaurant: Restaurant) -> NormalizedMenu:
        """
        Read the merchant's items into a NormalizedMenu.

        Items without a category land in an "Uncategorized" category. Groups
        whose options were not expanded are fetched one by one.

        Raises:
            UpstreamFailureError: Clover returned no items or a request failed
        """
        token = await self.get_token(restaurant)
        merchant_url = self._merchant_url(token.base_url, token.merchant_ref)

        raw_items = await self._paginate(
            f"{merchant_url}/items",
            token.token,
            params={"expand": ITEM_EXPAND},
        )
        if not raw_items:
            raise UpstreamFailureError(
                "clover returned no items",
                {"provider": self.provider_name, "restaurant_id": restaurant.id},
            )

        categories: dict[str, MenuCategory] = {}
        items: list[MenuItem] = []
        groups: dict[str, ModifierGroup] = {}
        options: dict[str, ModifierOption] = {}

        for raw in raw_items:
            item_id = raw.get("id")
            if not item_id:
                continue

            group_ids = []
            for raw_group in _elements(raw.get("modifierGroups")):
                group_id = raw_group.get("id")
                if not group_id:
                    continue
                group_ids.append(group_id)
                if group_id not in groups:
                    raw_options = _elements(raw_group.get("modifiers"))
                    if not raw_options:
                        raw_options = await self._paginate(
                            f"{merchant_url}/modifier_groups/{group_id}/modifiers",
                            token.token,
                        )
                    groups[group_id] = self._normalize_group(raw_group, raw_options, options)

            items.append(
                MenuItem(
                    id=item_id,
                    name=raw.get("name") or item_id,
                    price_cents=int(raw.get("price") or 0),
                    description=raw.get("alternateName") or None,
                    modifier_group_ids=group_ids,
                    external_ids={self.provider_name: ProviderIds(item_id=item_id)},
                )
            )

            raw_categories = _elements(raw.get("categories")) or [
                {"id": UNCATEGORIZED_ID, "name": "Uncategorized"}
            ]
            for raw_category in raw_categories:
                category_id = raw_category.get("id") or UNCATEGORIZED_ID
                category = categories.setdefault(
                    category_id,
                    MenuCategory(id=category_id, name=raw_category.get("name") or category_id),
                )
                category.item_ids.append(item_id)

        menu = NormalizedMenu(
            categories=list(categories.values()),
            items=items,
            modifier_groups=list(groups.values()),
            modifier_options=list(options.values()),
        )
        logger.info(
            f"Clover catalog fetched for {restaurant.id}: "
            f"{len(items)} items, {len(groups)} modifier groups"
        )
        return menu

    def _normalize_group(
        self,
        raw_group: dict,
        raw_options: list[dict],
        options: dict[str, ModifierOption],
    ) -> ModifierGroup:
        group_id = raw_group["id"]
        option_ids = []
        for raw_option in raw_options:
            option_id = raw_option.get("id")
            if not option_id:
                continue
            option_ids.append(option_id)
            options.setdefault(
                option_id,
                ModifierOption(
                    id=option_id,
                    name=raw_option.get("name") or option_id,
                    price_delta_cents=int(raw_option.get("price") or 0),
                    external_ids={
                        self.provider_name: ProviderIds(
                            modifier_group_id=group_id,
                            modifier_option_id=option_id,
                        )
                    },
                ),
            )

        required_min = max(0, int(raw_group.get("minRequired") or 0))
        # maxAllowed absent or 0 means "no limit"
        required_max = int(raw_group.get("maxAllowed") or 0) or len(option_ids)
        required_max = max(required_max, required_min)

        return ModifierGroup(
            id=group_id,
            name=raw_group.get("name") or group_id,
            required_min=required_min,
            required_max=required_max,
            option_ids=option_ids,
            external_ids={self.provider_name: ProviderIds(modifier_group_id=group_id)},
        )
