"""
Toast POS Adapter

Production adapter for the Toast Orders API.

Authentication uses the machine-client login: the tenant's client id and
secret are exchanged for a bearer token, cached on the credential row until
it is within the refresh margin of expiry. Every request names the location
through the Toast-Restaurant-External-ID header.

Pricing is delegated to Toast (``/orders/v2/prices``), so totals include tax
computed by the restaurant's own configuration. Toast reports amounts in
dollars; they are converted to integer cents here.

Toast API Reference: https://doc.toasttab.com/openapi/orders/
"""

import logging
from typing import Any

from dialorder.core.errors import MisconfiguredError, UpstreamFailureError
from dialorder.models import PosProvider, Restaurant
from dialorder.schemas import DraftOrder, NormalizedMenu
from dialorder.services.pos.base import (
    BasePOSProvider,
    MappedOrder,
    PricingResult,
    SubmissionResult,
    TokenGrant,
    dollars_to_cents,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/authentication/v1/authentication/login"
PRICES_PATH = "/orders/v2/prices"
ORDERS_PATH = "/orders/v2/orders"


class ToastPOSProvider(BasePOSProvider):
    """Toast Orders API adapter."""

    @property
    def provider_name(self) -> str:
        return PosProvider.TOAST.value

    @property
    def sandbox_base_url(self) -> str:
        return self.settings.toast_sandbox_base_url

    @property
    def prod_base_url(self) -> str:
        return self.settings.toast_prod_base_url

    async def _request_token(self, credential, base_url: str) -> TokenGrant:
        if not credential.client_id or not credential.client_secret:
            raise MisconfiguredError(
                "toast client credentials missing",
                {"restaurant_id": credential.restaurant_id, "provider": self.provider_name},
            )

        body = await self._request(
            "POST",
            f"{base_url}{LOGIN_PATH}",
            json={
                "clientId": credential.client_id,
                "clientSecret": credential.client_secret,
                "userAccessType": "TOAST_MACHINE_CLIENT",
            },
        )

        # Token is nested under "token" in current responses
        token = body.get("token") if isinstance(body, dict) else None
        source = token if isinstance(token, dict) else (body if isinstance(body, dict) else {})
        access_token = source.get("accessToken") or source.get("access_token")
        if not access_token:
            raise UpstreamFailureError(
                "toast auth response missing access token",
                {"provider": self.provider_name, "body": body},
            )

        expires_in = source.get("expiresIn") or source.get("expires_in")
        return TokenGrant(
            access_token=access_token,
            expires_in=int(expires_in) if expires_in else None,
        )

    def map_payload(self, menu: NormalizedMenu, draft: DraftOrder) -> MappedOrder:
        summary, lines = self.resolve_lines(menu, draft)

        selections = []
        for line in lines:
            selection: dict[str, Any] = {
                "entityType": "MenuItemSelection",
                "item": {"entityType": "MenuItem", "guid": line.item_ref},
                "displayName": line.name,
                "quantity": line.quantity,
                "modifiers": [
                    {
                        "entityType": "MenuItemSelection",
                        "item": {"entityType": "MenuItem", "guid": modifier.option_ref},
                        "optionGroup": {"entityType": "MenuOptionGroup", "guid": modifier.group_ref},
                        "displayName": modifier.name,
                        "quantity": 1,
                    }
                    for modifier in line.modifiers
                ],
            }
            if line.special_instructions:
                selection["specialRequest"] = line.special_instructions
            selections.append(selection)

        check: dict[str, Any] = {"entityType": "Check", "selections": selections}
        if summary.pickup_name or summary.pickup_phone:
            check["customer"] = {
                "firstName": summary.pickup_name,
                "phone": summary.pickup_phone,
            }

        payload: dict[str, Any] = {
            "entityType": "Order",
            "source": "PHONE",
            "diningOption": "TAKE_OUT",
            "checks": [check],
        }
        if summary.notes:
            payload["notes"] = summary.notes

        return MappedOrder(
            provider=self.provider_name,
            payload=payload,
            subtotal_cents=summary.subtotal_cents,
            summary=summary,
        )

    def _headers(self, merchant_ref: str) -> dict[str, str]:
        return {"Toast-Restaurant-External-ID": merchant_ref}

    async def price_order(self, restaurant: Restaurant, mapped: MappedOrder) -> PricingResult:
        """
        Ask Toast to price the order without creating it.

        Raises:
            UpstreamFailureError: 5xx, timeout, or no checks in the response
            ProviderRejectedError: Toast rejected the payload
        """
        token = await self.get_token(restaurant)
        body = await self._request(
            "POST",
            f"{token.base_url}{PRICES_PATH}",
            token=token.token,
            headers=self._headers(token.merchant_ref),
            json=mapped.payload,
        )

        checks = body.get("checks") if isinstance(body, dict) else None
        if not checks:
            raise UpstreamFailureError(
                "toast pricing response missing checks",
                {"provider": self.provider_name, "body": body},
            )

        subtotal = sum(dollars_to_cents(check.get("amount")) for check in checks)
        tax = sum(dollars_to_cents(check.get("taxAmount")) for check in checks)
        total = sum(
            dollars_to_cents(check["totalAmount"]) if check.get("totalAmount") is not None
            else dollars_to_cents(check.get("amount")) + dollars_to_cents(check.get("taxAmount"))
            for check in checks
        )

        logger.info(
            f"Toast priced order for {restaurant.id}: "
            f"subtotal={subtotal} tax={tax} total={total}"
        )
        return PricingResult(
            pricing_mode="provider",
            subtotal_cents=subtotal,
            tax_cents=tax,
            total_cents=total,
            raw=body,
        )

    async def submit_order(self, restaurant: Restaurant, mapped: MappedOrder) -> SubmissionResult:
        """
        Create the order in Toast.

        Raises:
            UpstreamFailureError: 5xx, timeout, or no order guid in the response
            ProviderRejectedError: Toast rejected the payload
        """
        token = await self.get_token(restaurant)
        body = await self._request(
            "POST",
            f"{token.base_url}{ORDERS_PATH}",
            token=token.token,
            headers=self._headers(token.merchant_ref),
            json=mapped.payload,
        )

        data = body if isinstance(body, dict) else {}
        order_guid = data.get("guid") or data.get("orderGuid") or data.get("id")
        if not order_guid:
            raise UpstreamFailureError(
                "toast order response missing guid",
                {"provider": self.provider_name, "body": body},
            )

        logger.info(f"Toast order created for {restaurant.id}: {order_guid}")
        return SubmissionResult(
            provider_order_id=str(order_guid),
            status=data.get("approvalStatus") or "SUBMITTED",
            raw=data,
        )
