"""
Order Pipeline

Drives an order through draft -> priced -> confirmed for one tenant.

Correctness under retries and concurrent requests rests on the database,
not on in-process locks:

    - before the provider is called, submit binds the key and sets
      submit_claimed_at in one committed conditional UPDATE; only the request
      whose UPDATE matched a row talks to the POS, an overlapping request gets
      Conflict and a later one reads the stored reference
    - a failed provider call clears the claim, so the same key can be retried
    - orders.client_order_id is unique, so a key cannot be bound to two orders
    - status/reference writes are conditional UPDATEs (WHERE-guarded), so a
      confirmed order is never moved back and a provider reference is never
      overwritten

Provider failures propagate unchanged and leave the order in its prior state.
"""

import logging
from typing import Callable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dialorder.core.errors import ConflictError, NotFoundError
from dialorder.models import Order, OrderStatus, Restaurant, generate_id
from dialorder.schemas import (
    DraftOrder,
    DraftOrderResponse,
    PriceOrderResponse,
    PricingTotals,
    Selection,
    SubmitOrderResponse,
)
from dialorder.services.menu.catalog import MenuCatalog
from dialorder.services.menu.pricer import build_draft_summary
from dialorder.services.pos import get_pos_provider
from dialorder.services.tenant import TenantResolver

logger = logging.getLogger(__name__)

SUBMITTED_TEXT = "Order submitted to restaurant."
ALREADY_SUBMITTED_TEXT = "Order already submitted."


class OrderPipeline:
    """
    Order operations for the voice agent's tool calls.

    Args:
        db: Request-scoped session
        provider_factory: (restaurant, db) -> POS adapter; tests inject fakes
    """

    def __init__(self, db: AsyncSession, provider_factory: Callable = get_pos_provider):
        self.db = db
        self.provider_factory = provider_factory
        self.catalog = MenuCatalog(db)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def _load_order(self, restaurant_id: str, order_id: str) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None or order.restaurant_id != restaurant_id:
            raise NotFoundError(
                "order not found",
                {"restaurant_id": restaurant_id, "order_id": order_id},
            )
        return order

    async def _by_client_order_id(self, client_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.client_order_id == client_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _load_draft(self, order: Order) -> DraftOrder:
        draft = DraftOrder.model_validate(order.draft_json or {})
        if not draft.selections:
            raise NotFoundError("order has no draft selections", {"order_id": order.id})
        return draft

    def _already_submitted(self, order: Order) -> SubmitOrderResponse:
        logger.info(f"Order {order.id} already submitted as {order.provider_order_id}")
        return SubmitOrderResponse(
            order_id=order.id,
            provider_order_id=order.provider_order_id,
            confirmation_text=ALREADY_SUBMITTED_TEXT,
            already_submitted=True,
        )

    # =========================================================================
    # DRAFT
    # =========================================================================

    async def create_draft(
        self,
        restaurant: Restaurant,
        call_id: str,
        selections: Sequence[Selection],
        notes: Optional[str] = None,
        pickup_name: Optional[str] = None,
        pickup_phone: Optional[str] = None,
        client_order_id: Optional[str] = None,
    ) -> DraftOrderResponse:
        """
        Validate selections and persist a new draft order.

        Raises:
            NotFoundError: Call or menu missing
            ValidationFailedError: Selections break menu rules
            ConflictError: client_order_id already bound to an order
        """
        await TenantResolver(self.db).require_call(restaurant, call_id)
        snapshot = await self.catalog.load(restaurant)
        summary = build_draft_summary(snapshot.menu, selections, notes, pickup_name, pickup_phone)

        if client_order_id and await self._by_client_order_id(client_order_id):
            raise ConflictError(
                "client_order_id already in use",
                {"client_order_id": client_order_id},
            )

        order_id = generate_id()
        key = client_order_id or order_id
        draft = DraftOrder(
            selections=list(selections),
            notes=notes,
            pickup_name=pickup_name,
            pickup_phone=pickup_phone,
            summary=summary,
            menu_version=snapshot.version,
        )
        self.db.add(
            Order(
                id=order_id,
                restaurant_id=restaurant.id,
                call_id=call_id,
                status=OrderStatus.DRAFT,
                draft_json=draft.model_dump(mode="json"),
                client_order_id=key,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("client_order_id already in use", {"client_order_id": key}) from e

        logger.info(
            f"Draft order {order_id} created for {restaurant.id}: "
            f"{len(summary.items)} line(s), {summary.subtotal_cents} cents"
        )
        return DraftOrderResponse(order_id=order_id, client_order_id=key, draft_summary=summary)

    # =========================================================================
    # PRICE
    # =========================================================================

    async def price(self, restaurant: Restaurant, order_id: str) -> PriceOrderResponse:
        """
        Price a draft (or re-price a priced order) through the tenant's POS.

        Raises:
            NotFoundError: Order missing, foreign, or without selections
            ConflictError: Order already confirmed
            ValidationFailedError: Draft no longer valid against the menu
            BadMappingError / UpstreamFailureError / MisconfiguredError
        """
        order = await self._load_order(restaurant.id, order_id)
        if order.status == OrderStatus.CONFIRMED:
            raise ConflictError("order already confirmed", {"order_id": order.id})

        draft = self._load_draft(order)
        snapshot = await self.catalog.load(restaurant)
        summary = build_draft_summary(
            snapshot.menu,
            draft.selections,
            draft.notes,
            draft.pickup_name,
            draft.pickup_phone,
        )
        draft = draft.model_copy(update={"summary": summary, "menu_version": snapshot.version})

        provider = self.provider_factory(restaurant, self.db)
        mapped = provider.map_payload(snapshot.menu, draft)
        pricing = await provider.price_order(restaurant, mapped)

        priced = {
            **pricing.to_dict(),
            "provider": provider.provider_name,
            "menu_version": snapshot.version,
            "summary": summary.model_dump(mode="json"),
        }
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status != OrderStatus.CONFIRMED)
            .values(
                status=OrderStatus.PRICED,
                priced_json=priced,
                pos_provider=provider.provider_name,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise ConflictError("order confirmed while pricing", {"order_id": order_id})
        await self.db.commit()

        logger.info(
            f"Order {order.id} priced via {provider.provider_name} ({pricing.pricing_mode}): "
            f"total={pricing.total_cents}"
        )
        return PriceOrderResponse(
            order_id=order.id,
            status=OrderStatus.PRICED.value,
            pricing_mode=pricing.pricing_mode,
            totals=PricingTotals(
                subtotal_cents=pricing.subtotal_cents,
                tax_cents=pricing.tax_cents,
                total_cents=pricing.total_cents,
            ),
            priced_summary=priced,
        )

    # =========================================================================
    # SUBMIT
    # =========================================================================

    async def submit(
        self,
        restaurant: Restaurant,
        order_id: str,
        client_order_id: str,
    ) -> SubmitOrderResponse:
        """
        Submit an order to the tenant's POS at most once per client_order_id.

        Repeating a call with the same key returns the stored provider
        reference without touching the network. A call that overlaps an
        in-flight submission of the same order is refused with Conflict.

        Raises:
            NotFoundError: Order missing, foreign, or without selections
            ConflictError: Key bound to a different order or tenant, or a
                submission of this order is in progress
            ValidationFailedError / BadMappingError / UpstreamFailureError
        """
        restaurant_id = restaurant.id
        existing = await self._by_client_order_id(client_order_id)
        if existing is not None:
            if existing.restaurant_id != restaurant_id:
                raise ConflictError(
                    "client_order_id belongs to another restaurant",
                    {"client_order_id": client_order_id},
                )
            if existing.provider_order_id:
                return self._already_submitted(existing)
            if existing.id != order_id:
                raise ConflictError(
                    "client_order_id already used by another order",
                    {"client_order_id": client_order_id, "order_id": existing.id},
                )

        order = await self._load_order(restaurant_id, order_id)
        if order.provider_order_id:
            return self._already_submitted(order)

        draft = self._load_draft(order)
        snapshot = await self.catalog.load(restaurant)
        summary = build_draft_summary(
            snapshot.menu,
            draft.selections,
            draft.notes,
            draft.pickup_name,
            draft.pickup_phone,
        )
        draft = draft.model_copy(update={"summary": summary, "menu_version": snapshot.version})

        provider = self.provider_factory(restaurant, self.db)
        mapped = provider.map_payload(snapshot.menu, draft)

        winner = await self._claim_submission(restaurant_id, order_id, client_order_id)
        if winner is not None:
            return self._already_submitted(winner)

        try:
            submission = await provider.submit_order(restaurant, mapped)
        except Exception:
            await self._release_claim(order_id)
            raise

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.provider_order_id.is_(None))
            .values(
                status=OrderStatus.CONFIRMED,
                provider_order_id=submission.provider_order_id,
                pos_provider=provider.provider_name,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            logger.error(
                f"Order {order_id} lost its submit claim; {provider.provider_name} "
                f"order {submission.provider_order_id} is not recorded"
            )
            raise ConflictError(
                "order confirmed by another request",
                {"order_id": order_id, "provider_order_id": submission.provider_order_id},
            )
        await self.db.commit()

        logger.info(
            f"Order {order_id} confirmed via {provider.provider_name}: "
            f"{submission.provider_order_id}"
        )
        return SubmitOrderResponse(
            order_id=order_id,
            provider_order_id=submission.provider_order_id,
            confirmation_text=SUBMITTED_TEXT,
            already_submitted=False,
        )

    async def _claim_submission(
        self,
        restaurant_id: str,
        order_id: str,
        client_order_id: str,
    ) -> Optional[Order]:
        """
        Bind the key and mark the order as being submitted, in one committed
        conditional UPDATE, before any network call.

        Returns None when this request owns the submission, or the order that
        already carries a provider reference for the key.
        """
        try:
            result = await self.db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.provider_order_id.is_(None),
                    Order.submit_claimed_at.is_(None),
                )
                .values(client_order_id=client_order_id, submit_claimed_at=func.now())
                .execution_options(synchronize_session=False)
            )
            claimed = result.rowcount == 1
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await self._by_client_order_id(client_order_id)
            if (
                winner is not None
                and winner.restaurant_id == restaurant_id
                and winner.provider_order_id
            ):
                return winner
            raise ConflictError(
                "client_order_id already used by another order",
                {"client_order_id": client_order_id},
            )

        if claimed:
            logger.info(f"Order {order_id} claimed for submission as {client_order_id}")
            return None

        current = await self._load_order(restaurant_id, order_id)
        if current.provider_order_id:
            return current
        raise ConflictError(
            "submission in progress",
            {"order_id": order_id, "client_order_id": current.client_order_id},
        )

    async def _release_claim(self, order_id: str) -> None:
        """Clear an unfinished claim so the same key can be resubmitted."""
        await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.provider_order_id.is_(None))
            .values(submit_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.warning(f"Order {order_id} submission failed; claim released")
