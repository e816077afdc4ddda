"""
Tenant Resolver

Maps an inbound phone number or a restaurant id to a restaurant row and
gates every other operation on the tenant being active. Downstream services
take the validated Restaurant, never a raw id.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dialorder.core.errors import ForbiddenError, NotFoundError
from dialorder.models import Call, Restaurant, RestaurantStatus

logger = logging.getLogger(__name__)


class TenantResolver:
    """Read access to tenants and their calls."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_by_phone(self, phone_number: str) -> Optional[Restaurant]:
        result = await self.db.execute(
            select(Restaurant).where(Restaurant.phone_number == phone_number)
        )
        return result.scalar_one_or_none()

    async def require_by_id(self, restaurant_id: str, active_only: bool = True) -> Restaurant:
        """
        Load a restaurant, by default only if it is active.

        Raises:
            NotFoundError: No restaurant with that id
            ForbiddenError: Restaurant is not active
        """
        restaurant = await self.db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("restaurant not found", {"restaurant_id": restaurant_id})
        if active_only and restaurant.status != RestaurantStatus.ACTIVE:
            raise ForbiddenError("restaurant is inactive", {"restaurant_id": restaurant_id})
        return restaurant

    async def register_call(
        self,
        restaurant: Restaurant,
        from_number: str,
        to_number: str,
    ) -> Call:
        """Record an inbound call so drafts can be tied back to it."""
        call = Call(
            restaurant_id=restaurant.id,
            from_number=from_number,
            to_number=to_number,
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)

        logger.info(f"Call {call.id} registered for restaurant {restaurant.id}")
        return call

    async def require_call(self, restaurant: Restaurant, call_id: str) -> Call:
        call = await self.db.get(Call, call_id)
        if call is None or call.restaurant_id != restaurant.id:
            raise NotFoundError(
                "call not found for restaurant",
                {"restaurant_id": restaurant.id, "call_id": call_id},
            )
        return call

    async def set_status(self, restaurant_id: str, status: RestaurantStatus) -> None:
        await self._update(restaurant_id, status=status)
        logger.info(f"Restaurant {restaurant_id} status -> {status.value}")

    async def set_pos_provider(self, restaurant_id: str, provider: str) -> None:
        await self._update(restaurant_id, pos_provider=provider)
        logger.info(f"Restaurant {restaurant_id} POS provider -> {provider}")

    async def _update(self, restaurant_id: str, **values) -> None:
        result = await self.db.execute(
            update(Restaurant).where(Restaurant.id == restaurant_id).values(**values)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError("restaurant not found", {"restaurant_id": restaurant_id})
        await self.db.commit()
