"""
Menu Catalog

Storage and lookup for each tenant's NormalizedMenu snapshot.

A restaurant has at most one menu row. Syncs replace the whole document and
bump ``version`` in a single UPDATE so concurrent writers never lose an
increment; readers always see one complete snapshot.
"""

import logging
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from dialorder.core.config import get_settings
from dialorder.core.errors import InvalidMenuError, NotFoundError
from dialorder.models import Menu, Restaurant
from dialorder.schemas import (
    MenuSnapshot,
    MenuSyncResponse,
    NormalizedMenu,
    SearchMenuResponse,
    SearchModifierGroup,
    SearchOption,
    SearchResult,
)
from dialorder.services.menu.pricer import search_menu

logger = logging.getLogger(__name__)


def parse_menu(document: dict, restaurant_id: str) -> NormalizedMenu:
    """
    Parse a stored menu document.

    Raises:
        InvalidMenuError: Shape or reference checks fail
    """
    try:
        return NormalizedMenu.model_validate(document)
    except ValidationError as e:
        logger.error(f"Stored menu for restaurant {restaurant_id} is invalid: {e}")
        raise InvalidMenuError(
            "stored menu is invalid",
            {
                "restaurant_id": restaurant_id,
                "errors": [err["msg"] for err in e.errors()],
            },
        ) from e


def menu_counts(menu: NormalizedMenu) -> dict[str, int]:
    return {
        "categories": len(menu.categories),
        "items": len(menu.items),
        "modifier_groups": len(menu.modifier_groups),
        "modifier_options": len(menu.modifier_options),
    }


class MenuCatalog:
    """Read/replace the normalized menu of a tenant."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _row(self, restaurant_id: str) -> Optional[Menu]:
        result = await self.db.execute(
            select(Menu)
            .where(Menu.restaurant_id == restaurant_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def load(self, restaurant: Restaurant) -> MenuSnapshot:
        """
        Current menu snapshot with its version and hash.

        Raises:
            NotFoundError: Restaurant has no menu yet
            InvalidMenuError: Stored document does not parse
        """
        row = await self._row(restaurant.id)
        if row is None:
            raise NotFoundError("menu not found", {"restaurant_id": restaurant.id})

        return MenuSnapshot(
            restaurant_id=restaurant.id,
            version=row.version,
            source_hash=row.source_hash,
            last_sync_at=row.last_sync_at,
            menu=parse_menu(row.normalized_json, restaurant.id),
        )

    async def lookup(self, restaurant: Restaurant) -> NormalizedMenu:
        snapshot = await self.load(restaurant)
        return snapshot.menu

    async def search(
        self,
        restaurant: Restaurant,
        query: str,
        limit: Optional[int] = None,
    ) -> SearchMenuResponse:
        """Ranked item matches with their modifier groups expanded."""
        menu = await self.lookup(restaurant)
        limit = limit or get_settings().search_result_limit

        groups = menu.group_index()
        options = menu.option_index()

        results = []
        for item in search_menu(menu, query, limit):
            expanded = []
            for group_id in item.modifier_group_ids:
                group = groups[group_id]
                expanded.append(
                    SearchModifierGroup(
                        id=group.id,
                        name=group.name,
                        required_min=group.required_min,
                        required_max=group.required_max,
                        options=[
                            SearchOption(
                                id=options[option_id].id,
                                name=options[option_id].name,
                                price_delta_cents=options[option_id].price_delta_cents,
                            )
                            for option_id in group.option_ids
                        ],
                    )
                )
            results.append(
                SearchResult(
                    id=item.id,
                    name=item.name,
                    description=item.description,
                    price_cents=item.price_cents,
                    modifier_groups=expanded,
                )
            )

        logger.debug(f"Menu search '{query}' for {restaurant.id}: {len(results)} result(s)")
        return SearchMenuResponse(results=results)

    async def replace(self, restaurant_id: str, menu: NormalizedMenu) -> int:
        """
        Store ``menu`` as the tenant's snapshot and return the new version.

        The first write inserts version 1; later writes increment in place.
        If two first writes race, the loser falls back to the increment.
        """
        document = menu.model_dump(mode="json")
        source_hash = menu.content_hash()

        version = await self._bump(restaurant_id, document, source_hash)
        if version is None:
            self.db.add(
                Menu(
                    restaurant_id=restaurant_id,
                    version=1,
                    normalized_json=document,
                    source_hash=source_hash,
                )
            )
            try:
                await self.db.commit()
                version = 1
            except IntegrityError:
                await self.db.rollback()
                version = await self._bump(restaurant_id, document, source_hash)
                if version is None:
                    raise
        else:
            await self.db.commit()

        logger.info(f"Menu replaced for restaurant {restaurant_id}: v{version} ({source_hash[:12]})")
        return version

    async def _bump(self, restaurant_id: str, document: dict, source_hash: str) -> Optional[int]:
        result = await self.db.execute(
            update(Menu)
            .where(Menu.restaurant_id == restaurant_id)
            .values(
                version=Menu.version + 1,
                normalized_json=document,
                source_hash=source_hash,
                last_sync_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        row = await self.db.execute(select(Menu.version).where(Menu.restaurant_id == restaurant_id))
        return row.scalar_one()

    async def sync_from_provider(
        self,
        restaurant: Restaurant,
        provider_factory: Callable,
    ) -> MenuSyncResponse:
        """
        Pull the catalog from the tenant's POS and replace the stored menu.

        Raises:
            MisconfiguredError: Provider unset, unknown, mocked or without sync
            UpstreamFailureError: Provider request failed
        """
        adapter = provider_factory(restaurant, self.db)
        menu = await adapter.fetch_menu(restaurant)
        version = await self.replace(restaurant.id, menu)
        return MenuSyncResponse(
            restaurant_id=restaurant.id,
            version=version,
            counts=menu_counts(menu),
        )
