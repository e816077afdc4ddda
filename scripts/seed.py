"""
Seed Script

Creates (or updates) a sample restaurant with a burger-joint menu so the
service runs end to end in mock mode. Menu entities carry Toast and Clover
ids, so either provider can be selected. Live credentials are written only
when provided through SEED_* environment variables.

Run from project root: python scripts/seed.py [--provider clover]
"""

import argparse
import asyncio
import os
import sys
import uuid

from sqlalchemy import select

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dialorder.core.config import setup_logging  # noqa: E402
from dialorder.database import async_session_maker, init_db, engine  # noqa: E402
from dialorder.models import Restaurant, RestaurantStatus  # noqa: E402
from dialorder.schemas import CredentialUpsert, NormalizedMenu  # noqa: E402
from dialorder.services.credentials import CredentialStore  # noqa: E402
from dialorder.services.menu import MenuCatalog  # noqa: E402

logger = setup_logging()

CATEGORIES = [
    ("cat-burgers", "Burgers", ["item-classic-burger", "item-veggie-burger"]),
    ("cat-sides", "Sides", ["item-fries", "item-salad"]),
    ("cat-drinks", "Drinks", ["item-soda", "item-water"]),
]

# id, name, price, description, groups, synonyms
ITEMS = [
    ("item-classic-burger", "Classic Burger", 1199, "Beef patty, lettuce, tomato, house sauce.",
     ["mod-cheese", "mod-extras"], ["burger", "cheeseburger"]),
    ("item-veggie-burger", "Veggie Burger", 1299, "House veggie patty with fresh toppings.",
     ["mod-cheese", "mod-extras"], ["veggie", "vegetarian burger"]),
    ("item-fries", "French Fries", 399, "Crispy fries with sea salt.",
     ["mod-fry-size"], ["fries", "chips"]),
    ("item-salad", "House Salad", 599, "Mixed greens, tomato, cucumber.",
     ["mod-dressing"], ["salad"]),
    ("item-soda", "Soft Drink", 249, "Choice of Coke, Sprite, or Fanta.",
     ["mod-soda-type"], ["soda", "soft drink"]),
    ("item-water", "Bottled Water", 199, "Still water.", [], ["water"]),
]

# id, name, min, max, options
GROUPS = [
    ("mod-cheese", "Cheese", 1, 1, ["opt-cheddar", "opt-swiss", "opt-none"]),
    ("mod-extras", "Extras", 0, 3, ["opt-bacon", "opt-avocado", "opt-jalapeno"]),
    ("mod-fry-size", "Size", 1, 1, ["opt-regular", "opt-large"]),
    ("mod-dressing", "Dressing", 1, 1, ["opt-ranch", "opt-vinaigrette", "opt-caesar"]),
    ("mod-soda-type", "Soda Type", 1, 1, ["opt-coke", "opt-sprite", "opt-fanta"]),
]

OPTIONS = [
    ("opt-cheddar", "Cheddar", 0),
    ("opt-swiss", "Swiss", 0),
    ("opt-none", "No Cheese", 0),
    ("opt-bacon", "Bacon", 199),
    ("opt-avocado", "Avocado", 179),
    ("opt-jalapeno", "Jalapeno", 79),
    ("opt-regular", "Regular", 0),
    ("opt-large", "Large", 150),
    ("opt-ranch", "Ranch", 0),
    ("opt-vinaigrette", "Vinaigrette", 0),
    ("opt-caesar", "Caesar", 0),
    ("opt-coke", "Coke", 0),
    ("opt-sprite", "Sprite", 0),
    ("opt-fanta", "Fanta", 0),
]


def provider_ref(provider: str, local_id: str) -> str:
    """Stable placeholder id, e.g. a Toast GUID derived from the local id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{provider}:{local_id}"))


def build_sample_menu() -> NormalizedMenu:
    providers = ("toast", "clover")
    group_of = {option_id: group[0] for group in GROUPS for option_id in group[4]}

    return NormalizedMenu.model_validate({
        "categories": [
            {"id": cid, "name": name, "item_ids": item_ids}
            for cid, name, item_ids in CATEGORIES
        ],
        "items": [
            {
                "id": iid,
                "name": name,
                "price_cents": price,
                "description": description,
                "modifier_group_ids": groups,
                "synonyms": synonyms,
                "external_ids": {p: {"item_id": provider_ref(p, iid)} for p in providers},
            }
            for iid, name, price, description, groups, synonyms in ITEMS
        ],
        "modifier_groups": [
            {
                "id": gid,
                "name": name,
                "required_min": low,
                "required_max": high,
                "option_ids": option_ids,
                "external_ids": {p: {"modifier_group_id": provider_ref(p, gid)} for p in providers},
            }
            for gid, name, low, high, option_ids in GROUPS
        ],
        "modifier_options": [
            {
                "id": oid,
                "name": name,
                "price_delta_cents": delta,
                "external_ids": {
                    p: {
                        "modifier_group_id": provider_ref(p, group_of[oid]),
                        "modifier_option_id": provider_ref(p, oid),
                    }
                    for p in providers
                },
            }
            for oid, name, delta in OPTIONS
        ],
    })


def credentials_from_env(provider: str):
    """CredentialUpsert from SEED_<PROVIDER>_* variables, or None if incomplete."""
    prefix = f"SEED_{provider.upper()}_"
    external_ref = os.getenv(f"{prefix}EXTERNAL_REF")
    client_id = os.getenv(f"{prefix}CLIENT_ID")
    client_secret = os.getenv(f"{prefix}CLIENT_SECRET")
    if not (external_ref and client_id and client_secret):
        return None

    fields = {
        "external_ref": external_ref,
        "client_id": client_id,
        "client_secret": client_secret,
        "environment": os.getenv(f"{prefix}ENVIRONMENT", "sandbox"),
    }
    refresh_token = os.getenv(f"{prefix}REFRESH_TOKEN")
    if refresh_token:
        fields["refresh_token"] = refresh_token
    return CredentialUpsert(**fields)


async def seed(args: argparse.Namespace) -> None:
    await init_db()

    async with async_session_maker() as db:
        result = await db.execute(
            select(Restaurant).where(Restaurant.phone_number == args.phone)
        )
        restaurant = result.scalar_one_or_none()
        if restaurant is None:
            restaurant = Restaurant(id=args.restaurant_id or str(uuid.uuid4()), phone_number=args.phone)
            db.add(restaurant)

        restaurant.name = args.name
        restaurant.timezone = args.timezone
        restaurant.status = RestaurantStatus.ACTIVE
        restaurant.pos_provider = args.provider
        await db.commit()
        restaurant_id = restaurant.id

        version = await MenuCatalog(db).replace(restaurant_id, build_sample_menu())

        store = CredentialStore(db)
        for provider in ("toast", "clover"):
            fields = credentials_from_env(provider)
            if fields is not None:
                await store.upsert(restaurant_id, provider, fields)

    await engine.dispose()
    logger.info(f"Seed complete: restaurant={restaurant_id} phone={args.phone} menu=v{version}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a sample restaurant")
    parser.add_argument("--restaurant-id", default=os.getenv("SEED_RESTAURANT_ID"))
    parser.add_argument("--phone", default=os.getenv("SEED_PHONE_NUMBER", "+15551234567"))
    parser.add_argument("--name", default=os.getenv("SEED_RESTAURANT_NAME", "Sample Diner"))
    parser.add_argument("--timezone", default=os.getenv("SEED_RESTAURANT_TIMEZONE", "America/Los_Angeles"))
    parser.add_argument(
        "--provider",
        choices=["toast", "clover"],
        default=os.getenv("SEED_POS_PROVIDER", "toast"),
    )
    asyncio.run(seed(parser.parse_args()))
