"""Builders shared by the test modules."""

from dialorder.core.config import Settings
from dialorder.schemas import NormalizedMenu
from dialorder.services.pos import MockPOSProvider, get_pos_provider

RESTAURANT_ID = "rest-1"
RESTAURANT_PHONE = "+15551234567"
CALLER_PHONE = "+15550002222"


def provider_ids(kind: str, local_id: str, group_id: str = None) -> dict:
    """external_ids for both providers, e.g. {"toast": {"item_id": "toast-item-x"}}."""
    ids = {}
    for provider in ("toast", "clover"):
        if kind == "item":
            ids[provider] = {"item_id": f"{provider}-{local_id}"}
        elif kind == "group":
            ids[provider] = {"modifier_group_id": f"{provider}-{local_id}"}
        else:
            ids[provider] = {
                "modifier_group_id": f"{provider}-{group_id}",
                "modifier_option_id": f"{provider}-{local_id}",
            }
    return ids


def build_menu() -> NormalizedMenu:
    return NormalizedMenu.model_validate({
        "categories": [
            {"id": "cat-burgers", "name": "Burgers", "item_ids": ["item-classic-burger", "item-veggie-burger"]},
            {"id": "cat-sides", "name": "Sides", "item_ids": ["item-fries", "item-soda"]},
        ],
        "items": [
            {
                "id": "item-classic-burger",
                "name": "Classic Burger",
                "price_cents": 1199,
                "description": "Beef patty, lettuce, tomato, house sauce.",
                "modifier_group_ids": ["mod-cheese", "mod-extras"],
                "synonyms": ["burger", "cheeseburger"],
                "external_ids": provider_ids("item", "item-classic-burger"),
            },
            {
                "id": "item-veggie-burger",
                "name": "Veggie Burger",
                "price_cents": 1299,
                "modifier_group_ids": ["mod-cheese", "mod-extras"],
                "synonyms": ["veggie", "vegetarian burger"],
                "external_ids": provider_ids("item", "item-veggie-burger"),
            },
            {
                "id": "item-fries",
                "name": "French Fries",
                "price_cents": 399,
                "synonyms": ["fries", "chips"],
                "external_ids": provider_ids("item", "item-fries"),
            },
            {
                "id": "item-soda",
                "name": "Soft Drink",
                "price_cents": 249,
                "synonyms": ["soda"],
                "external_ids": provider_ids("item", "item-soda"),
            },
        ],
        "modifier_groups": [
            {
                "id": "mod-cheese",
                "name": "Cheese",
                "required_min": 1,
                "required_max": 1,
                "option_ids": ["opt-cheddar", "opt-swiss"],
                "external_ids": provider_ids("group", "mod-cheese"),
            },
            {
                "id": "mod-extras",
                "name": "Extras",
                "required_min": 0,
                "required_max": 2,
                "option_ids": ["opt-bacon", "opt-avocado"],
                "external_ids": provider_ids("group", "mod-extras"),
            },
        ],
        "modifier_options": [
            {"id": "opt-cheddar", "name": "Cheddar", "price_delta_cents": 0,
             "external_ids": provider_ids("option", "opt-cheddar", "mod-cheese")},
            {"id": "opt-swiss", "name": "Swiss", "price_delta_cents": 0,
             "external_ids": provider_ids("option", "opt-swiss", "mod-cheese")},
            {"id": "opt-bacon", "name": "Bacon", "price_delta_cents": 199,
             "external_ids": provider_ids("option", "opt-bacon", "mod-extras")},
            {"id": "opt-avocado", "name": "Avocado", "price_delta_cents": 179,
             "external_ids": provider_ids("option", "opt-avocado", "mod-extras")},
        ],
    })


def burger_selection(quantity: int = 2, cheese: str = "opt-cheddar") -> dict:
    return {
        "item_id": "item-classic-burger",
        "quantity": quantity,
        "modifiers": [{"group_id": "mod-cheese", "option_ids": [cheese]}],
    }


class RecordingProviderFactory:
    """get_pos_provider with fixed settings/transport, remembering each adapter."""

    def __init__(self, settings: Settings, transport=None):
        self.settings = settings
        self.transport = transport
        self.providers = []

    def __call__(self, restaurant, db):
        provider = get_pos_provider(restaurant, db, settings=self.settings, transport=self.transport)
        self.providers.append(provider)
        return provider

    @property
    def submissions(self) -> int:
        return sum(
            len(provider.submitted)
            for provider in self.providers
            if isinstance(provider, MockPOSProvider)
        )

