"""
Menu Services

    - catalog: per-tenant NormalizedMenu storage, versioning and search
    - pricer: pure validation and pricing of selections
"""

from dialorder.services.menu.catalog import MenuCatalog, parse_menu
from dialorder.services.menu.pricer import (
    build_draft_summary,
    search_menu,
    validate_selections,
)

__all__ = [
    "MenuCatalog",
    "parse_menu",
    "build_draft_summary",
    "search_menu",
    "validate_selections",
]
