"""
Pydantic Schemas

- Normalized menu model (provider-agnostic catalog + per-provider ids)
- Selections and the derived draft summary
- Request/Response schemas for the tool endpoints the voice agent calls
"""

import hashlib
import json
from datetime import datetime
from typing import Optional, List, Any

from pydantic import BaseModel, Field, field_validator, model_validator


# =============================================================================
# NORMALIZED MENU
# =============================================================================

class ProviderIds(BaseModel):
    """Provider-native ids for one menu entity."""
    item_id: Optional[str] = None
    modifier_group_id: Optional[str] = None
    modifier_option_id: Optional[str] = None


class MenuCategory(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    item_ids: List[str] = Field(default_factory=list)


class MenuItem(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    price_cents: int
    description: Optional[str] = None
    modifier_group_ids: List[str] = Field(default_factory=list)
    synonyms: List[str] = Field(default_factory=list)
    external_ids: dict[str, ProviderIds] = Field(default_factory=dict)

    def provider_id(self, provider: str) -> Optional[str]:
        ids = self.external_ids.get(provider)
        return ids.item_id if ids else None


class ModifierGroup(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    required_min: int = Field(default=0, ge=0)
    required_max: int = Field(default=0, ge=0)
    option_ids: List[str] = Field(default_factory=list)
    external_ids: dict[str, ProviderIds] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_bounds(self) -> "ModifierGroup":
        if self.required_min > self.required_max:
            raise ValueError(
                f"modifier group {self.id}: required_min {self.required_min} "
                f"exceeds required_max {self.required_max}"
            )
        return self

    def provider_id(self, provider: str) -> Optional[str]:
        ids = self.external_ids.get(provider)
        return ids.modifier_group_id if ids else None


class ModifierOption(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    price_delta_cents: int = 0
    external_ids: dict[str, ProviderIds] = Field(default_factory=dict)

    def provider_id(self, provider: str) -> Optional[str]:
        ids = self.external_ids.get(provider)
        return ids.modifier_option_id if ids else None


class NormalizedMenu(BaseModel):
    """
    Provider-agnostic catalog snapshot.

    Parsing enforces that every id referenced by a category, item or group
    resolves within the same snapshot.
    """
    categories: List[MenuCategory] = Field(default_factory=list)
    items: List[MenuItem] = Field(default_factory=list)
    modifier_groups: List[ModifierGroup] = Field(default_factory=list)
    modifier_options: List[ModifierOption] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_references(self) -> "NormalizedMenu":
        item_ids = {item.id for item in self.items}
        group_ids = {group.id for group in self.modifier_groups}
        option_ids = {option.id for option in self.modifier_options}

        problems = []
        for category in self.categories:
            problems.extend(
                f"category {category.id} references unknown item {item_id}"
                for item_id in category.item_ids if item_id not in item_ids
            )
        for item in self.items:
            problems.extend(
                f"item {item.id} references unknown modifier group {group_id}"
                for group_id in item.modifier_group_ids if group_id not in group_ids
            )
        for group in self.modifier_groups:
            problems.extend(
                f"modifier group {group.id} references unknown option {option_id}"
                for option_id in group.option_ids if option_id not in option_ids
            )
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def item_index(self) -> dict[str, MenuItem]:
        return {item.id: item for item in self.items}

    def group_index(self) -> dict[str, ModifierGroup]:
        return {group.id: group for group in self.modifier_groups}

    def option_index(self) -> dict[str, ModifierOption]:
        return {option.id: option for option in self.modifier_options}

    def content_hash(self) -> str:
        """sha256 of the canonical JSON form."""
        canonical = json.dumps(
            self.model_dump(mode="json"),
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# =============================================================================
# SELECTIONS & DRAFT SUMMARY
# =============================================================================

class SelectionModifier(BaseModel):
    """Options chosen for one modifier group. Duplicate ids collapse."""
    group_id: str = Field(..., min_length=1)
    option_ids: List[str] = Field(default_factory=list)

    @field_validator("option_ids")
    @classmethod
    def dedupe_options(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


class Selection(BaseModel):
    """One requested line; quantity is checked by the pricer, not here."""
    item_id: str = Field(..., min_length=1, examples=["item-classic-burger"])
    quantity: int = Field(..., examples=[2])
    modifiers: List[SelectionModifier] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(None, max_length=500)


class DraftOption(BaseModel):
    id: str
    name: str


class DraftModifier(BaseModel):
    group_id: str
    group_name: str
    options: List[DraftOption] = Field(default_factory=list)


class DraftLineItem(BaseModel):
    item_id: str
    name: str
    quantity: int
    modifiers: List[DraftModifier] = Field(default_factory=list)
    special_instructions: Optional[str] = None
    line_subtotal_cents: int


class DraftSummary(BaseModel):
    items: List[DraftLineItem] = Field(default_factory=list)
    subtotal_cents: int = 0
    notes: Optional[str] = None
    pickup_name: Optional[str] = None
    pickup_phone: Optional[str] = None


class DraftOrder(BaseModel):
    """What an order row stores in draft_json."""
    selections: List[Selection] = Field(default_factory=list)
    notes: Optional[str] = None
    pickup_name: Optional[str] = None
    pickup_phone: Optional[str] = None
    summary: Optional[DraftSummary] = None
    menu_version: Optional[int] = None


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class InboundCallRequest(BaseModel):
    """Telephony hand-off: which number was dialed, and by whom."""
    to_number: str = Field(..., min_length=1, examples=["+15551234567"])
    from_number: str = Field(..., min_length=1, examples=["+15550002222"])


class SearchMenuRequest(BaseModel):
    restaurant_id: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1, examples=["cheeseburger"])
    limit: Optional[int] = Field(None, ge=1, le=50)


class DraftOrderRequest(BaseModel):
    restaurant_id: str = Field(..., min_length=1)
    call_id: str = Field(..., min_length=1)
    selections: List[Selection] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)
    pickup_name: Optional[str] = Field(None, max_length=100)
    pickup_phone: Optional[str] = Field(None, max_length=32)
    client_order_id: Optional[str] = Field(None, min_length=1, max_length=128)


class PriceOrderRequest(BaseModel):
    restaurant_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)


class SubmitOrderRequest(BaseModel):
    restaurant_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    client_order_id: str = Field(..., min_length=1, max_length=128)


class CredentialUpsert(BaseModel):
    """Fields written by an OAuth callback or admin seeding."""
    external_ref: str = Field(..., min_length=1, examples=["merchant-123"])
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    environment: str = Field(default="sandbox", examples=["sandbox", "prod"])
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class InboundCallResponse(BaseModel):
    restaurant_id: str
    restaurant_name: str
    call_id: str


class MenuSnapshot(BaseModel):
    restaurant_id: str
    version: int
    source_hash: str
    last_sync_at: Optional[datetime] = None
    menu: NormalizedMenu


class SearchOption(BaseModel):
    id: str
    name: str
    price_delta_cents: int


class SearchModifierGroup(BaseModel):
    id: str
    name: str
    required_min: int
    required_max: int
    options: List[SearchOption] = Field(default_factory=list)


class SearchResult(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price_cents: int
    modifier_groups: List[SearchModifierGroup] = Field(default_factory=list)


class SearchMenuResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)


class DraftOrderResponse(BaseModel):
    order_id: str
    client_order_id: str
    draft_summary: DraftSummary


class PricingTotals(BaseModel):
    subtotal_cents: int
    tax_cents: int
    total_cents: int


class PriceOrderResponse(BaseModel):
    order_id: str
    status: str
    pricing_mode: str
    totals: Optional[PricingTotals] = None
    priced_summary: dict[str, Any] = Field(default_factory=dict)


class SubmitOrderResponse(BaseModel):
    order_id: str
    provider_order_id: str
    confirmation_text: str
    already_submitted: bool = False


class CredentialPublic(BaseModel):
    """Credential view without secrets."""
    restaurant_id: str
    provider: str
    external_ref: str
    environment: str
    has_access_token: bool
    has_refresh_token: bool
    token_expires_at: Optional[datetime] = None


class MenuSyncResponse(BaseModel):
    restaurant_id: str
    version: int
    counts: dict[str, int]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_code: str
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str
    database: str
    environment: str
    providers: dict[str, str]
    timestamp: datetime
