"""
Menu Validator / Pricer

Pure functions over a NormalizedMenu snapshot: no I/O, same inputs give the
same DraftSummary.

validate_selections() checks every selection against the menu's modifier
cardinality rules and prices it. Problems are collected rather than raised
one at a time so the voice agent gets the complete list in one round trip;
if anything is wrong the whole call fails.
"""

import logging
from typing import Optional, Sequence

from dialorder.core.errors import ValidationFailedError
from dialorder.schemas import (
    DraftLineItem,
    DraftModifier,
    DraftOption,
    DraftSummary,
    MenuItem,
    NormalizedMenu,
    Selection,
)

logger = logging.getLogger(__name__)


def _chosen_options_by_group(selection: Selection) -> dict[str, list[str]]:
    """Merge modifier choices per group, keeping first-seen order."""
    chosen: dict[str, list[str]] = {}
    for modifier in selection.modifiers:
        options = chosen.setdefault(modifier.group_id, [])
        for option_id in modifier.option_ids:
            if option_id not in options:
                options.append(option_id)
    return chosen


def validate_selections(
    menu: NormalizedMenu,
    selections: Sequence[Selection],
) -> DraftSummary:
    """
    Validate and price selections.

    Line subtotal = (item price + chosen option deltas) x quantity.

    Raises:
        ValidationFailedError: carrying every problem found
    """
    items = menu.item_index()
    groups = menu.group_index()
    options = menu.option_index()

    errors: list[str] = []
    lines: list[DraftLineItem] = []

    for index, selection in enumerate(selections):
        item = items.get(selection.item_id)
        if item is None:
            errors.append(f"selection[{index}].item_id {selection.item_id} not found")
            continue

        quantity = selection.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors.append(f"selection[{index}].quantity must be a positive integer")
            continue

        chosen = _chosen_options_by_group(selection)
        unit_price = item.price_cents
        modifiers: list[DraftModifier] = []

        for group_id in item.modifier_group_ids:
            group = groups[group_id]
            picked: list[DraftOption] = []

            for option_id in chosen.get(group_id, []):
                if option_id not in group.option_ids:
                    errors.append(
                        f"option {option_id} is not valid for modifier group {group.name}"
                    )
                    continue
                option = options[option_id]
                picked.append(DraftOption(id=option.id, name=option.name))
                unit_price += option.price_delta_cents

            if len(picked) < group.required_min:
                errors.append(
                    f"item {item.name} requires at least {group.required_min} "
                    f"option(s) for {group.name}"
                )
            elif len(picked) > group.required_max:
                errors.append(
                    f"item {item.name} allows at most {group.required_max} "
                    f"option(s) for {group.name}"
                )

            if picked or group.required_min > 0:
                modifiers.append(
                    DraftModifier(group_id=group.id, group_name=group.name, options=picked)
                )

        for group_id in chosen:
            if group_id not in item.modifier_group_ids:
                errors.append(f"modifier group {group_id} is not valid for item {item.name}")

        lines.append(
            DraftLineItem(
                item_id=item.id,
                name=item.name,
                quantity=quantity,
                modifiers=modifiers,
                special_instructions=selection.special_instructions,
                line_subtotal_cents=unit_price * quantity,
            )
        )

    if errors:
        logger.info(f"Selections rejected with {len(errors)} error(s)")
        raise ValidationFailedError("invalid selections", errors)

    return DraftSummary(
        items=lines,
        subtotal_cents=sum(line.line_subtotal_cents for line in lines),
    )


def build_draft_summary(
    menu: NormalizedMenu,
    selections: Sequence[Selection],
    notes: Optional[str] = None,
    pickup_name: Optional[str] = None,
    pickup_phone: Optional[str] = None,
) -> DraftSummary:
    """validate_selections() plus order-level notes and pickup details."""
    summary = validate_selections(menu, selections)
    return summary.model_copy(
        update={"notes": notes, "pickup_name": pickup_name, "pickup_phone": pickup_phone}
    )


def search_menu(menu: NormalizedMenu, query: str, limit: int = 5) -> list[MenuItem]:
    """
    Rank items against a free-text query.

    Each item's name and synonyms form one lowercase haystack. The whole
    query appearing in it scores 10, each whitespace token appearing scores 2.
    Zero-score items are dropped; ties keep menu order.
    """
    needle = query.strip().lower()
    if not needle:
        return []

    tokens = needle.split()
    scored = []
    for item in menu.items:
        haystack = " ".join([item.name, *item.synonyms]).lower()
        score = 10 if needle in haystack else 0
        score += sum(2 for token in tokens if token in haystack)
        if score > 0:
            scored.append((score, item))

    # sorted() is stable, so equal scores stay in menu order
    ranked = sorted(scored, key=lambda entry: entry[0], reverse=True)
    return [item for _, item in ranked[:limit]]
