import asyncio
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from commercetools_util import CommercetoolsClient
from errors import CollaboratorFailure
from models import (
    DiscountDescriptor,
    DiscountGroup,
    GroupedCartDiscount,
    PriorityEntry,
    StackingMode,
    localized,
)

logger = logging.getLogger(__name__)

QUERY_LIMIT = 500


def _english_name(raw: Dict[str, Any]) -> str:
    name = raw.get("name") or {}
    return name.get("en") or name.get("en-US") or ""


def _build(model, **fields):
    try:
        return model(**fields)
    except ValidationError as e:
        logger.error("Unexpected %s from the platform: %s", model.__name__, e)
        raise CollaboratorFailure("Unexpected API response format") from e


def discount_descriptor(raw: Dict[str, Any]) -> DiscountDescriptor:
    return _build(
        DiscountDescriptor,
        id=raw["id"],
        version=raw.get("version"),
        key=raw.get("key"),
        name=_english_name(raw) or "Unnamed Promotion",
        description=localized(raw.get("description")),
        cartPredicate=raw.get("cartPredicate") or "",
        isActive=raw.get("isActive", True),
        stackingMode=raw.get("stackingMode") or StackingMode.STACKING,
        sortOrder=float(raw.get("sortOrder") or 0),
        validFrom=raw.get("validFrom"),
        validUntil=raw.get("validUntil"),
    )


class CommercetoolsDiscounts:
    """Read access to cart discounts and discount groups."""

    def __init__(self, client: CommercetoolsClient):
        self.client = client

    async def list_automatic_discounts(self) -> List[DiscountDescriptor]:
        """Cart discounts that apply without a discount code."""
        results = await self.client.query(
            "/cart-discounts",
            {"where": "requiresDiscountCode=false", "limit": QUERY_LIMIT},
        )
        # Only promotions with an English name are shown
        discounts = [discount_descriptor(raw) for raw in results if _english_name(raw)]
        logger.info("Loaded %d auto-triggered promotions", len(discounts))
        return discounts

    async def list_discount_groups(self) -> List[DiscountGroup]:
        results = await self.client.query(
            "/discount-groups", {"sort": "sortOrder desc", "limit": QUERY_LIMIT}
        )
        return [
            _build(
                DiscountGroup,
                id=raw["id"],
                version=raw.get("version"),
                key=raw.get("key"),
                name=localized(raw.get("name"), "Unnamed Group"),
                description=localized(raw.get("description")),
                sortOrder=float(raw.get("sortOrder") or 0),
            )
            for raw in results
        ]

    async def list_cart_discounts_with_groups(self) -> List[GroupedCartDiscount]:
        results = await self.client.query(
            "/cart-discounts",
            {"expand": "discountGroup", "sort": "sortOrder desc", "limit": QUERY_LIMIT},
        )
        return [
            _build(
                GroupedCartDiscount,
                id=raw["id"],
                key=raw.get("key"),
                name=localized(raw.get("name"), "Unnamed Promotion"),
                description=localized(raw.get("description")),
                sortOrder=float(raw.get("sortOrder") or 0),
                isActive=raw.get("isActive", True),
                stackingMode=raw.get("stackingMode") or StackingMode.STACKING,
                requiresDiscountCode=raw.get("requiresDiscountCode", False),
                discountGroupId=(raw.get("discountGroup") or {}).get("id"),
            )
            for raw in results
        ]

    async def priority_view(self) -> List[PriorityEntry]:
        """Discount groups and ungrouped cart discounts, highest priority first."""
        groups, cart_discounts = await asyncio.gather(
            self.list_discount_groups(),
            self.list_cart_discounts_with_groups(),
        )
        return build_priority_view(groups, cart_discounts)


def build_priority_view(
    groups: List[DiscountGroup], cart_discounts: List[GroupedCartDiscount]
) -> List[PriorityEntry]:
    entries = [
        PriorityEntry(
            type="discount-group",
            id=group.id,
            key=group.key,
            name=group.name,
            description=group.description,
            sortOrder=group.sortOrder,
            # Groups themselves have no active state
            isActive=True,
            cartDiscounts=[cd for cd in cart_discounts if cd.discountGroupId == group.id],
        )
        for group in groups
    ]
    entries.extend(
        PriorityEntry(
            type="cart-discount",
            id=cd.id,
            key=cd.key,
            name=cd.name,
            description=cd.description,
            sortOrder=cd.sortOrder,
            isActive=cd.isActive,
            stackingMode=cd.stackingMode,
            requiresDiscountCode=cd.requiresDiscountCode,
        )
        for cd in cart_discounts
        if cd.discountGroupId is None
    )
    entries.sort(key=lambda entry: entry.sortOrder, reverse=True)
    return entries
