import logging
from typing import Any, Dict, List, Optional, Set

from commercetools_util import CommercetoolsClient, id_in
from errors import CollaboratorFailure, InvalidCartData
from models import (
    CartSnapshot,
    CatalogCollaborator,
    CategoryAggregate,
    CategoryRef,
    CategorySummary,
    localized,
)

logger = logging.getLogger(__name__)

# Largest page the platform returns for one query
QUERY_LIMIT = 500


def batches(ids: List[str], size: int = QUERY_LIMIT) -> List[List[str]]:
    return [ids[i : i + size] for i in range(0, len(ids), size)]


def category_ref(raw: Dict[str, Any]) -> CategoryRef:
    parent = raw.get("parent") or {}
    parent_name = localized((parent.get("obj") or {}).get("name")) or None
    return CategoryRef(
        id=raw["id"],
        name=localized(raw.get("name"), "Unknown Category"),
        key=raw.get("key") or "",
        slug=localized(raw.get("slug")),
        parentId=parent.get("id"),
        parentName=parent_name,
    )


class CommercetoolsCatalog:
    """Catalog lookups against product projections and categories."""

    def __init__(self, client: CommercetoolsClient):
        self.client = client

    async def resolve_categories_for_products(
        self, product_ids: Set[str]
    ) -> Dict[str, List[CategoryRef]]:
        if not product_ids:
            return {}

        category_ids: Dict[str, List[str]] = {}
        for batch in batches(sorted(product_ids)):
            products = await self.client.query(
                "/product-projections",
                [
                    ("where", id_in(batch)),
                    ("expand", "categories[*]"),
                    ("limit", len(batch)),
                ],
            )
            for product in products:
                refs = product.get("categories") or []
                category_ids[product["id"]] = [ref["id"] for ref in refs if ref.get("id")]

        wanted = sorted({cid for ids in category_ids.values() for cid in ids})
        details: Dict[str, CategoryRef] = {}
        for batch in batches(wanted):
            raw_categories = await self.client.query(
                "/categories",
                [("where", id_in(batch)), ("expand", "parent"), ("limit", len(batch))],
            )
            details.update((raw["id"], category_ref(raw)) for raw in raw_categories)

        return {
            product_id: [details.get(cid) or CategoryRef(id=cid) for cid in ids]
            for product_id, ids in category_ids.items()
        }

    async def resolve_category_by_id(self, category_id: str) -> Optional[CategoryRef]:
        if not category_id:
            raise ValueError("Category ID is required")
        try:
            raw = await self.client.get(f"/categories/{category_id}", {"expand": "parent"})
        except CollaboratorFailure as e:
            if e.status_code == 404:
                logger.warning("Category %s not found", category_id)
                return None
            raise
        return category_ref(raw)


async def aggregate(cart: CartSnapshot, catalog: CatalogCollaborator) -> CategoryAggregate:
    """Total quantity and spend per category for the products in a cart.

    A product in several categories counts in full towards each of them.
    """
    if cart is None or getattr(cart, "lineItems", None) is None:
        raise InvalidCartData("Invalid cart data structure")

    quantities: Dict[str, int] = {}
    prices: Dict[str, int] = {}
    for item in cart.lineItems:
        quantities[item.productId] = quantities.get(item.productId, 0) + item.quantity
        prices[item.productId] = prices.get(item.productId, 0) + item.totalPrice

    if not quantities:
        return CategoryAggregate(categories=[], totalProducts=0)

    try:
        by_product = await catalog.resolve_categories_for_products(set(quantities))
    except CollaboratorFailure:
        logger.error("Error fetching cart product categories")
        raise

    summaries: Dict[str, CategorySummary] = {}
    for product_id in quantities:
        for ref in by_product.get(product_id, []):
            summary = summaries.get(ref.id)
            if summary is None:
                summary = summaries[ref.id] = CategorySummary(
                    id=ref.id,
                    name=ref.name,
                    key=ref.key,
                    slug=ref.slug,
                    parentId=ref.parentId,
                    parentName=ref.parentName,
                )
            summary.quantity += quantities[product_id]
            summary.totalPrice += prices[product_id]

    return CategoryAggregate(
        categories=list(summaries.values()),
        totalProducts=sum(quantities.values()),
    )
