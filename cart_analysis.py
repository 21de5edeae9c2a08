import asyncio
import logging
from typing import List, Optional

from category_service import aggregate
from discount_cache import DiscountCache
from models import (
    CartAnalysis,
    CartSnapshot,
    CatalogCollaborator,
    CategorySummary,
    DiscountAnalysis,
    DiscountCollaborator,
    DiscountDescriptor,
)
from predicate_analyzer import analyze, referenced_category_ids

logger = logging.getLogger(__name__)

INACTIVE_REASON = "Discount is not active"


class CartAnalysisService:
    """Previews which automatic discounts a cart meets and what is missing."""

    def __init__(
        self,
        catalog: CatalogCollaborator,
        discounts: DiscountCollaborator,
        cache: Optional[DiscountCache] = None,
    ):
        self.catalog = catalog
        self.discounts = discounts
        self.cache = cache if cache is not None else DiscountCache()

    async def get_auto_discounts(self) -> List[DiscountDescriptor]:
        return await self.cache.get_or_fetch(self.discounts.list_automatic_discounts)

    def clear_cache(self) -> None:
        self.cache.clear()

    async def _missing_categories(
        self, discounts: List[DiscountDescriptor], categories: List[CategorySummary]
    ) -> List[CategorySummary]:
        """Zero-quantity summaries for categories predicates name but the cart lacks."""
        known = {category.id for category in categories}
        missing: List[str] = []
        for discount in discounts:
            for category_id in referenced_category_ids(discount.cartPredicate):
                if category_id not in known and category_id not in missing:
                    missing.append(category_id)
        if not missing:
            return []

        refs = await asyncio.gather(
            *(self.catalog.resolve_category_by_id(category_id) for category_id in missing)
        )
        return [
            CategorySummary(id=ref.id, name=ref.name, key=ref.key, quantity=0, totalPrice=0)
            for ref in refs
            if ref is not None
        ]

    def analyze_discounts(
        self,
        discounts: List[DiscountDescriptor],
        categories: List[CategorySummary],
        cart: CartSnapshot,
    ) -> List[DiscountAnalysis]:
        results = []
        for discount in discounts:
            if not discount.isActive:
                results.append(
                    DiscountAnalysis(discount=discount, isApplicable=False, reason=INACTIVE_REASON)
                )
                continue
            qualification = analyze(discount.cartPredicate, categories, cart)
            results.append(
                DiscountAnalysis(
                    discount=discount,
                    isApplicable=qualification.isApplicable,
                    qualification=qualification,
                )
            )
        return results

    async def analyze_cart(self, cart: CartSnapshot) -> CartAnalysis:
        category_data, discounts = await asyncio.gather(
            aggregate(cart, self.catalog),
            self.get_auto_discounts(),
        )
        categories = list(category_data.categories)
        categories.extend(await self._missing_categories(discounts, categories))

        analysis = self.analyze_discounts(discounts, categories, cart)
        logger.info(
            "Analyzed cart %s: %d discounts, %d categories",
            cart.id or "<unsaved>",
            len(analysis),
            len(categories),
        )
        return CartAnalysis(
            categories=categories,
            totalProducts=category_data.totalProducts,
            discountAnalysis=analysis,
        )
