from typing import Dict, List, Optional, Set

from errors import CollaboratorFailure
from models import CartSnapshot, CategoryRef, CategorySummary, DiscountDescriptor, LineItem


def make_cart(total=15000, currency="AUD", items=None, cart_id="cart-1") -> CartSnapshot:
    return CartSnapshot(id=cart_id, totalPrice=total, currency=currency, lineItems=items or [])


def line(product_id, quantity=1, total=1000, sku=None, name="") -> LineItem:
    return LineItem(productId=product_id, sku=sku, quantity=quantity, totalPrice=total, name=name)


def category(category_id, name, quantity=1, total=1000) -> CategorySummary:
    return CategorySummary(id=category_id, name=name, quantity=quantity, totalPrice=total)


def discount(discount_id, predicate, active=True, name=None, sort_order=0.5) -> DiscountDescriptor:
    return DiscountDescriptor(
        id=discount_id,
        name=name or discount_id,
        cartPredicate=predicate,
        isActive=active,
        sortOrder=sort_order,
    )


class FakeCatalog:
    """In-memory catalog recording the lookups made against it."""

    def __init__(
        self,
        memberships: Optional[Dict[str, List[str]]] = None,
        names: Optional[Dict[str, str]] = None,
        fail: bool = False,
    ):
        self.memberships = memberships or {}
        self.names = names or {}
        self.fail = fail
        self.product_calls: List[Set[str]] = []
        self.category_calls: List[str] = []

    def _ref(self, category_id):
        return CategoryRef(id=category_id, name=self.names.get(category_id, category_id))

    async def resolve_categories_for_products(self, product_ids):
        self.product_calls.append(set(product_ids))
        if self.fail:
            raise CollaboratorFailure("catalog down", status_code=503)
        return {
            pid: [self._ref(cid) for cid in self.memberships.get(pid, [])]
            for pid in product_ids
        }

    async def resolve_category_by_id(self, category_id):
        self.category_calls.append(category_id)
        if category_id not in self.names:
            return None
        return self._ref(category_id)


class FakeDiscounts:
    def __init__(self, discounts=None, fail=False):
        self.discounts = discounts or []
        self.fail = fail
        self.calls = 0

    async def list_automatic_discounts(self):
        self.calls += 1
        if self.fail:
            raise CollaboratorFailure("discounts down", status_code=500)
        return list(self.discounts)
