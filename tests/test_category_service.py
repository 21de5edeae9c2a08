import pytest

from category_service import aggregate
from errors import CollaboratorFailure, InvalidCartData
from helpers import FakeCatalog, line, make_cart


@pytest.mark.asyncio
async def test_empty_cart_makes_no_lookup() -> None:
    catalog = FakeCatalog()

    result = await aggregate(make_cart(items=[]), catalog)

    assert result.categories == []
    assert result.totalProducts == 0
    assert catalog.product_calls == []


@pytest.mark.asyncio
async def test_missing_cart_is_invalid() -> None:
    with pytest.raises(InvalidCartData):
        await aggregate(None, FakeCatalog())


@pytest.mark.asyncio
async def test_line_items_are_grouped_per_product_then_category() -> None:
    catalog = FakeCatalog(
        memberships={"p1": ["shoes", "sale"], "p2": ["hats"]},
        names={"shoes": "Shoes", "sale": "Sale", "hats": "Hats"},
    )
    cart = make_cart(
        items=[
            line("p1", quantity=1, total=1000),
            line("p1", quantity=2, total=2000),
            line("p2", quantity=4, total=500),
        ]
    )

    result = await aggregate(cart, catalog)
    by_id = {c.id: c for c in result.categories}

    assert catalog.product_calls == [{"p1", "p2"}]
    assert result.totalProducts == 7
    assert (by_id["shoes"].quantity, by_id["shoes"].totalPrice) == (3, 3000)
    assert (by_id["sale"].quantity, by_id["sale"].totalPrice) == (3, 3000)
    assert (by_id["hats"].quantity, by_id["hats"].totalPrice) == (4, 500)
    assert by_id["hats"].name == "Hats"


@pytest.mark.asyncio
async def test_multi_category_products_count_in_full_everywhere() -> None:
    memberships = {"p1": ["a", "b", "c"], "p2": ["a"], "p3": []}
    catalog = FakeCatalog(memberships=memberships)
    items = [line("p1", quantity=2), line("p2", quantity=5), line("p3", quantity=1)]

    result = await aggregate(make_cart(items=items), catalog)

    expected = sum(item.quantity * len(memberships[item.productId]) for item in items)
    assert sum(c.quantity for c in result.categories) == expected
    assert result.totalProducts == 8


@pytest.mark.asyncio
async def test_catalog_failure_propagates() -> None:
    with pytest.raises(CollaboratorFailure):
        await aggregate(make_cart(items=[line("p1")]), FakeCatalog(fail=True))
