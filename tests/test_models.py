import pytest
from pydantic import ValidationError

from errors import InvalidCartData
from helpers import discount
from models import (
    CartAnalysis,
    CartSnapshot,
    CombinedResult,
    DiscountAnalysis,
    QualificationStatus,
    TotalPriceResult,
    UnknownResult,
    localized,
)


def platform_cart(**overrides):
    cart = {
        "id": "cart-1",
        "totalPrice": {"centAmount": 4200, "currencyCode": "AUD"},
        "lineItems": [
            {
                "id": "li-1",
                "productId": "p1",
                "name": {"en-US": "Blue Shoe"},
                "variant": {"sku": "SHOE-1"},
                "quantity": 2,
                "totalPrice": {"centAmount": 4000, "currencyCode": "AUD"},
            },
            {
                "id": "li-2",
                "productId": "p2",
                "name": {"de": "Socke"},
                "variant": {},
                "quantity": 1,
                "totalPrice": {"centAmount": 200, "currencyCode": "AUD"},
            },
        ],
    }
    cart.update(overrides)
    return cart


def test_from_platform_maps_line_items() -> None:
    cart = CartSnapshot.from_platform(platform_cart())

    assert cart.totalPrice == 4200
    assert cart.currency == "AUD"
    assert [i.name for i in cart.lineItems] == ["Blue Shoe", "Socke"]
    assert cart.lineItems[0].sku == "SHOE-1"
    assert cart.lineItems[1].sku is None
    assert cart.lineItems[0].totalPrice == 4000


def test_from_platform_accepts_empty_cart() -> None:
    cart = CartSnapshot.from_platform(platform_cart(lineItems=[]))

    assert cart.lineItems == []


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "cart",
        {"totalPrice": {"centAmount": 1, "currencyCode": "AUD"}},
        platform_cart(lineItems="nope"),
        platform_cart(lineItems=[{"productId": "p1", "quantity": 1}]),
        platform_cart(lineItems=[{"productId": "p1", "quantity": 0, "totalPrice": {"centAmount": 1}}]),
        platform_cart(totalPrice=None),
    ],
)
def test_from_platform_rejects_malformed_carts(payload) -> None:
    with pytest.raises(InvalidCartData):
        CartSnapshot.from_platform(payload)


def test_localized_prefers_english() -> None:
    assert localized({"de": "Hut", "en-AU": "Hat"}) == "Hat"
    assert localized({"en": "Cap", "en-US": "Hat"}) == "Cap"
    assert localized(None, "fallback") == "fallback"
    assert localized("plain") == "plain"


def test_applicable_result_must_be_qualified() -> None:
    with pytest.raises(ValidationError):
        UnknownResult(isApplicable=True, qualificationStatus=QualificationStatus.UNKNOWN)


def test_combined_result_round_trips_children_by_type() -> None:
    child = TotalPriceResult(
        isApplicable=True,
        qualificationStatus=QualificationStatus.QUALIFIED,
        currency="AUD",
        currentAmount=10,
        requiredAmount=5,
    )
    combined = CombinedResult(
        isApplicable=True,
        qualificationStatus=QualificationStatus.QUALIFIED,
        conditions=[child],
    )

    restored = CombinedResult.model_validate(combined.model_dump())

    assert isinstance(restored.conditions[0], TotalPriceResult)


def test_by_status_buckets_rows() -> None:
    pending = UnknownResult(isApplicable=False, qualificationStatus=QualificationStatus.PENDING)
    unknown = UnknownResult(isApplicable=False, qualificationStatus=QualificationStatus.UNKNOWN)
    analysis = CartAnalysis(
        categories=[],
        totalProducts=0,
        discountAnalysis=[
            DiscountAnalysis(discount=discount("a", ""), isApplicable=False, qualification=pending),
            DiscountAnalysis(discount=discount("b", ""), isApplicable=False, reason="off"),
            DiscountAnalysis(discount=discount("c", ""), isApplicable=False, qualification=unknown),
        ],
    )

    buckets = analysis.by_status()

    assert [row.discount.id for row in buckets["pending"]] == ["a"]
    assert [row.discount.id for row in buckets["inactive"]] == ["b"]
    assert [row.discount.id for row in buckets["unknown"]] == ["c"]
    assert buckets["qualified"] == []
