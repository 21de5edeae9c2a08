"""Cart predicate qualification analyzer.

Discount rules on the platform are gated by a cart predicate such as::

    totalPrice >= "100.00 AUD" and lineItemExists(categories.id contains "c1") = true

The analyzer does not evaluate a general expression language. It recognizes the
small, fixed set of predicate shapes the platform emits, tried in order, and
reports for each how far the cart is from meeting it. Anything it does not
recognize comes back as an UNKNOWN result instead of an error.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from models import (
    CartSnapshot,
    CategoryCountResult,
    CategoryExistsResult,
    CategoryGrossTotalResult,
    CategorySummary,
    CombinedResult,
    CustomerGroupResult,
    QualificationResult,
    QualificationStatus,
    SkuCountResult,
    TotalPriceResult,
    UnknownResult,
)

logger = logging.getLogger(__name__)

CUSTOMER_GROUP_FIELD = "customer.customerGroup.key"

# "and" outside of double-quoted literals
AND_SEPARATOR = re.compile(r'\s+and\s+(?=(?:[^"]*"[^"]*")*[^"]*$)')

_MONEY = r'"\s*(\d+(?:\.\d+)?)\s+([A-Za-z]+)\s*"'
_QUOTED = re.compile(r'"([^"]+)"')

TOTAL_PRICE = re.compile(r"totalPrice\s*(>=|>)\s*" + _MONEY)
CATEGORY_COUNT = re.compile(
    r'lineItemCount\s*\(\s*categories\.id\s+contains\s+"([^"]+)"\s*\)\s*>=\s*(\d+)'
)
CATEGORY_GROSS_TOTAL = re.compile(
    r"lineItemGrossTotal\s*\(\s*categories\.id\s+contains\s+any\s*\(([^)]+)\)\s*\)\s*(>=|>)\s*"
    + _MONEY
)
CATEGORY_COUNT_ANY = re.compile(
    r'lineItemCount\s*\(\s*categories\.id\s+contains\s+any\s*\(\s*"([^"]+)"\s*\)\s*\)\s*>=\s*(\d+)'
)
CATEGORY_EXISTS = re.compile(
    r'lineItemExists\s*\(\s*categories\.id\s+contains\s+"([^"]+)"\s*\)\s*=\s*true'
)
SKU_COUNT = re.compile(r'lineItemCount\s*\(\s*sku\s*=\s*"([^"]+)"\s*\)\s*>=\s*(\d+)')

CATEGORY_REFERENCE = re.compile(r'categories\.id\s+contains\s+(?:any\s*\(([^)]*)\)|"([^"]+)")')

UNKNOWN_MESSAGE = "Unable to determine qualification requirements"


def referenced_category_ids(predicate: str) -> List[str]:
    """Category ids a predicate mentions, in order of first appearance."""
    ids: List[str] = []
    for id_list, single in CATEGORY_REFERENCE.findall(predicate or ""):
        for category_id in _QUOTED.findall(id_list) if id_list else [single]:
            if category_id not in ids:
                ids.append(category_id)
    return ids


def _to_minor(amount: str) -> int:
    """Whole minor units for a decimal major-unit amount."""
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def _unwrap(clause: str) -> str:
    """Strip one pair of parentheses enclosing the whole clause."""
    if not (clause.startswith("(") and clause.endswith(")")):
        return clause
    depth = 0
    for i, ch in enumerate(clause):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(clause) - 1:
                return clause
    return clause[1:-1].strip()


class _Context:
    """Lookup helpers over one cart/category snapshot."""

    def __init__(self, categories: Sequence[CategorySummary], cart: CartSnapshot):
        self.cart = cart
        self.categories: Dict[str, CategorySummary] = {}
        for category in categories:
            self.categories.setdefault(category.id, category)


# Rule builders. Each returns a result, or None to let the next rule try.

def _total_price(m: re.Match, ctx: _Context) -> QualificationResult:
    _, amount, currency = m.groups()
    required = _to_minor(amount)
    current = ctx.cart.totalPrice

    if current >= required:
        return TotalPriceResult(
            isApplicable=True,
            qualificationStatus=QualificationStatus.QUALIFIED,
            currency=currency,
            currentAmount=current / 100,
            requiredAmount=required / 100,
        )
    remaining = (required - current) / 100
    return TotalPriceResult(
        isApplicable=False,
        qualificationStatus=QualificationStatus.PENDING,
        qualificationMessage=f"Spend {currency} {remaining:.2f} more to qualify",
        currency=currency,
        currentAmount=current / 100,
        requiredAmount=required / 100,
        remainingAmount=remaining,
    )


def _category_count(m: re.Match, ctx: _Context) -> QualificationResult:
    category_id, required = m.group(1), int(m.group(2))
    category = ctx.categories.get(category_id)
    if category is None:
        return CategoryCountResult(
            isApplicable=False,
            qualificationStatus=QualificationStatus.NOT_APPLICABLE,
            qualificationMessage="Category not found in cart",
            categoryId=category_id,
            requiredCount=required,
        )

    current = category.quantity
    if current >= required:
        return CategoryCountResult(
            isApplicable=True,
            qualificationStatus=QualificationStatus.QUALIFIED,
            categoryId=category_id,
            categoryName=category.name,
            currentCount=current,
            requiredCount=required,
        )
    remaining = required - current
    return CategoryCountResult(
        isApplicable=False,
        qualificationStatus=QualificationStatus.PENDING,
        qualificationMessage=(
            f"Add {remaining} more {_plural(remaining, 'item')} from {category.name} to qualify"
        ),
        categoryId=category_id,
        categoryName=category.name,
        currentCount=current,
        requiredCount=required,
        remainingCount=remaining,
    )


def _category_gross_total(m: re.Match, ctx: _Context) -> Optional[QualificationResult]:
    id_list, _, amount, currency = m.groups()
    category_ids = list(dict.fromkeys(_QUOTED.findall(id_list)))
    if not category_ids:
        return None
    required = _to_minor(amount)

    matching = [ctx.categories[cid] for cid in category_ids if cid in ctx.categories]
    if not matching:
        return CategoryGrossTotalResult(
            isApplicable=False,
            qualificationStatus=QualificationStatus.NOT_APPLICABLE,
            qualificationMessage="None of the specified categories found in cart",
            categoryIds=category_ids,
            currency=currency,
            requiredAmount=required / 100,
        )

    current = sum(category.totalPrice for category in matching)
    names = " or ".join(category.name for category in matching) or "specified categories"

    if current >= required:
        return CategoryGrossTotalResult(
            isApplicable=True,
            qualificationStatus=QualificationStatus.QUALIFIED,
            categoryIds=category_ids,
            categoryNames=names,
            currency=currency,
            currentAmount=current / 100,
            requiredAmount=required / 100,
        )
    remaining = (required - current) / 100
    return CategoryGrossTotalResult(
        isApplicable=False,
        qualificationStatus=QualificationStatus.PENDING,
        qualificationMessage=f"Spend {currency} {remaining:.2f} more on {names} products to qualify",
        categoryIds=category_ids,
        categoryNames=names,
        currency=currency,
        currentAmount=current / 100,
        requiredAmount=required / 100,
        remainingAmount=remaining,
    )


def _category_exists(m: re.Match, ctx: _Context) -> QualificationResult:
    category_id = m.group(1)
    category = ctx.categories.get(category_id)
    if category is not None and category.quantity > 0:
        return CategoryExistsResult(
            isApplicable=True,
            qualificationStatus=QualificationStatus.QUALIFIED,
            categoryId=category_id,
            categoryName=category.name,
        )

    # Known-but-empty categories are injected by the orchestrator
    name = category.name if category is not None else "required category"
    return CategoryExistsResult(
        isApplicable=False,
        qualificationStatus=QualificationStatus.PENDING,
        qualificationMessage=f"Add any item from {name} category to qualify",
        categoryId=category_id,
        categoryName=category.name if category is not None else None,
    )


def _sku_count(m: re.Match, ctx: _Context) -> QualificationResult:
    sku, required = m.group(1), int(m.group(2))
    items = [item for item in ctx.cart.lineItems if item.sku == sku]
    current = sum(item.quantity for item in items)
    product_name = items[0].name if items and items[0].name else f"product with SKU: {sku}"

    if current >= required:
        return SkuCountResult(
            isApplicable=True,
            qualificationStatus=QualificationStatus.QUALIFIED,
            sku=sku,
            productName=product_name,
            currentCount=current,
            requiredCount=required,
        )
    remaining = required - current
    return SkuCountResult(
        isApplicable=False,
        qualificationStatus=QualificationStatus.PENDING,
        qualificationMessage=(
            f"Add {remaining} more {_plural(remaining, 'unit')} of {product_name} to qualify"
        ),
        sku=sku,
        productName=product_name,
        currentCount=current,
        requiredCount=required,
        remainingCount=remaining,
    )


Rule = Tuple[re.Pattern, Callable[[re.Match, _Context], Optional[QualificationResult]]]

RULES: List[Rule] = [
    (TOTAL_PRICE, _total_price),
    (CATEGORY_COUNT, _category_count),
    (CATEGORY_GROSS_TOTAL, _category_gross_total),
    (CATEGORY_COUNT_ANY, _category_count),
    (CATEGORY_EXISTS, _category_exists),
    (SKU_COUNT, _sku_count),
]


def _combine(results: List[QualificationResult]) -> CombinedResult:
    is_applicable = all(r.isApplicable for r in results)
    qualified = [r.summary() for r in results if r.isApplicable]
    pending = [
        r.qualificationMessage for r in results if not r.isApplicable and r.qualificationMessage
    ]

    if any(r.qualificationStatus == QualificationStatus.NOT_APPLICABLE for r in results):
        status = QualificationStatus.NOT_APPLICABLE
    elif is_applicable:
        status = QualificationStatus.QUALIFIED
    else:
        status = QualificationStatus.PENDING

    return CombinedResult(
        isApplicable=is_applicable,
        qualificationStatus=status,
        qualificationMessage=" and ".join(pending) if pending else None,
        qualifiedConditions=qualified,
        pendingConditions=pending,
        conditions=results,
    )


def _analyze(predicate: str, ctx: _Context) -> QualificationResult:
    predicate = (predicate or "").strip()

    if CUSTOMER_GROUP_FIELD in predicate:
        return CustomerGroupResult(
            isApplicable=False,
            qualificationStatus=QualificationStatus.NOT_APPLICABLE,
            qualificationMessage="Customer group specific discount",
        )

    clauses = AND_SEPARATOR.split(predicate)
    if len(clauses) > 1:
        return _combine([_analyze(clause, ctx) for clause in clauses])

    clause = _unwrap(predicate)
    for pattern, build in RULES:
        m = pattern.fullmatch(clause)
        if m:
            result = build(m, ctx)
            if result is not None:
                return result

    logger.debug("Unrecognized cart predicate: %r", predicate)
    return UnknownResult(
        isApplicable=False,
        qualificationStatus=QualificationStatus.UNKNOWN,
        qualificationMessage=UNKNOWN_MESSAGE,
    )


def analyze(
    predicate: str,
    categories: Sequence[CategorySummary],
    cart: CartSnapshot,
) -> QualificationResult:
    """Report how a cart stands against one discount's cart predicate.

    Args:
        predicate: The platform's cartPredicate string.
        categories: Per-category totals for the cart, possibly including
            zero-quantity categories the predicate refers to.
        cart: The cart snapshot being previewed.

    Returns:
        A QualificationResult; never raises for unrecognized predicate text.
    """
    return _analyze(predicate, _Context(categories, cart))
