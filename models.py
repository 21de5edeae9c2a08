from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Protocol, Set, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from errors import InvalidCartData

LOCALES = ("en", "en-US", "en-AU")


def localized(value: Any, default: str = "") -> str:
    """Pick the English rendering of a platform LocalizedString."""
    if isinstance(value, str):
        return value
    if not isinstance(value, dict) or not value:
        return default
    for locale in LOCALES:
        if value.get(locale):
            return value[locale]
    return next(iter(value.values())) or default


# 🛒 Cart snapshot

class LineItem(BaseModel):
    id: Optional[str] = None
    productId: str
    sku: Optional[str] = None
    quantity: int = Field(ge=1)
    name: str = ""
    totalPrice: int  # minor units


class CartSnapshot(BaseModel):
    id: Optional[str] = None
    totalPrice: int  # minor units
    currency: str
    lineItems: List[LineItem]

    @classmethod
    def from_platform(cls, payload: Any) -> "CartSnapshot":
        """Build a snapshot from a raw platform cart body."""
        if not isinstance(payload, dict):
            raise InvalidCartData("Cart payload must be an object")
        raw_items = payload.get("lineItems")
        if not isinstance(raw_items, list):
            raise InvalidCartData("Invalid cart data structure: lineItems is missing")

        try:
            items = [
                LineItem(
                    id=item.get("id"),
                    productId=item["productId"],
                    sku=(item.get("variant") or {}).get("sku"),
                    quantity=item["quantity"],
                    name=localized(item.get("name")),
                    totalPrice=item["totalPrice"]["centAmount"],
                )
                for item in raw_items
            ]
            total = payload["totalPrice"]
            return cls(
                id=payload.get("id"),
                totalPrice=total["centAmount"],
                currency=total["currencyCode"],
                lineItems=items,
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise InvalidCartData(f"Invalid cart data structure: {e}") from e


# 🏷️ Categories

class CategoryRef(BaseModel):
    id: str
    name: str = "Unknown Category"
    key: str = ""
    slug: str = ""
    parentId: Optional[str] = None
    parentName: Optional[str] = None


class CategorySummary(BaseModel):
    id: str
    name: str
    key: str = ""
    quantity: int = 0
    totalPrice: int = 0  # minor units
    slug: str = ""
    parentId: Optional[str] = None
    parentName: Optional[str] = None


class CategoryAggregate(BaseModel):
    categories: List[CategorySummary] = []
    totalProducts: int = 0


# 💸 Discounts

class StackingMode(str, Enum):
    STACKING = "Stacking"
    STOP_AFTER_THIS_DISCOUNT = "StopAfterThisDiscount"


class DiscountDescriptor(BaseModel):
    id: str
    version: Optional[int] = None
    key: Optional[str] = None
    name: str
    description: str = ""
    cartPredicate: str = ""
    isActive: bool = True
    stackingMode: StackingMode = StackingMode.STACKING
    sortOrder: float = 0
    validFrom: Optional[str] = None
    validUntil: Optional[str] = None


class DiscountGroup(BaseModel):
    id: str
    version: Optional[int] = None
    key: Optional[str] = None
    name: str
    description: str = ""
    sortOrder: float = 0


class GroupedCartDiscount(BaseModel):
    id: str
    key: Optional[str] = None
    name: str
    description: str = ""
    sortOrder: float = 0
    isActive: bool = True
    stackingMode: StackingMode = StackingMode.STACKING
    requiresDiscountCode: bool = False
    discountGroupId: Optional[str] = None


class PriorityEntry(BaseModel):
    type: Literal["discount-group", "cart-discount"]
    id: str
    key: Optional[str] = None
    name: str
    description: str = ""
    sortOrder: float
    isActive: bool = True
    stackingMode: Optional[StackingMode] = None
    requiresDiscountCode: Optional[bool] = None
    cartDiscounts: List[GroupedCartDiscount] = []


# ✅ Qualification results

class PredicateType(str, Enum):
    TOTAL_PRICE = "TOTAL_PRICE"
    CATEGORY_COUNT = "CATEGORY_COUNT"
    CATEGORY_GROSS_TOTAL = "CATEGORY_GROSS_TOTAL"
    CATEGORY_EXISTS = "CATEGORY_EXISTS"
    SKU_COUNT = "SKU_COUNT"
    CUSTOMER_GROUP = "CUSTOMER_GROUP"
    COMBINED = "COMBINED"
    UNKNOWN = "UNKNOWN"


class QualificationStatus(str, Enum):
    QUALIFIED = "QUALIFIED"
    PENDING = "PENDING"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    UNKNOWN = "UNKNOWN"


class _Qualification(BaseModel):
    isApplicable: bool
    qualificationStatus: QualificationStatus
    qualificationMessage: Optional[str] = None

    @model_validator(mode="after")
    def status_matches_applicability(self):
        if self.isApplicable and self.qualificationStatus != QualificationStatus.QUALIFIED:
            raise ValueError("an applicable result must be QUALIFIED")
        return self

    def summary(self) -> str:
        """One-line description of a met condition."""
        return "Qualified condition"


class TotalPriceResult(_Qualification):
    type: Literal[PredicateType.TOTAL_PRICE] = PredicateType.TOTAL_PRICE
    currency: str
    currentAmount: float
    requiredAmount: float
    remainingAmount: Optional[float] = None

    def summary(self) -> str:
        return "Cart total meets the minimum amount requirement"


class CategoryCountResult(_Qualification):
    type: Literal[PredicateType.CATEGORY_COUNT] = PredicateType.CATEGORY_COUNT
    categoryId: str
    categoryName: Optional[str] = None
    currentCount: int = 0
    requiredCount: int
    remainingCount: Optional[int] = None

    def summary(self) -> str:
        return f"Added {self.currentCount} items from {self.categoryName} (required: {self.requiredCount})"


class CategoryGrossTotalResult(_Qualification):
    type: Literal[PredicateType.CATEGORY_GROSS_TOTAL] = PredicateType.CATEGORY_GROSS_TOTAL
    categoryIds: List[str]
    categoryNames: Optional[str] = None
    currency: str
    currentAmount: float = 0
    requiredAmount: float
    remainingAmount: Optional[float] = None

    def summary(self) -> str:
        return (
            f"Spent {self.currentAmount:.2f} on {self.categoryNames} products "
            f"(required: {self.requiredAmount:.2f})"
        )


class CategoryExistsResult(_Qualification):
    type: Literal[PredicateType.CATEGORY_EXISTS] = PredicateType.CATEGORY_EXISTS
    categoryId: str
    categoryName: Optional[str] = None

    def summary(self) -> str:
        return f"Added items from {self.categoryName} category"


class SkuCountResult(_Qualification):
    type: Literal[PredicateType.SKU_COUNT] = PredicateType.SKU_COUNT
    sku: str
    productName: str
    currentCount: int
    requiredCount: int
    remainingCount: Optional[int] = None

    def summary(self) -> str:
        return f"Added {self.currentCount} units of {self.productName} (required: {self.requiredCount})"


class CustomerGroupResult(_Qualification):
    type: Literal[PredicateType.CUSTOMER_GROUP] = PredicateType.CUSTOMER_GROUP


class UnknownResult(_Qualification):
    type: Literal[PredicateType.UNKNOWN] = PredicateType.UNKNOWN


class CombinedResult(_Qualification):
    type: Literal[PredicateType.COMBINED] = PredicateType.COMBINED
    qualifiedConditions: List[str] = []
    pendingConditions: List[str] = []
    conditions: List["QualificationResult"] = []


QualificationResult = Annotated[
    Union[
        TotalPriceResult,
        CategoryCountResult,
        CategoryGrossTotalResult,
        CategoryExistsResult,
        SkuCountResult,
        CustomerGroupResult,
        CombinedResult,
        UnknownResult,
    ],
    Field(discriminator="type"),
]

CombinedResult.model_rebuild()


class DiscountAnalysis(BaseModel):
    discount: DiscountDescriptor
    isApplicable: bool
    reason: Optional[str] = None
    qualification: Optional[QualificationResult] = None

    @property
    def status(self) -> Optional[QualificationStatus]:
        return self.qualification.qualificationStatus if self.qualification else None


class CartAnalysis(BaseModel):
    categories: List[CategorySummary]
    totalProducts: int
    discountAnalysis: List[DiscountAnalysis]

    def by_status(self) -> Dict[str, List[DiscountAnalysis]]:
        """Bucket discount rows the way the cart view lists them."""
        buckets: Dict[str, List[DiscountAnalysis]] = {
            "qualified": [],
            "pending": [],
            "notApplicable": [],
            "unknown": [],
            "inactive": [],
        }
        names = {
            QualificationStatus.QUALIFIED: "qualified",
            QualificationStatus.PENDING: "pending",
            QualificationStatus.NOT_APPLICABLE: "notApplicable",
            QualificationStatus.UNKNOWN: "unknown",
        }
        for row in self.discountAnalysis:
            buckets[names[row.status] if row.status else "inactive"].append(row)
        return buckets


# 🔌 Platform collaborators

class CatalogCollaborator(Protocol):
    async def resolve_categories_for_products(
        self, product_ids: Set[str]
    ) -> Dict[str, List[CategoryRef]]: ...

    async def resolve_category_by_id(self, category_id: str) -> Optional[CategoryRef]: ...


class DiscountCollaborator(Protocol):
    async def list_automatic_discounts(self) -> List[DiscountDescriptor]: ...
