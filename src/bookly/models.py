"""Data models for business-input extraction."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

Confidence = Literal["high", "medium", "low", "cached"]


class ExpenseCategory(StrEnum):
    """Closed set of expense categories."""

    RENT = "Rent"
    MARKETING = "Marketing"
    SUPPLIES = "Supplies"
    LOGISTICS = "Logistics"
    UTILITIES = "Utilities"
    SALARY = "Salary"
    OTHER = "Other"


# Free-text keywords that map onto a category other than their own name.
_CATEGORY_ALIASES = {
    "delivery": ExpenseCategory.LOGISTICS,
}


def normalize_expense_category(value: object) -> ExpenseCategory:
    """Map a free-text category (any case) onto ExpenseCategory, else Other."""
    if isinstance(value, ExpenseCategory):
        return value
    if not isinstance(value, str):
        return ExpenseCategory.OTHER
    key = value.strip().lower()
    if key in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[key]
    for category in ExpenseCategory:
        if category.value.lower() == key:
            return category
    return ExpenseCategory.OTHER


class CamelModel(BaseModel):
    """Base model using camelCase aliases on the wire and in the cache."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class InputFragment(CamelModel):
    """One piece of user input: text, an image, or both."""

    text: str | None = None
    image_base64: str | None = None


class InventoryItem(CamelModel):
    """Product context passed to the model for matching."""

    name: str
    price: float = 0
    stock: int = 0


class OrderItem(CamelModel):
    """Line item of a customer order."""

    product_name: str = "Item"
    quantity: int | None = 1
    unit_price: float | None = 0
    variant: str | None = None


class CustomerOrder(CamelModel):
    """A single customer's sub-order within a sale."""

    handle: str | None = None
    platform: str | None = None
    items: list[OrderItem] = Field(default_factory=list)
    order_total: float | None = None
    delivery_fee: float | None = None
    payment_method: str | None = None
    address: str | None = None


class SaleExtraction(CamelModel):
    """Sale intent: one or more customer sub-orders."""

    intent: Literal["sale"] = "sale"
    confidence: Confidence
    record_type: Literal["order"] = "order"
    order_type: Literal["single", "batch"] | None = None
    customers: list[CustomerOrder] = Field(default_factory=list)

    # Flat single-customer view, populated by flatten_single_customer()
    customer_name: str | None = None
    customer_handle: str | None = None
    order_items: list[OrderItem] | None = None
    items: list[OrderItem] | None = None
    total: float | None = None
    delivery_fee: float | None = None
    platform: str | None = None
    payment_method: str | None = None
    address: str | None = None

    def fill_order_totals(self) -> None:
        """Compute orderTotal from line items for customers that lack one."""
        for customer in self.customers:
            if not customer.order_total:
                customer.order_total = sum(
                    (item.unit_price or 0) * (item.quantity or 1)
                    for item in customer.items
                )

    def flatten_single_customer(self) -> None:
        """
        Copy the only customer's fields onto the top-level legacy fields.

        Does nothing unless there is exactly one customer.
        """
        if len(self.customers) != 1:
            return
        first = self.customers[0]
        self.customer_name = first.handle or "Customer"
        self.customer_handle = first.handle
        self.order_items = list(first.items)
        self.items = self.order_items
        self.total = first.order_total
        self.delivery_fee = first.delivery_fee or 0
        self.platform = first.platform or "WhatsApp"


class ExpenseExtraction(CamelModel):
    """Expense intent."""

    intent: Literal["expense"] = "expense"
    confidence: Confidence
    record_type: Literal["expense"] = "expense"
    amount: float = 0
    category: ExpenseCategory = ExpenseCategory.OTHER
    description: str = ""
    vendor: str | None = None
    payment_method: str | None = None
    date: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> ExpenseCategory:
        return normalize_expense_category(value)


class ProductExtraction(CamelModel):
    """New inventory item intent."""

    intent: Literal["product"] = "product"
    confidence: Confidence
    name: str = "New Product"
    price: float = 0
    cost_price: float = 0
    stock: int = 0
    category: str = "Other"


class InquiryExtraction(CamelModel):
    """Customer inquiry intent with suggested next actions."""

    intent: Literal["inquiry"] = "inquiry"
    confidence: Confidence
    suggested_actions: list[str] = Field(default_factory=list)


ExtractionResult = Annotated[
    SaleExtraction | ExpenseExtraction | ProductExtraction | InquiryExtraction,
    Field(discriminator="intent"),
]

extraction_result_adapter: TypeAdapter[ExtractionResult] = TypeAdapter(
    ExtractionResult
)


def parse_extraction_result(data: object) -> ExtractionResult:
    """Validate a decoded JSON object into the matching ExtractionResult variant."""
    return extraction_result_adapter.validate_python(data)


class CacheEntry(CamelModel):
    """Stored extraction keyed by the fingerprint of its input text."""

    input_hash: str
    result: ExtractionResult
    timestamp: int  # epoch milliseconds
    input_length: int


class CacheStats(BaseModel):
    """Size summary of the extraction cache."""

    entries: int
    size: str


class QuotaStats(CamelModel):
    """Snapshot of the daily token budget."""

    requests_today: int
    tokens_used_today: int
    last_reset_time: datetime
    estimated_tokens_remaining: int
    quota_exhausted: bool


class ExtractionSource(StrEnum):
    """Pipeline stage that produced the final result."""

    API = "api"
    CACHE = "cache"
    FALLBACK = "fallback"
    NONE = "none"


class ExtractionOptions(CamelModel):
    """Toggles for the smart extraction pipeline."""

    use_retry: bool = True
    use_cache: bool = True
    use_fallback: bool = True
    max_retries: int = Field(default=2, ge=0)


class SmartExtractionResult(BaseModel):
    """Result of the smart extraction pipeline tagged with its provenance."""

    result: ExtractionResult | None
    source: ExtractionSource
    error: str | None = None
