"""Offline, regex-based extraction used when the remote model is unavailable.

The heuristics are intentionally shallow. Every result carries confidence
"low" and input that matches nothing becomes an inquiry with generic
suggested actions, so callers always get a structured value back.
"""

import re

from bookly.models import (
    CustomerOrder,
    ExpenseExtraction,
    ExtractionResult,
    InquiryExtraction,
    OrderItem,
    ProductExtraction,
    SaleExtraction,
    normalize_expense_category,
)
from bookly.utils.amounts import AMOUNT_PATTERN, parse_amount

DEFAULT_SUGGESTED_ACTIONS = ["Manual Entry", "Try Again", "Contact Support"]

# Characters of input the patterns are run against.
MAX_INPUT_LENGTH = 2000

EXPENSE_TRIGGERS = ("paid", "expense", "cost")
PRODUCT_TRIGGERS = ("add", "product", "new item")
SALE_TRIGGERS = ("order", "buy", "bought", "purchased")

EXPENSE_AMOUNT_PATTERN = re.compile(
    r"(?:paid|spent|cost|expense|logistics|delivery).*?" + AMOUNT_PATTERN, re.I
)
EXPENSE_CATEGORY_PATTERN = re.compile(
    r"\b(delivery|logistics|rent|utilities|supplies|marketing|salary)\b", re.I
)
VENDOR_PATTERN = re.compile(r"\b(?:to|with|from)\s+(\w+)", re.I)

PRODUCT_NAME_PATTERN = re.compile(
    r"\b(?:new item|new product|add|product|item)\b"
    r"(?:\s+(?:new|a|an)\b)*+(?:\s+(?:product|item)\b)?\s*:?\s*"
    r"([a-z][a-z\s'-]*?)\s*"
    r"(?=\b(?:price|cost|stock|at|for)\b|[:,\d₦$]|$)",
    re.I,
)
PRICE_PATTERN = re.compile(r"price.*?" + AMOUNT_PATTERN, re.I)
COST_PATTERN = re.compile(r"cost.*?" + AMOUNT_PATTERN, re.I)
STOCK_PATTERN = re.compile(r"stock.*?(\d+)", re.I)

QUANTITY_PATTERN = re.compile(r"(\d+)\s*(?:x|of|@|units?|items?)\s+(\w+)", re.I)
TOTAL_PATTERN = re.compile(r"(?:total|tsh|for).*?" + AMOUNT_PATTERN, re.I)
DELIVERY_PATTERN = re.compile(r"delivery.*?" + AMOUNT_PATTERN, re.I)
PLATFORM_PATTERN = re.compile(
    r"\b(whatsapp|instagram|facebook|telegram|phone|call|walk-in)\b", re.I
)

_VERBS = r"(?:ordered|orders|bought|buys|purchased|wants|on|via|at)\b"
CUSTOMER_LABEL_PATTERN = re.compile(
    r"\b(?:customer|user|client)\b\s*:?\s*@?(?!" + _VERBS + r")([a-z][\w.'-]*)",
    re.I,
)
CUSTOMER_SUBJECT_PATTERN = re.compile(
    r"\b(?!(?:I|We|You|He|She|They|It|Someone|Somebody)\b)"
    r"([A-Z][\w.'-]*)\s+(?:ordered|orders|bought|buys|purchased|wants)\b"
)

PLATFORMS = {
    "whatsapp": "WhatsApp",
    "instagram": "Instagram",
    "facebook": "Facebook",
    "telegram": "Telegram",
    "phone": "Phone",
    "call": "Phone",
    "walk-in": "Walk-in",
}


def _match_amount(pattern: re.Pattern[str], text: str) -> int:
    match = pattern.search(text)
    return parse_amount(match.group(1)) if match else 0


def _extract_expense(text: str) -> ExpenseExtraction | None:
    match = EXPENSE_AMOUNT_PATTERN.search(text)
    if not match:
        return None

    category = EXPENSE_CATEGORY_PATTERN.search(text)
    vendor = VENDOR_PATTERN.search(text)
    return ExpenseExtraction(
        confidence="low",
        amount=parse_amount(match.group(1)),
        category=normalize_expense_category(category.group(1) if category else None),
        description=text,
        vendor=vendor.group(1) if vendor else "Unknown",
    )


def _extract_product(text: str) -> ProductExtraction | None:
    match = PRODUCT_NAME_PATTERN.search(text)
    if not match:
        return None

    stock = STOCK_PATTERN.search(text)
    return ProductExtraction(
        confidence="low",
        name=match.group(1).strip() or "New Product",
        price=_match_amount(PRICE_PATTERN, text),
        cost_price=_match_amount(COST_PATTERN, text),
        stock=int(stock.group(1)) if stock else 0,
        category="Other",
    )


def _customer_name(text: str) -> str | None:
    match = CUSTOMER_LABEL_PATTERN.search(text) or CUSTOMER_SUBJECT_PATTERN.search(
        text
    )
    return match.group(1).strip() if match else None


def _extract_sale(text: str) -> SaleExtraction | None:
    quantity = QUANTITY_PATTERN.search(text)
    total = TOTAL_PATTERN.search(text)
    if not quantity and not total:
        return None

    name = _customer_name(text)
    handle = re.sub(r"\s+", "_", (name or "customer").lower())
    platform = PLATFORM_PATTERN.search(text)

    items = []
    if quantity:
        items.append(
            OrderItem(
                product_name=quantity.group(2) or "Item",
                quantity=int(quantity.group(1)),
                unit_price=0,
            )
        )

    sale = SaleExtraction(
        confidence="low",
        customers=[
            CustomerOrder(
                handle=handle,
                platform=PLATFORMS[platform.group(1).lower()] if platform else "WhatsApp",
                items=items,
                order_total=parse_amount(total.group(1)) if total else 0,
                delivery_fee=_match_amount(DELIVERY_PATTERN, text),
            )
        ],
    )
    sale.flatten_single_customer()
    sale.customer_name = name or "Customer"
    return sale


def fallback_extract(text: str) -> ExtractionResult:
    """
    Guess a structured record from free text without calling the model.

    Branches are tried in order (expense, product, sale); each is gated on
    trigger words and only wins when its own patterns match. Anything else
    becomes an inquiry. Only the first MAX_INPUT_LENGTH characters are read.

    Args:
        text: Free-form business input

    Returns:
        A low-confidence ExtractionResult. Never raises.
    """
    text = (text or "")[:MAX_INPUT_LENGTH]
    lowered = text.lower()

    if any(word in lowered for word in EXPENSE_TRIGGERS):
        expense = _extract_expense(text)
        if expense:
            return expense

    if any(word in lowered for word in PRODUCT_TRIGGERS):
        product = _extract_product(text)
        if product:
            return product

    if any(word in lowered for word in SALE_TRIGGERS):
        sale = _extract_sale(text)
        if sale:
            return sale

    return InquiryExtraction(
        confidence="low",
        suggested_actions=list(DEFAULT_SUGGESTED_ACTIONS),
    )
