"""Unit tests for the offline regex fallback extractor."""

import time

import pytest

from bookly.models import (
    ExpenseCategory,
    ExpenseExtraction,
    InquiryExtraction,
    ProductExtraction,
    SaleExtraction,
)
from bookly.pipeline.fallback import (
    DEFAULT_SUGGESTED_ACTIONS,
    MAX_INPUT_LENGTH,
    fallback_extract,
)
from bookly.utils.amounts import parse_amount

pytestmark = pytest.mark.unit


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("5000", 5000),
            ("5,000", 5000),
            ("1.250.000", 1250000),
            ("12 500", 12500),
            ("", 0),
            (None, 0),
            ("abc", 0),
        ],
    )
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected


class TestExpense:
    def test_delivery_expense(self):
        result = fallback_extract("I paid 5000 for delivery")

        assert isinstance(result, ExpenseExtraction)
        assert result.amount == 5000
        assert result.category == ExpenseCategory.LOGISTICS
        assert result.confidence == "low"
        assert result.vendor == "Unknown"
        assert result.description == "I paid 5000 for delivery"

    def test_is_deterministic(self):
        text = "I paid 5000 for delivery"
        assert fallback_extract(text) == fallback_extract(text)

    def test_thousands_separator_category_and_vendor(self):
        result = fallback_extract("Paid ₦25,000 to Landlord for rent")

        assert isinstance(result, ExpenseExtraction)
        assert result.amount == 25000
        assert result.category == ExpenseCategory.RENT
        assert result.vendor == "Landlord"

    def test_unknown_category_defaults_to_other(self):
        result = fallback_extract("Expense of $300 for printer ink")

        assert isinstance(result, ExpenseExtraction)
        assert result.amount == 300
        assert result.category == ExpenseCategory.OTHER

    def test_trigger_without_amount_falls_through(self):
        result = fallback_extract("I paid the driver yesterday")
        assert isinstance(result, InquiryExtraction)


class TestProduct:
    def test_new_product_with_price_and_stock(self):
        result = fallback_extract("Add new product Ankara Dress price 15,000 stock 12")

        assert isinstance(result, ProductExtraction)
        assert result.name == "Ankara Dress"
        assert result.price == 15000
        assert result.cost_price == 0
        assert result.stock == 12
        assert result.category == "Other"
        assert result.confidence == "low"

    def test_product_without_numbers(self):
        result = fallback_extract("add silk scarf")

        assert isinstance(result, ProductExtraction)
        assert result.name == "silk scarf"
        assert result.price == 0
        assert result.stock == 0

    def test_cost_keyword_routes_to_expense_first(self):
        result = fallback_extract("Add product Bag cost 3000")
        assert isinstance(result, ExpenseExtraction)

    def test_address_is_not_add(self):
        result = fallback_extract("What is your address?")
        assert isinstance(result, InquiryExtraction)

    def test_article_before_name(self):
        result = fallback_extract("add an ankara top")

        assert isinstance(result, ProductExtraction)
        assert result.name == "ankara top"

    @pytest.mark.parametrize(
        "text",
        [
            "add " + "a " * 4000 + "!",
            "add " * 4000 + "!",
            "item " * 4000 + "price",
        ],
    )
    def test_long_repetitive_input_is_fast(self, text):
        start = time.perf_counter()
        fallback_extract(text)
        assert time.perf_counter() - start < 1.0


class TestSale:
    def test_labelled_customer_order(self):
        result = fallback_extract(
            "Customer Ada ordered 3 x bags via Instagram, total 45,000, delivery 2,500"
        )

        assert isinstance(result, SaleExtraction)
        assert result.confidence == "low"
        assert result.customer_name == "Ada"
        assert result.customer_handle == "ada"
        assert result.platform == "Instagram"
        assert result.total == 45000
        assert result.delivery_fee == 2500
        assert len(result.order_items) == 1
        item = result.order_items[0]
        assert item.product_name == "bags"
        assert item.quantity == 3
        assert item.unit_price == 0
        assert len(result.customers) == 1
        assert result.customers[0].order_total == 45000

    def test_subject_name_and_default_platform(self):
        result = fallback_extract("John bought 2 units shirts")

        assert isinstance(result, SaleExtraction)
        assert result.customer_name == "John"
        assert result.customer_handle == "john"
        assert result.platform == "WhatsApp"
        assert result.order_items[0].quantity == 2
        assert result.total == 0

    def test_total_only_has_empty_items(self):
        result = fallback_extract("new order for 12000 on whatsapp")

        assert isinstance(result, SaleExtraction)
        assert result.order_items == []
        assert result.total == 12000
        assert result.customer_name == "Customer"
        assert result.customer_handle == "customer"
        assert result.platform == "WhatsApp"

    def test_order_without_quantity_or_total(self):
        result = fallback_extract("Can I order something?")
        assert isinstance(result, InquiryExtraction)

    @pytest.mark.parametrize(
        "text",
        ["I ordered 2 x bags", "We bought 3 units shirts", "She ordered 2 x wigs"],
    )
    def test_pronoun_is_not_a_customer_name(self, text):
        result = fallback_extract(text)

        assert isinstance(result, SaleExtraction)
        assert result.customer_name == "Customer"
        assert result.customer_handle == "customer"


class TestInquiry:
    @pytest.mark.parametrize("text", ["", "hello there", "Do you deliver to Lekki?"])
    def test_default_inquiry(self, text):
        result = fallback_extract(text)

        assert isinstance(result, InquiryExtraction)
        assert result.confidence == "low"
        assert result.suggested_actions == DEFAULT_SUGGESTED_ACTIONS


class TestInputLength:
    def test_matching_stops_at_limit(self):
        text = "hello " * (MAX_INPUT_LENGTH // 6 + 10) + "I paid 5000 for delivery"
        assert isinstance(fallback_extract(text), InquiryExtraction)

    def test_match_within_limit(self):
        text = "I paid 5000 for delivery " + "x" * MAX_INPUT_LENGTH
        result = fallback_extract(text)

        assert isinstance(result, ExpenseExtraction)
        assert result.amount == 5000
        assert len(result.description) == MAX_INPUT_LENGTH
