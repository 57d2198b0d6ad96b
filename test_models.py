# Tests for transaction parsing and validation

import pytest

from receipt_printer.errors import InvalidTransaction
from receipt_printer.models import LineItem, Transaction


def checkout_payload(**overrides):
    data = {
        "id": "TRX-123456",
        "cashier": "Siti",
        "date": "18/10/2026, 14.30",
        "items": [
            {"name": "Jasmine Tea", "quantity": 2, "price": 3000},
            {"name": "Thai Tea", "quantity": 1, "price": 5000},
        ],
        "total": 11000,
        "cash": 20000,
        "change": 9000,
        "paymentMethod": "cash",
    }
    data.update(overrides)
    return data


class TestTransactionParsing:
    """Test Transaction.from_dict"""

    def test_checkout_price_alias(self):
        transaction = Transaction.from_dict(checkout_payload())

        assert transaction.items[0] == LineItem("Jasmine Tea", 2, 3000)
        assert transaction.items[1].subtotal == 5000
        assert transaction.items_total == 11000
        assert transaction.is_cash

    def test_snake_case_keys(self):
        transaction = Transaction.from_dict({
            "id": "TRX-1",
            "cashier": "Siti",
            "date": "18/10/2026, 14.30",
            "items": [{"name": "Thai Tea", "quantity": 1, "unit_price": 5000}],
            "total": 5000,
            "payment_method": "QRIS",
        })

        assert transaction.payment_method == "qris"
        assert transaction.items[0].unit_price == 5000

    def test_history_row_defaults(self):
        transaction = Transaction.from_dict({
            "id": 7,
            "cashier": "John Doe",
            "date": "18/10/2026, 14.30",
            "items": [{"productName": "Thai Tea", "quantity": 2, "priceAtSnapshot": 5000}],
            "totalAmount": 10000,
            "paymentMethod": "transfer",
        })

        assert transaction.id == "TRX-007"
        assert transaction.items[0].name == "Thai Tea"
        assert transaction.total == 10000
        assert transaction.cash == 10000
        assert transaction.change == 0

    def test_round_trip_through_dict(self):
        transaction = Transaction.from_dict(checkout_payload())

        assert Transaction.from_dict(transaction.to_dict()) == transaction
        assert transaction.to_dict()["items"][0] == {"name": "Jasmine Tea", "quantity": 2, "unitPrice": 3000}

    def test_integral_floats_are_accepted(self):
        transaction = Transaction.from_dict(checkout_payload(total=11000.0))

        assert transaction.total == 11000
        assert isinstance(transaction.total, int)

    @pytest.mark.parametrize("overrides", [
        {"cashier": ""},
        {"date": None},
        {"id": None},
        {"items": "Jasmine Tea"},
        {"total": 1.5},
        {"total": True},
        {"items": [{"name": "Jasmine Tea", "price": 3000}]},
        {"items": [{"name": "Jasmine Tea", "quantity": 1}]},
        {"items": ["Jasmine Tea"]},
    ])
    def test_malformed_input_rejected(self, overrides):
        with pytest.raises(InvalidTransaction):
            Transaction.from_dict(checkout_payload(**overrides))

    def test_non_object_rejected(self):
        with pytest.raises(InvalidTransaction):
            Transaction.from_dict(["not", "a", "transaction"])


class TestTransactionValidation:
    """Test consistency checks on caller-computed totals"""

    def test_consistent_cash_sale(self):
        transaction = Transaction.from_dict(checkout_payload())

        assert transaction.validate() is transaction

    def test_non_cash_ignores_cash_and_change(self):
        transaction = Transaction.from_dict(checkout_payload(paymentMethod="qris", cash=0, change=123))

        transaction.validate()

    def test_empty_items_with_zero_total(self):
        Transaction.from_dict(checkout_payload(items=[], total=0, cash=0, change=0)).validate()

    @pytest.mark.parametrize("overrides,fragment", [
        ({"total": 12000}, "does not match items sum"),
        ({"cash": 10000, "change": -1000}, "less than total"),
        ({"change": 8000}, "change 8000"),
        ({"paymentMethod": "voucher"}, "unknown payment method"),
        ({"items": [{"name": "Jasmine Tea", "quantity": 0, "price": 3000}], "total": 0}, "must be positive"),
        ({"items": [{"name": "Jasmine Tea", "quantity": 1, "price": -3000}], "total": -3000},
         "must not be negative"),
    ])
    def test_inconsistent_transaction_rejected(self, overrides, fragment):
        transaction = Transaction.from_dict(checkout_payload(**overrides))

        with pytest.raises(InvalidTransaction, match=fragment):
            transaction.validate()
