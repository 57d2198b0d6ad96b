"""
Transaction values handed to the printer by the checkout and history screens.
"""

from typing import Any, Dict, List, Optional

from .errors import InvalidTransaction
from .utils.formatting import history_transaction_id


class PaymentMethod:
    """Payment method constants used by the checkout screen."""
    CASH = "cash"
    QRIS = "qris"
    TRANSFER = "transfer"

    ALL = (CASH, QRIS, TRANSFER)


def _as_int(value: Any, field: str) -> int:
    """Coerce a JSON number to int, rejecting fractional and non-numeric values."""
    if isinstance(value, bool):
        raise InvalidTransaction(f"{field} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidTransaction(f"{field} must be an integer, got {value!r}")


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


class LineItem:
    """One receipt line: product name, quantity and unit price in rupiah."""

    __slots__ = ("name", "quantity", "unit_price")

    def __init__(self, name: str, quantity: int, unit_price: int):
        self.name = name
        self.quantity = quantity
        self.unit_price = unit_price

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        """Build an item from checkout (price) or API (unitPrice/unit_price) JSON."""
        if not isinstance(data, dict):
            raise InvalidTransaction(f"item must be an object, got {type(data).__name__}")

        name = _pick(data, "name", "productName", default="Unknown Product")
        quantity = _pick(data, "quantity")
        unit_price = _pick(data, "unitPrice", "unit_price", "price", "priceAtSnapshot")

        if quantity is None:
            raise InvalidTransaction(f"item {name!r} has no quantity")
        if unit_price is None:
            raise InvalidTransaction(f"item {name!r} has no unit price")

        return cls(
            name=str(name),
            quantity=_as_int(quantity, f"quantity of {name!r}"),
            unit_price=_as_int(unit_price, f"unit price of {name!r}"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "unitPrice": self.unit_price}

    def __eq__(self, other):
        if not isinstance(other, LineItem):
            return NotImplemented
        return (self.name, self.quantity, self.unit_price) == (other.name, other.quantity, other.unit_price)

    def __repr__(self):
        return f"LineItem(name={self.name!r}, quantity={self.quantity}, unit_price={self.unit_price})"


class Transaction:
    """
    A completed sale as shown on the receipt.

    Dates arrive pre-formatted and amounts are whole rupiah. The printer never
    changes a transaction; cash and change only matter for cash payments.
    """

    def __init__(self, id: str, cashier: str, date: str, items: Optional[List[LineItem]] = None,
                 total: int = 0, cash: int = 0, change: int = 0,
                 payment_method: str = PaymentMethod.CASH):
        self.id = id
        self.cashier = cashier
        self.date = date
        self.items = tuple(items or ())
        self.total = total
        self.cash = cash
        self.change = change
        self.payment_method = payment_method

    @property
    def is_cash(self) -> bool:
        return self.payment_method == PaymentMethod.CASH

    @property
    def items_total(self) -> int:
        return sum(item.subtotal for item in self.items)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """
        Parse a transaction from checkout or history JSON.

        Integer ids from stored rows are rendered as TRX-001 style ids; missing
        cash defaults to the total and missing change to zero, as on the
        history screen.
        """
        if not isinstance(data, dict):
            raise InvalidTransaction(f"transaction must be an object, got {type(data).__name__}")

        raw_id = _pick(data, "id")
        if raw_id is None:
            raise InvalidTransaction("transaction id is required")
        if isinstance(raw_id, int) and not isinstance(raw_id, bool):
            transaction_id = history_transaction_id(raw_id)
        else:
            transaction_id = str(raw_id)

        cashier = _pick(data, "cashier")
        if not cashier:
            raise InvalidTransaction("cashier is required")

        date = _pick(data, "date")
        if not date:
            raise InvalidTransaction("date is required")

        raw_items = _pick(data, "items", default=[])
        if not isinstance(raw_items, list):
            raise InvalidTransaction("items must be a list")
        items = [LineItem.from_dict(item) for item in raw_items]

        total = _as_int(_pick(data, "total", "totalAmount", default=0), "total")
        cash = _as_int(_pick(data, "cash", "cashAmount", default=total), "cash")
        change = _as_int(_pick(data, "change", "changeAmount", default=0), "change")
        method = str(_pick(data, "paymentMethod", "payment_method", default=PaymentMethod.CASH)).lower()

        return cls(
            id=transaction_id,
            cashier=str(cashier),
            date=str(date),
            items=items,
            total=total,
            cash=cash,
            change=change,
            payment_method=method,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cashier": self.cashier,
            "date": self.date,
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "cash": self.cash,
            "change": self.change,
            "paymentMethod": self.payment_method,
        }

    def validate(self) -> "Transaction":
        """
        Check the totals the caller computed against the items.

        Returns the transaction so calls can be chained; raises
        InvalidTransaction on the first inconsistency.
        """
        for item in self.items:
            if item.quantity <= 0:
                raise InvalidTransaction(f"quantity of {item.name!r} must be positive, got {item.quantity}")
            if item.unit_price < 0:
                raise InvalidTransaction(f"unit price of {item.name!r} must not be negative, got {item.unit_price}")

        if self.total < 0:
            raise InvalidTransaction(f"total must not be negative, got {self.total}")

        if self.total != self.items_total:
            raise InvalidTransaction(
                f"total {self.total} does not match items sum {self.items_total}"
            )

        if self.payment_method not in PaymentMethod.ALL:
            raise InvalidTransaction(f"unknown payment method {self.payment_method!r}")

        if self.is_cash:
            if self.cash < self.total:
                raise InvalidTransaction(f"cash {self.cash} is less than total {self.total}")
            if self.change != self.cash - self.total:
                raise InvalidTransaction(
                    f"change {self.change} does not match cash {self.cash} minus total {self.total}"
                )

        return self

    def __eq__(self, other):
        if not isinstance(other, Transaction):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"Transaction(id={self.id!r}, items={len(self.items)}, total={self.total}, "
                f"payment_method={self.payment_method!r})")
