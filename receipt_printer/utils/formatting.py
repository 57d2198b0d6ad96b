"""
Text formatting utilities for the Bluetooth receipt printer client.
Handles column padding and Indonesian (id-ID) number and date rendering.
"""

from datetime import datetime
from typing import Optional


DEFAULT_LINE_WIDTH = 32

PAYMENT_LABELS = {
    "cash": "TUNAI",
    "qris": "QRIS",
    "transfer": "TRANSFER",
}
DEFAULT_PAYMENT_LABEL = "TUNAI"


def pad_line(left: str, right: str, width: int = DEFAULT_LINE_WIDTH) -> str:
    """
    Join two fragments so the right one ends at the column width.

    Args:
        left: Left-justified text
        right: Right-justified text
        width: Line width in characters (32 for 58mm paper)

    When the fragments are already wider than the line they are joined
    without padding.
    """
    padding = width - len(left) - len(right)
    return left + " " * max(0, padding) + right


def separator(width: int = DEFAULT_LINE_WIDTH, char: str = "=") -> str:
    """Full-width separator line."""
    return char * width


def format_amount(amount: int) -> str:
    """
    Format an integer amount with id-ID thousands grouping.

    Rupiah has no fractional unit on receipts, so 10000 becomes "10.000".
    """
    return f"{int(amount):,}".replace(",", ".")


def format_rupiah(amount: int) -> str:
    """Format an amount with the currency prefix, e.g. "Rp 6.000"."""
    return f"Rp {format_amount(amount)}"


def payment_label(method: Optional[str]) -> str:
    """Map a payment method to its printed label."""
    return PAYMENT_LABELS.get((method or "").lower(), DEFAULT_PAYMENT_LABEL)


def format_receipt_date(moment: datetime) -> str:
    """Render a timestamp the way the checkout screen does (id-ID, 2-digit fields)."""
    return moment.strftime("%d/%m/%Y, %H.%M")


def make_transaction_id(timestamp_ms: int) -> str:
    """Build a checkout transaction id from a millisecond timestamp."""
    return f"TRX-{str(int(timestamp_ms))[-6:]}"


def history_transaction_id(record_id: int) -> str:
    """Build the display id of a stored transaction row."""
    return f"TRX-{int(record_id):03d}"
