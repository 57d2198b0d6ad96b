"""
ESC/POS receipt encoder for 58mm Bluetooth thermal printers.
Turns a transaction into the exact byte stream the printer expects.
"""

from typing import List, Optional, Sequence

from escpos.constants import ESC, GS
from escpos.printer import Dummy

from .config import config
from .models import Transaction
from .utils.formatting import (
    format_amount,
    format_rupiah,
    pad_line,
    payment_label,
    separator,
)


# ESC/POS commands used on receipts
INIT = ESC + b"@"
ALIGN_LEFT = ESC + b"a\x00"
ALIGN_CENTER = ESC + b"a\x01"
BOLD_ON = ESC + b"E\x01"
BOLD_OFF = ESC + b"E\x00"
SIZE_NORMAL = GS + b"!\x00"
SIZE_DOUBLE = GS + b"!\x11"
PARTIAL_CUT = GS + b"V\x01"

TEXT_ENCODING = "utf-8"


class ReceiptEncoder:
    """
    Builds receipt bytes with the fixed layout used at the counter.

    The encoder does no I/O and trusts the amounts it is given, so the same
    transaction always encodes to the same bytes.
    """

    def __init__(self, line_width: Optional[int] = None, shop_name: Optional[str] = None,
                 address_lines: Optional[Sequence[str]] = None,
                 footer_lines: Optional[Sequence[str]] = None):
        self.line_width = line_width or config.LINE_WIDTH
        self.shop_name = shop_name if shop_name is not None else config.SHOP_NAME
        self.address_lines = list(address_lines if address_lines is not None else config.SHOP_ADDRESS_LINES)
        self.footer_lines = list(footer_lines if footer_lines is not None else config.FOOTER_LINES)

    def encode(self, transaction: Transaction) -> bytes:
        """Encode a transaction as an ESC/POS byte stream ending in a partial cut."""
        printer = Dummy()

        def command(code: bytes):
            printer._raw(code)

        def text(value: str):
            printer._raw(value.encode(TEXT_ENCODING))

        command(INIT)

        # Header
        command(ALIGN_CENTER)
        command(BOLD_ON)
        command(SIZE_DOUBLE)
        text(f"{self.shop_name}\n")
        command(BOLD_OFF)
        command(SIZE_NORMAL)
        for line in self.address_lines:
            text(f"{line}\n")
        text("\n")

        command(ALIGN_LEFT)

        # Transaction info
        for line in self._info_lines(transaction):
            text(f"{line}\n")
        text("\n")

        # Items
        for line in self._item_lines(transaction):
            text(f"{line}\n")
        text(f"{separator(self.line_width)}\n")

        # Totals
        command(BOLD_ON)
        for line in self._total_lines(transaction):
            text(f"{line}\n")
        command(BOLD_OFF)
        text(f"{separator(self.line_width)}\n\n")

        # Footer
        command(ALIGN_CENTER)
        for line in self.footer_lines:
            text(f"{line}\n")
        # Paper is fed before the cut, so the cut is always the final bytes.
        # Printers that cut short of the tear bar need more feed lines here,
        # not lines after the cut.
        text("\n\n")

        command(PARTIAL_CUT)

        return printer.output

    def render_text(self, transaction: Transaction) -> str:
        """Render the same receipt as plain text, without printer commands."""
        width = self.line_width
        lines: List[str] = [self.shop_name.center(width).rstrip()]
        lines.extend(line.center(width).rstrip() for line in self.address_lines)
        lines.append("")
        lines.extend(self._info_lines(transaction))
        lines.append("")
        lines.extend(self._item_lines(transaction))
        lines.append(separator(width))
        lines.extend(self._total_lines(transaction))
        lines.append(separator(width))
        lines.append("")
        lines.extend(line.center(width).rstrip() for line in self.footer_lines)
        return "\n".join(lines) + "\n"

    def _info_lines(self, transaction: Transaction) -> List[str]:
        return [
            separator(self.line_width),
            f"Date    : {transaction.date}",
            f"Cashier : {transaction.cashier}",
            f"Trx ID  : {transaction.id}",
            separator(self.line_width),
        ]

    def _item_lines(self, transaction: Transaction) -> List[str]:
        lines = []
        for item in transaction.items:
            lines.append(item.name)
            qty_price = f"  {item.quantity} x {format_amount(item.unit_price)}"
            lines.append(pad_line(qty_price, format_amount(item.subtotal), self.line_width))
        return lines

    def _total_lines(self, transaction: Transaction) -> List[str]:
        width = self.line_width
        lines = [
            pad_line("TOTAL", format_rupiah(transaction.total), width),
            pad_line("PAYMENT", payment_label(transaction.payment_method), width),
        ]
        # Tendered cash and change only exist for cash payments
        if transaction.is_cash:
            lines.append(pad_line("CASH", format_rupiah(transaction.cash), width))
            lines.append(pad_line("CHANGE", format_rupiah(transaction.change), width))
        return lines


def encode(transaction: Transaction) -> bytes:
    """Encode a transaction with the configured receipt layout."""
    return ReceiptEncoder().encode(transaction)
