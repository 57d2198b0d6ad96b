"""
Bluetooth Printer Manager for the receipt printer client.
Runs one print operation end to end and keeps print statistics.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Dict, Optional

from .bluetooth import BleakPlatform, BluetoothPlatform
from .config import config
from .errors import PrinterError
from .models import Transaction
from .negotiator import SessionNegotiator
from .receipt_encoder import ReceiptEncoder
from .transport import ChunkedTransport, ScheduledTeardown
from .utils.formatting import format_receipt_date, make_transaction_id
from .utils.logger import logger


class PrinterStatus:
    """Status of the last print operation."""
    IDLE = "idle"
    PRINTING = "printing"
    READY = "ready"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


class PrintResult:
    """Outcome of a successful print: what was sent and the pending disconnect."""

    def __init__(self, transaction_id: str, bytes_sent: int, chunks: int,
                 service_uuid: str, characteristic_uuid: str, teardown: ScheduledTeardown):
        self.transaction_id = transaction_id
        self.bytes_sent = bytes_sent
        self.chunks = chunks
        self.service_uuid = service_uuid
        self.characteristic_uuid = characteristic_uuid
        self.teardown = teardown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "bytes_sent": self.bytes_sent,
            "chunks": self.chunks,
            "service_uuid": self.service_uuid,
            "characteristic_uuid": self.characteristic_uuid,
        }


class BluetoothPrinterManager:
    """
    Prints receipts on a Bluetooth thermal printer.

    Each call picks a device, negotiates a channel, streams the receipt and
    schedules the disconnect. Calls are not serialized here; callers must not
    start a second print while one is running.
    """

    def __init__(self, platform: Optional[BluetoothPlatform] = None,
                 encoder: Optional[ReceiptEncoder] = None,
                 transport: Optional[ChunkedTransport] = None,
                 validate: Optional[bool] = None):
        self._platform = platform
        self.encoder = encoder or ReceiptEncoder()
        self.transport = transport or ChunkedTransport()
        self.validate = config.VALIDATE_TRANSACTIONS if validate is None else validate
        self.current_status = PrinterStatus.IDLE
        self.last_error: Optional[Dict[str, Any]] = None

        # Print statistics
        self.print_stats = {
            "total_jobs": 0,
            "successful_jobs": 0,
            "failed_jobs": 0,
            "last_print_time": None,
        }

    @property
    def platform(self) -> BluetoothPlatform:
        # Created on first use so importing the module never touches the radio
        if self._platform is None:
            self._platform = BleakPlatform()
        return self._platform

    @property
    def negotiator(self) -> SessionNegotiator:
        return SessionNegotiator(self.platform)

    async def print_receipt(self, transaction: Transaction) -> PrintResult:
        """
        Print a transaction receipt.

        Raises:
            PrinterError subclass describing the first failing step
        """
        self.print_stats["total_jobs"] += 1
        self.current_status = PrinterStatus.PRINTING

        try:
            if self.validate:
                transaction.validate()

            data = self.encoder.encode(transaction)
            logger.print_start(transaction.id, len(data))

            channel = await self.negotiator.acquire_channel()
            try:
                logger.info("🖨️ Sending data to printer...")
                chunks = await self.transport.send(channel, data)
            except PrinterError:
                await self._close_now(channel)
                raise
            teardown = self.transport.schedule_teardown(channel)

        except PrinterError as e:
            self._record_failure(transaction, e)
            raise
        except Exception as e:
            error = PrinterError(f"{PrinterError.user_message}: {e}")
            self._record_failure(transaction, error)
            raise error from e

        self.print_stats["successful_jobs"] += 1
        self.print_stats["last_print_time"] = time.time()
        self.current_status = PrinterStatus.READY
        self.last_error = None
        logger.print_complete(transaction.id, chunks)

        return PrintResult(
            transaction_id=transaction.id,
            bytes_sent=len(data),
            chunks=chunks,
            service_uuid=channel.service_uuid,
            characteristic_uuid=channel.characteristic_uuid,
            teardown=teardown,
        )

    def print_receipt_sync(self, transaction: Transaction) -> PrintResult:
        """Print from synchronous code, waiting for the disconnect before returning."""
        return asyncio.run(self._print_and_wait(transaction))

    async def _print_and_wait(self, transaction: Transaction) -> PrintResult:
        result = await self.print_receipt(transaction)
        await result.teardown.wait()
        return result

    async def _close_now(self, channel) -> None:
        try:
            await channel.close()
        except Exception as e:
            logger.debug("🔍 Disconnect error", error=str(e))

    def _record_failure(self, transaction: Transaction, error: PrinterError) -> None:
        self.print_stats["failed_jobs"] += 1
        self.current_status = PrinterStatus.FAILED
        if not error.retryable:
            self.current_status = PrinterStatus.UNAVAILABLE
        self.last_error = error.to_dict()
        logger.print_error(transaction.id, error.error_type, error.message)

    def get_status(self) -> Dict[str, Any]:
        """Get printer status for heartbeats and status logging."""
        return {
            "printer_status": self.current_status,
            "last_error": self.last_error,
            "print_stats": self.print_stats.copy(),
        }

    def sample_transaction(self) -> Transaction:
        """Build the receipt used by the test-print command."""
        now = datetime.now()
        return Transaction.from_dict({
            "id": make_transaction_id(int(now.timestamp() * 1000)),
            "cashier": "Test Print",
            "date": format_receipt_date(now),
            "items": [
                {"name": "Jasmine Tea", "quantity": 2, "unitPrice": 3000},
                {"name": "Lychee Tea Large", "quantity": 1, "unitPrice": 8000},
            ],
            "total": 14000,
            "cash": 20000,
            "change": 6000,
            "paymentMethod": "cash",
        })


# Global printer manager instance
printer_manager = BluetoothPrinterManager()
