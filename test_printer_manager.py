# Tests for end-to-end print operations

import asyncio
from types import SimpleNamespace

import pytest

from conftest import MockPlatform
from receipt_printer import bluetooth
from receipt_printer.bluetooth import BleakPlatform, CapabilityCheck, FirstDeviceChooser
from receipt_printer.errors import (
    CapabilityMissing,
    InvalidTransaction,
    NoCompatibleCharacteristic,
    PrinterError,
    WriteFailed,
)
from receipt_printer.models import Transaction
from receipt_printer.printer_manager import BluetoothPrinterManager, PrinterStatus
from receipt_printer.receipt_encoder import ReceiptEncoder
from receipt_printer.transport import ChunkedTransport


class BrokenBusPlatform(MockPlatform):
    """Platform whose device request fails below the error taxonomy."""

    async def request_device(self, optional_services):
        self.calls.append(("request_device", tuple(optional_services)))
        raise RuntimeError("system bus went away")


def build_manager(platform, timer, sleep, validate=True, chunk_size=512):
    transport = ChunkedTransport(chunk_size=chunk_size, chunk_delay=0.05, disconnect_grace=1.0,
                                 timer=timer, sleep=sleep)
    return BluetoothPrinterManager(platform=platform, encoder=ReceiptEncoder(line_width=32),
                                   transport=transport, validate=validate)


class TestBluetoothPrinterManager:
    """Test the acquire, encode, transmit and teardown sequence"""

    def test_prints_receipt(self, make_platform, fake_timer, recording_sleep, cash_transaction):
        platform = make_platform()
        manager = build_manager(platform, fake_timer, recording_sleep(), chunk_size=128)

        result = asyncio.run(manager.print_receipt(cash_transaction))

        expected = ReceiptEncoder(line_width=32).encode(cash_transaction)
        assert b"".join(platform.writes) == expected
        assert result.bytes_sent == len(expected)
        assert result.chunks == len(platform.writes) == -(-len(expected) // 128)
        assert result.transaction_id == "TRX-123456"
        assert result.teardown is fake_timer.scheduled[0]
        assert "disconnect" not in platform.call_names()
        assert manager.current_status == PrinterStatus.READY
        assert manager.print_stats["successful_jobs"] == 1
        assert manager.print_stats["last_print_time"] is not None

    def test_sync_print_waits_for_teardown(self, make_platform, fake_timer, recording_sleep, qris_transaction):
        platform = make_platform()
        manager = build_manager(platform, fake_timer, recording_sleep())

        result = manager.print_receipt_sync(qris_transaction)

        assert result.to_dict()["chunks"] == len(platform.writes)
        assert platform.call_names()[-1] == "disconnect"

    def test_invalid_transaction_stops_before_device(self, make_platform, fake_timer, recording_sleep,
                                                     cash_transaction):
        platform = make_platform()
        manager = build_manager(platform, fake_timer, recording_sleep())
        data = cash_transaction.to_dict()
        data["total"] = 9000
        broken = Transaction.from_dict(data)

        with pytest.raises(InvalidTransaction):
            asyncio.run(manager.print_receipt(broken))

        assert platform.calls == []
        assert manager.print_stats["failed_jobs"] == 1
        assert manager.last_error["error_type"] == "invalid_transaction"

    def test_trust_caller_when_validation_disabled(self, make_platform, fake_timer, recording_sleep,
                                                   cash_transaction):
        platform = make_platform()
        manager = build_manager(platform, fake_timer, recording_sleep(), validate=False)
        data = cash_transaction.to_dict()
        data["total"] = 9000
        data["change"] = 1000

        asyncio.run(manager.print_receipt(Transaction.from_dict(data)))

        assert b"Rp 9.000" in b"".join(platform.writes)

    def test_capability_missing(self, make_platform, fake_timer, recording_sleep, cash_transaction):
        platform = make_platform(available=False)
        manager = build_manager(platform, fake_timer, recording_sleep())

        with pytest.raises(CapabilityMissing):
            asyncio.run(manager.print_receipt(cash_transaction))

        assert "request_device" not in platform.call_names()
        assert manager.current_status == PrinterStatus.UNAVAILABLE

    def test_unsupported_printer(self, make_platform, fake_timer, recording_sleep, cash_transaction):
        platform = make_platform(layout={})
        manager = build_manager(platform, fake_timer, recording_sleep())

        with pytest.raises(NoCompatibleCharacteristic):
            asyncio.run(manager.print_receipt(cash_transaction))

        assert platform.writes == []
        assert platform.call_names()[-1] == "disconnect"

    def test_write_failure_closes_channel(self, make_platform, fake_timer, recording_sleep, cash_transaction):
        platform = make_platform(fail_write_at=1)
        manager = build_manager(platform, fake_timer, recording_sleep(), chunk_size=64)

        with pytest.raises(WriteFailed) as excinfo:
            asyncio.run(manager.print_receipt(cash_transaction))

        assert excinfo.value.partial_print_possible
        assert fake_timer.scheduled == []
        assert platform.call_names()[-1] == "disconnect"
        assert manager.current_status == PrinterStatus.FAILED
        assert manager.get_status()["last_error"]["partial_print_possible"] is True

    def test_each_call_negotiates_again(self, make_platform, fake_timer, recording_sleep, cash_transaction):
        platform = make_platform()
        manager = build_manager(platform, fake_timer, recording_sleep())

        asyncio.run(manager.print_receipt(cash_transaction))
        asyncio.run(manager.print_receipt(cash_transaction))

        assert platform.call_names().count("request_device") == 2
        assert platform.call_names().count("connect") == 2
        assert manager.print_stats["total_jobs"] == 2

    def test_sample_transaction_is_valid(self, make_platform):
        manager = BluetoothPrinterManager(platform=make_platform())

        sample = manager.sample_transaction()

        assert sample.validate() is sample
        assert sample.id.startswith("TRX-")

    def test_unexpected_error_is_recorded(self, fake_timer, recording_sleep, cash_transaction):
        platform = BrokenBusPlatform()
        manager = build_manager(platform, fake_timer, recording_sleep())

        with pytest.raises(PrinterError, match="system bus went away") as excinfo:
            manager.print_receipt_sync(cash_transaction)

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert manager.current_status == PrinterStatus.FAILED
        assert manager.print_stats["failed_jobs"] == 1
        assert manager.last_error["error_type"] == "printer_error"

    def test_missing_system_bus_is_capability_missing(self, monkeypatch, fake_timer, recording_sleep,
                                                      cash_transaction):
        async def discover(timeout, return_adv):
            raise FileNotFoundError("/run/dbus/system_bus_socket")

        monkeypatch.setattr(bluetooth, "BleakScanner", SimpleNamespace(discover=discover))
        platform = BleakPlatform(chooser=FirstDeviceChooser(), scan_timeout=1)
        monkeypatch.setattr(platform, "check_capability", lambda: CapabilityCheck(True))
        manager = build_manager(platform, fake_timer, recording_sleep())

        with pytest.raises(CapabilityMissing):
            manager.print_receipt_sync(cash_transaction)

        assert manager.current_status == PrinterStatus.UNAVAILABLE
        assert manager.print_stats["failed_jobs"] == 1
