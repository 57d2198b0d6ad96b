import asyncio
import os
import tempfile

# Keep test runs from writing the log file into the working tree
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "receipt_printer_test.log"))

import pytest

from receipt_printer.bluetooth import BluetoothPlatform, CapabilityCheck, DiscoveredDevice
from receipt_printer.config import DEFAULT_CHARACTERISTIC_UUIDS, DEFAULT_SERVICE_UUIDS
from receipt_printer.errors import DeviceNotSelected
from receipt_printer.models import Transaction


SERVICES = list(DEFAULT_SERVICE_UUIDS)
CHARACTERISTICS = list(DEFAULT_CHARACTERISTIC_UUIDS)


class MockPlatform(BluetoothPlatform):
    """In-memory Bluetooth stack recording every call made against it."""

    def __init__(self, layout=None, available=True, select_device=True,
                 connect_error=None, fail_write_at=None, lookup_error=None):
        # layout maps service uuid -> characteristic uuids present on the device
        self.layout = layout if layout is not None else {SERVICES[0]: [CHARACTERISTICS[0]]}
        self.available = available
        self.select_device = select_device
        self.connect_error = connect_error
        self.fail_write_at = fail_write_at
        self.lookup_error = lookup_error
        self.calls = []
        self.writes = []
        self.writing = False
        self.overlapping_writes = False
        self.device = DiscoveredDevice("AA:BB:CC:DD:EE:FF", name="RPP02N", rssi=-60)

    def check_capability(self):
        self.calls.append(("check_capability",))
        if self.available:
            return CapabilityCheck(True)
        return CapabilityCheck(False, "no Bluetooth adapter found")

    async def request_device(self, optional_services):
        self.calls.append(("request_device", tuple(optional_services)))
        if not self.select_device:
            raise DeviceNotSelected()
        return self.device

    async def connect(self, device):
        self.calls.append(("connect", device.address))
        if self.connect_error is not None:
            raise self.connect_error
        return "gatt-server"

    async def get_service(self, server, service_uuid):
        self.calls.append(("get_service", service_uuid))
        if self.lookup_error is not None:
            raise self.lookup_error
        if service_uuid in self.layout:
            return ("service", service_uuid)
        return None

    async def get_characteristic(self, service, characteristic_uuid):
        self.calls.append(("get_characteristic", service[1], characteristic_uuid))
        if characteristic_uuid in self.layout[service[1]]:
            return ("characteristic", characteristic_uuid)
        return None

    async def write_value(self, server, characteristic, data):
        self.calls.append(("write_value", len(data)))
        if self.writing:
            self.overlapping_writes = True
        self.writing = True
        try:
            await asyncio.sleep(0)
            if self.fail_write_at is not None and len(self.writes) == self.fail_write_at:
                raise OSError("GATT write rejected")
            self.writes.append(bytes(data))
        finally:
            self.writing = False

    async def disconnect(self, server):
        self.calls.append(("disconnect", server))

    def call_names(self):
        return [call[0] for call in self.calls]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self, platform=None):
        self.delays = []
        self.platform = platform

    async def __call__(self, delay):
        self.delays.append(delay)
        if self.platform is not None:
            self.platform.calls.append(("sleep", delay))


class FakeHandle:
    def __init__(self, delay, action):
        self.delay = delay
        self.action = action
        self.cancelled = False
        self.ran = False

    def cancel(self):
        self.cancelled = True
        return True

    async def wait(self):
        if not self.cancelled and not self.ran:
            self.ran = True
            await self.action()


class FakeTimer:
    """Teardown timer that only records what was scheduled."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, delay, action):
        handle = FakeHandle(delay, action)
        self.scheduled.append(handle)
        return handle


@pytest.fixture
def make_platform():
    return MockPlatform


@pytest.fixture
def fake_timer():
    return FakeTimer()


@pytest.fixture
def recording_sleep():
    return RecordingSleep


@pytest.fixture
def cash_transaction():
    return Transaction.from_dict({
        "id": "TRX-123456",
        "cashier": "Siti",
        "date": "18/10/2026, 14.30",
        "items": [{"name": "Jasmine Tea", "quantity": 2, "unitPrice": 3000}],
        "total": 6000,
        "cash": 10000,
        "change": 4000,
        "paymentMethod": "cash",
    })


@pytest.fixture
def qris_transaction():
    return Transaction.from_dict({
        "id": "TRX-654321",
        "cashier": "Budi",
        "date": "18/10/2026, 15.05",
        "items": [
            {"name": "Lychee Tea Large", "quantity": 1, "unitPrice": 8000},
            {"name": "Thai Tea", "quantity": 3, "unitPrice": 5000},
        ],
        "total": 23000,
        "cash": 23000,
        "change": 0,
        "paymentMethod": "qris",
    })
