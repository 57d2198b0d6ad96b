"""
Bluetooth LE access for the receipt printer client.

The negotiator and transport only talk to a BluetoothPlatform, so tests can
swap in a mock. BleakPlatform is the real implementation; device choosers
stand in for the device picker a browser would show.
"""

import asyncio
import os
import sys
from typing import Any, Callable, List, Optional, Sequence

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .config import config
from .errors import CapabilityMissing, ChannelUnavailable, ConnectionDenied, DeviceNotSelected
from .utils.logger import logger


SUPPORTED_PLATFORMS = ("linux", "darwin", "win32")
LINUX_ADAPTER_PATH = "/sys/class/bluetooth"


class CapabilityCheck:
    """Result of probing the host for a Bluetooth LE stack."""

    def __init__(self, available: bool, reason: str = ""):
        self.available = available
        self.reason = reason

    def __bool__(self):
        return self.available

    def __repr__(self):
        return f"CapabilityCheck(available={self.available}, reason={self.reason!r})"


class DiscoveredDevice:
    """A device seen during a scan."""

    def __init__(self, address: str, name: Optional[str] = None, rssi: Optional[int] = None,
                 service_uuids: Sequence[str] = (), handle: Any = None):
        self.address = address
        self.name = name
        self.rssi = rssi
        self.service_uuids = [u.lower() for u in service_uuids]
        self.handle = handle

    def advertises_any(self, service_uuids: Sequence[str]) -> bool:
        wanted = {u.lower() for u in service_uuids}
        return any(u in wanted for u in self.service_uuids)

    def __repr__(self):
        return f"DiscoveredDevice(address={self.address!r}, name={self.name!r}, rssi={self.rssi})"


DeviceChooser = Callable[[List[DiscoveredDevice], Sequence[str]], Optional[DiscoveredDevice]]


class BluetoothPlatform:
    """
    Operations the printer needs from the host Bluetooth stack.

    Service and characteristic lookups return None when the UUID does not
    resolve on the connected device.
    """

    def check_capability(self) -> CapabilityCheck:
        raise NotImplementedError

    async def request_device(self, optional_services: Sequence[str]) -> DiscoveredDevice:
        raise NotImplementedError

    async def connect(self, device: DiscoveredDevice) -> Any:
        raise NotImplementedError

    async def get_service(self, server: Any, service_uuid: str) -> Any:
        raise NotImplementedError

    async def get_characteristic(self, service: Any, characteristic_uuid: str) -> Any:
        raise NotImplementedError

    async def write_value(self, server: Any, characteristic: Any, data: bytes) -> None:
        raise NotImplementedError

    async def disconnect(self, server: Any) -> None:
        raise NotImplementedError


def _sort_for_printing(devices: List[DiscoveredDevice], service_uuids: Sequence[str]) -> List[DiscoveredDevice]:
    """Devices advertising a known printer service first, then by signal strength."""
    return sorted(
        devices,
        key=lambda d: (not d.advertises_any(service_uuids), -(d.rssi if d.rssi is not None else -999)),
    )


class AddressChooser:
    """Choose the device whose address or name matches a configured value."""

    def __init__(self, address: str):
        self.address = address.lower()

    def __call__(self, devices: List[DiscoveredDevice], service_uuids: Sequence[str]) -> Optional[DiscoveredDevice]:
        for device in devices:
            if device.address.lower() == self.address or (device.name or "").lower() == self.address:
                return device
        logger.warning("⚠️ Configured printer not found in scan", address=self.address, seen=len(devices))
        return None


class FirstDeviceChooser:
    """
    Choose the strongest device advertising a known printer service.

    Devices that do not advertise one are never picked unattended; set
    PRINTER_ADDRESS for printers that hide their services.
    """

    def __call__(self, devices: List[DiscoveredDevice], service_uuids: Sequence[str]) -> Optional[DiscoveredDevice]:
        printers = [d for d in devices if d.advertises_any(service_uuids)]
        if not printers:
            logger.warning("⚠️ No nearby device advertises a printer service", seen=len(devices))
            return None
        return _sort_for_printing(printers, service_uuids)[0]


class ConsoleChooser:
    """Ask the operator to pick a device from the scan results."""

    def __init__(self, input_func: Callable[[str], str] = input, output_func: Callable[[str], None] = print):
        self.input_func = input_func
        self.output_func = output_func

    def __call__(self, devices: List[DiscoveredDevice], service_uuids: Sequence[str]) -> Optional[DiscoveredDevice]:
        if not devices:
            return None

        ordered = _sort_for_printing(devices, service_uuids)
        self.output_func("Nearby Bluetooth devices:")
        for number, device in enumerate(ordered, start=1):
            marker = " [printer]" if device.advertises_any(service_uuids) else ""
            rssi = f"{device.rssi} dBm" if device.rssi is not None else "?"
            self.output_func(f"  {number}. {device.name or 'unknown'} ({device.address}, {rssi}){marker}")

        answer = self.input_func("Select printer number (empty to cancel): ").strip()
        if not answer:
            return None
        if not answer.isdigit() or not (1 <= int(answer) <= len(ordered)):
            self.output_func(f"Invalid choice: {answer}")
            return None
        return ordered[int(answer) - 1]


def default_chooser(interactive: bool = False) -> DeviceChooser:
    """Chooser matching the configuration: fixed address, prompt, or best guess."""
    if config.PRINTER_ADDRESS:
        return AddressChooser(config.PRINTER_ADDRESS)
    if interactive:
        return ConsoleChooser()
    return FirstDeviceChooser()


def _is_adapter_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(hint in message for hint in ("adapter", "not available", "no bluetooth", "powered off"))


class BleakPlatform(BluetoothPlatform):
    """BluetoothPlatform backed by bleak (BlueZ, CoreBluetooth or WinRT)."""

    def __init__(self, chooser: Optional[DeviceChooser] = None, scan_timeout: Optional[float] = None,
                 connect_timeout: Optional[float] = None):
        self.chooser = chooser or default_chooser()
        self.scan_timeout = scan_timeout or config.SCAN_TIMEOUT
        self.connect_timeout = connect_timeout or config.CONNECT_TIMEOUT

    def check_capability(self) -> CapabilityCheck:
        if sys.platform not in SUPPORTED_PLATFORMS:
            return CapabilityCheck(False, f"Bluetooth LE is not supported on {sys.platform}")
        if sys.platform == "linux":
            if not os.path.isdir(LINUX_ADAPTER_PATH) or not os.listdir(LINUX_ADAPTER_PATH):
                return CapabilityCheck(False, "no Bluetooth adapter found")
        return CapabilityCheck(True)

    async def scan(self) -> List[DiscoveredDevice]:
        """Discover nearby devices without filtering."""
        try:
            discovered = await BleakScanner.discover(timeout=self.scan_timeout, return_adv=True)
        except PermissionError as e:
            raise ConnectionDenied(f"{ConnectionDenied.user_message} ({e})") from e
        except OSError as e:
            # BlueZ or the system bus is not running
            raise CapabilityMissing(f"{CapabilityMissing.user_message} ({e})") from e
        except BleakError as e:
            if _is_adapter_error(e):
                raise CapabilityMissing(f"{CapabilityMissing.user_message} ({e})") from e
            raise ConnectionDenied(f"{ConnectionDenied.user_message} ({e})") from e

        devices = []
        for device, advertisement in discovered.values():
            devices.append(DiscoveredDevice(
                address=device.address,
                name=device.name or advertisement.local_name,
                rssi=advertisement.rssi,
                service_uuids=advertisement.service_uuids,
                handle=device,
            ))
        logger.debug("🔍 Scan finished", devices=len(devices))
        return devices

    async def request_device(self, optional_services: Sequence[str]) -> DiscoveredDevice:
        devices = await self.scan()
        if not devices:
            raise DeviceNotSelected("No Bluetooth devices found nearby")
        device = self.chooser(devices, optional_services)
        if device is None:
            raise DeviceNotSelected()
        return device

    async def connect(self, device: DiscoveredDevice) -> BleakClient:
        client = BleakClient(device.handle or device.address, timeout=self.connect_timeout)
        try:
            await client.connect()
        except PermissionError as e:
            raise ConnectionDenied(f"{ConnectionDenied.user_message} ({e})") from e
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            raise ChannelUnavailable(f"{ChannelUnavailable.user_message}: {e}") from e
        return client

    async def get_service(self, server: BleakClient, service_uuid: str):
        return server.services.get_service(service_uuid)

    async def get_characteristic(self, service, characteristic_uuid: str):
        return service.get_characteristic(characteristic_uuid)

    async def write_value(self, server: BleakClient, characteristic, data: bytes) -> None:
        # Prefer acknowledged writes when the characteristic supports them
        if "write" in characteristic.properties:
            await server.write_gatt_char(characteristic, data, response=True)
            return

        # Unacknowledged writes must fit in a single ATT packet
        limit = characteristic.max_write_without_response_size or max(len(data), 1)
        if len(data) > limit:
            logger.debug("🔍 Chunk capped to write-without-response size", size=len(data), limit=limit)
        for start in range(0, len(data), limit):
            await server.write_gatt_char(characteristic, data[start:start + limit], response=False)

    async def disconnect(self, server: BleakClient) -> None:
        await server.disconnect()
