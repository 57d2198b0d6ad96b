"""
Printer session negotiation.
Finds a printer, connects, and probes the known GATT layouts for a writable channel.
"""

from typing import Any, Optional, Sequence

from .bluetooth import BluetoothPlatform, DiscoveredDevice
from .config import config
from .errors import CapabilityMissing, ChannelUnavailable, NoCompatibleCharacteristic, PrinterError
from .utils.logger import logger


class PrinterChannel:
    """
    An open, writable link to one printer characteristic.

    Lives for a single print operation and is never reused.
    """

    def __init__(self, platform: BluetoothPlatform, device: DiscoveredDevice, server: Any,
                 service_uuid: str, characteristic_uuid: str, characteristic: Any):
        self.platform = platform
        self.device = device
        self.server = server
        self.service_uuid = service_uuid
        self.characteristic_uuid = characteristic_uuid
        self.characteristic = characteristic
        self.closed = False

    async def write(self, data: bytes) -> None:
        await self.platform.write_value(self.server, self.characteristic, data)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.platform.disconnect(self.server)
        logger.info("🔌 Printer disconnected", address=self.device.address)

    def __repr__(self):
        return (f"PrinterChannel(address={self.device.address!r}, service={self.service_uuid!r}, "
                f"characteristic={self.characteristic_uuid!r})")


class SessionNegotiator:
    """
    Acquires a PrinterChannel by probing candidate UUIDs in priority order.

    Characteristics are only probed inside services that resolve. A resolved
    service without a known characteristic moves the search on to the next
    service; earlier list entries always win.
    """

    def __init__(self, platform: BluetoothPlatform, service_uuids: Optional[Sequence[str]] = None,
                 characteristic_uuids: Optional[Sequence[str]] = None):
        self.platform = platform
        self.service_uuids = list(service_uuids or config.SERVICE_UUIDS)
        self.characteristic_uuids = list(characteristic_uuids or config.CHARACTERISTIC_UUIDS)

    def ensure_capability(self) -> None:
        """Raise CapabilityMissing when the host has no Bluetooth LE stack."""
        check = self.platform.check_capability()
        if not check.available:
            message = CapabilityMissing.user_message
            if check.reason:
                message = f"{message} ({check.reason})"
            raise CapabilityMissing(message)

    async def acquire_channel(self) -> PrinterChannel:
        """
        Select a device, connect and resolve the printer characteristic.

        Returns:
            PrinterChannel holding the connection needed for later disconnect
        """
        self.ensure_capability()

        logger.info("🔍 Searching for Bluetooth printer...")
        device = await self.platform.request_device(self.service_uuids)
        logger.device_selected(device.address, device.name)

        logger.info("🔌 Connecting to printer...", address=device.address)
        try:
            server = await self.platform.connect(device)
        except PrinterError:
            raise
        except Exception as e:
            raise ChannelUnavailable(f"{ChannelUnavailable.user_message}: {e}") from e
        if server is None:
            raise ChannelUnavailable()

        try:
            return await self._resolve(device, server)
        except PrinterError:
            await self._safe_disconnect(server)
            raise

    async def _resolve(self, device: DiscoveredDevice, server: Any) -> PrinterChannel:
        for service_uuid in self.service_uuids:
            service = await self._probe(self.platform.get_service, server, service_uuid)
            if service is None:
                continue
            logger.debug("✅ Service found", service=service_uuid)

            for characteristic_uuid in self.characteristic_uuids:
                characteristic = await self._probe(self.platform.get_characteristic, service, characteristic_uuid)
                if characteristic is None:
                    continue
                logger.channel_resolved(service_uuid, characteristic_uuid)
                return PrinterChannel(self.platform, device, server, service_uuid,
                                      characteristic_uuid, characteristic)

            logger.debug("🔍 No known characteristic in service", service=service_uuid)

        raise NoCompatibleCharacteristic(self.service_uuids, self.characteristic_uuids)

    async def _probe(self, lookup, parent: Any, uuid: str) -> Any:
        """Run one lookup; a failing lookup counts as unresolved."""
        try:
            return await lookup(parent, uuid)
        except Exception as e:
            logger.debug("🔍 Lookup failed", uuid=uuid, error=str(e))
            return None

    async def _safe_disconnect(self, server: Any) -> None:
        try:
            await self.platform.disconnect(server)
        except Exception as e:
            logger.debug("🔍 Disconnect error", error=str(e))
