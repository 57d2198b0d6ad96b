"""
Error types raised by the receipt printer client.

Every failure of a print operation surfaces as one of these, so callers can
show the operator an actionable message and decide whether to offer a retry.
"""

from typing import Optional, Sequence


class PrinterError(Exception):
    """Base class for all print operation failures."""

    error_type = "printer_error"
    retryable = True
    user_message = "Printing failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message

    def to_dict(self) -> dict:
        return {
            "error_type": self.error_type,
            "error_message": self.message,
            "retryable": self.retryable,
        }


class CapabilityMissing(PrinterError):
    """The host has no usable Bluetooth Low Energy stack."""

    error_type = "capability_missing"
    retryable = False
    user_message = "Bluetooth is not available on this device. Use a host with a Bluetooth LE adapter."


class DeviceNotSelected(PrinterError):
    """No printer was chosen from the scan results."""

    error_type = "device_not_selected"
    user_message = "No printer was selected"


class ConnectionDenied(PrinterError):
    """The platform refused access to the Bluetooth radio."""

    error_type = "connection_denied"
    user_message = "Bluetooth access was denied. Check adapter permissions and try again."


class ChannelUnavailable(PrinterError):
    """The GATT connection to the selected printer could not be opened."""

    error_type = "channel_unavailable"
    user_message = "Could not connect to the printer"


class NoCompatibleCharacteristic(PrinterError):
    """None of the known printer service/characteristic pairs resolved."""

    error_type = "no_compatible_characteristic"
    retryable = False
    user_message = "This printer is not supported: no compatible printer characteristic found"

    def __init__(self, service_uuids: Sequence[str] = (), characteristic_uuids: Sequence[str] = (),
                 message: Optional[str] = None):
        self.service_uuids = list(service_uuids)
        self.characteristic_uuids = list(characteristic_uuids)
        if message is None and (self.service_uuids or self.characteristic_uuids):
            message = (
                f"{self.user_message} "
                f"(services tried: {', '.join(self.service_uuids) or '-'}; "
                f"characteristics tried: {', '.join(self.characteristic_uuids) or '-'})"
            )
        super().__init__(message)


class WriteFailed(PrinterError):
    """A chunk write was rejected while the receipt was being sent."""

    error_type = "write_failed"
    user_message = "Sending data to the printer failed"

    def __init__(self, chunk_index: int = 0, bytes_sent: int = 0, message: Optional[str] = None):
        self.chunk_index = chunk_index
        self.bytes_sent = bytes_sent
        super().__init__(message)

    @property
    def partial_print_possible(self) -> bool:
        """True when some data already reached the printer."""
        return self.bytes_sent > 0

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["partial_print_possible"] = self.partial_print_possible
        return data


class InvalidTransaction(PrinterError):
    """The transaction could not be parsed or its totals do not add up."""

    error_type = "invalid_transaction"
    retryable = False
    user_message = "Invalid transaction"
