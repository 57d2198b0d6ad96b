"""
Receipt Printer - Main Application
Prints POS receipts on Bluetooth thermal printers, from the command line or
as an MQTT print-job listener on the counter PC.
"""

import argparse
import asyncio
import json
import platform
import signal
import sys
import time
from typing import List, Optional

import psutil

from .bluetooth import BleakPlatform, ConsoleChooser, default_chooser
from .config import config
from .errors import InvalidTransaction, PrinterError, WriteFailed
from .models import Transaction
from .mqtt_client import MQTTClient, mqtt_client as default_mqtt_client
from .printer_manager import BluetoothPrinterManager, printer_manager
from .receipt_encoder import ReceiptEncoder
from .utils.logger import logger


class PrinterClientApp:
    """Long-running MQTT print-job listener."""

    def __init__(self, mqtt_client: Optional[MQTTClient] = None):
        self.mqtt_client = mqtt_client or default_mqtt_client
        self.running = False
        self.startup_time = time.time()
        self.recovery_attempts = 0
        self.max_recovery_attempts = 5

        # Setup signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def start(self) -> bool:
        """
        Start the listener.

        Returns:
            True if started successfully, False otherwise
        """
        logger.info("🚀 Starting receipt printer client...")
        logger.info(str(config))

        self._log_system_info()

        logger.info("📡 Connecting to MQTT broker...")
        if not self.mqtt_client.connect():
            logger.error("❌ Failed to connect to MQTT broker")
            return False

        self.running = True
        logger.info("✅ Receipt printer client started successfully")
        logger.info(f"📡 Listening for print jobs on: {config.TOPIC_PRINT}")
        return True

    def stop(self):
        """Stop the listener."""
        logger.info("🛑 Stopping receipt printer client...")
        self.running = False
        self.mqtt_client.disconnect()
        logger.info("✅ Receipt printer client stopped")

    def run(self) -> bool:
        """Run the main application loop."""
        if not self.start():
            logger.error("❌ Failed to start application")
            return False

        try:
            while self.running:
                self._check_and_recover()
                time.sleep(5)
        except KeyboardInterrupt:
            logger.info("📝 Received keyboard interrupt")
        finally:
            self.stop()

        return self.recovery_attempts < self.max_recovery_attempts

    def _check_and_recover(self):
        """Reconnect to the broker when the link dropped."""
        if self.mqtt_client.is_connected:
            return

        logger.warning("⚠️ MQTT disconnected, attempting recovery...")
        if self.mqtt_client.reconnect():
            logger.info("✅ MQTT reconnected")
            self.recovery_attempts = 0
        else:
            self.recovery_attempts += 1
            logger.error(f"❌ MQTT recovery failed (attempt {self.recovery_attempts})")

        if self.recovery_attempts >= self.max_recovery_attempts:
            logger.critical("🚨 Too many recovery attempts, stopping application")
            self.running = False

    def _log_system_info(self):
        """Log system information."""
        system_info = {
            "platform": platform.system(),
            "platform_version": platform.version(),
            "architecture": platform.machine(),
            "python_version": platform.python_version(),
            "cpu_count": psutil.cpu_count(),
            "memory_gb": round(psutil.virtual_memory().total / (1024**3), 2),
        }
        logger.system_info(system_info)

    def _signal_handler(self, signum, frame):
        """Handle system signals."""
        logger.info(f"📝 Received signal {signum}")
        self.running = False

    def get_status(self) -> dict:
        """Get comprehensive application status."""
        return {
            "running": self.running,
            "uptime": int(time.time() - self.startup_time),
            "printer": printer_manager.get_status(),
            "mqtt": self.mqtt_client.get_connection_info(),
            "recovery_attempts": self.recovery_attempts,
        }


def load_transaction(path: str) -> Transaction:
    """Read a transaction JSON file ('-' reads stdin)."""
    try:
        if path == "-":
            data = json.load(sys.stdin)
        else:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidTransaction(f"Invalid JSON in {path}: {e}")

    if isinstance(data, dict) and isinstance(data.get("transaction"), dict):
        data = data["transaction"]
    return Transaction.from_dict(data)


def _interactive_manager() -> BluetoothPrinterManager:
    """Printer manager that asks the operator to pick a device when none is configured."""
    return BluetoothPrinterManager(platform=BleakPlatform(chooser=default_chooser(interactive=True)))


def _print(transaction: Transaction, manager: BluetoothPrinterManager) -> int:
    try:
        result = manager.print_receipt_sync(transaction)
    except WriteFailed as e:
        print(f"❌ {e.message}")
        if e.partial_print_possible:
            print("⚠️ Part of the receipt may already be printed; check before printing again.")
        return 1
    except PrinterError as e:
        print(f"❌ {e.message}")
        return 1

    print(f"✅ Receipt {result.transaction_id} printed ({result.bytes_sent} bytes, {result.chunks} chunks)")
    return 0


def cmd_print(args) -> int:
    try:
        transaction = load_transaction(args.file)
    except (InvalidTransaction, OSError) as e:
        print(f"❌ {e}")
        return 1
    return _print(transaction, _interactive_manager())


def cmd_test_print(args) -> int:
    manager = _interactive_manager()
    return _print(manager.sample_transaction(), manager)


def cmd_preview(args) -> int:
    try:
        transaction = load_transaction(args.file)
    except (InvalidTransaction, OSError) as e:
        print(f"❌ {e}")
        return 1

    encoder = ReceiptEncoder()
    print(encoder.render_text(transaction))
    if args.hex:
        print(encoder.encode(transaction).hex(" "))
    return 0


def cmd_scan(args) -> int:
    bleak_platform = BleakPlatform(chooser=ConsoleChooser())
    check = bleak_platform.check_capability()
    if not check:
        print(f"❌ Bluetooth unavailable: {check.reason}")
        return 1

    try:
        devices = asyncio.run(bleak_platform.scan())
    except PrinterError as e:
        print(f"❌ {e.message}")
        return 1

    if not devices:
        print("No Bluetooth devices found nearby")
        return 0

    for device in devices:
        marker = "printer" if device.advertises_any(config.SERVICE_UUIDS) else "-"
        print(f"{device.address}  {device.rssi if device.rssi is not None else '?':>4}  "
              f"{marker:<8} {device.name or 'unknown'}")
    return 0


def cmd_listen(args) -> int:
    app = PrinterClientApp()

    print("=" * 60)
    print("🖨️  Bluetooth Receipt Printer")
    print("=" * 60)
    print(f"📱 Station ID: {config.STATION_ID}")
    print(f"🖨️  Printer: {config.PRINTER_ADDRESS or 'auto-select'}")
    print(f"📡 MQTT Broker: {config.MQTT_BROKER}:{config.MQTT_PORT}")
    print(f"💓 Heartbeat: {config.HEARTBEAT_INTERVAL}s")
    print("=" * 60)

    return 0 if app.run() else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="receipt-printer",
                                     description="Print POS receipts on Bluetooth thermal printers.")
    commands = parser.add_subparsers(dest="command", required=True)

    print_cmd = commands.add_parser("print", help="print a transaction JSON file")
    print_cmd.add_argument("file", help="transaction JSON file, '-' for stdin")
    print_cmd.set_defaults(func=cmd_print)

    preview_cmd = commands.add_parser("preview", help="show the receipt without printing")
    preview_cmd.add_argument("file", help="transaction JSON file, '-' for stdin")
    preview_cmd.add_argument("--hex", action="store_true", help="also dump the ESC/POS bytes")
    preview_cmd.set_defaults(func=cmd_preview)

    scan_cmd = commands.add_parser("scan", help="list nearby Bluetooth devices")
    scan_cmd.set_defaults(func=cmd_scan)

    test_cmd = commands.add_parser("test-print", help="print a sample receipt")
    test_cmd.set_defaults(func=cmd_test_print)

    listen_cmd = commands.add_parser("listen", help="print jobs received over MQTT")
    listen_cmd.set_defaults(func=cmd_listen)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
