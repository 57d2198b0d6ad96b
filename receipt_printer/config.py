"""
Configuration management for the Bluetooth receipt printer client.
Handles loading and validation of environment variables and settings.
"""

import os
import uuid
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


DEFAULT_SERVICE_UUIDS = [
    "000018f0-0000-1000-8000-00805f9b34fb",  # Generic thermal printer
    "49535343-fe7d-4ae5-8fa9-9fafd205e455",  # ISSC transparent UART printers
    "e7810a71-73ae-499d-8c15-faa9aef0c3f2",  # Generic printer service
]

DEFAULT_CHARACTERISTIC_UUIDS = [
    "00002af1-0000-1000-8000-00805f9b34fb",
    "49535343-8841-43f4-a8d4-ecbe34729bb3",
    "bef8d6c9-9c21-4c9e-b632-bd58c1009f9f",
]

DEFAULT_SHOP_NAME = "TEH BARUDAK INDONESIA"
DEFAULT_SHOP_ADDRESS_LINES = "Jl. Raya Kauman Kudu No.19|Genuk, Semarang 50113"
DEFAULT_FOOTER_LINES = (
    "Thank you for your order!|Follow us @tehbarudak.id||"
    "Wifi: TehBarudak_Free|Pass: barudak123"
)


def _split_list(value: str, separator: str = ",") -> List[str]:
    """Split a separated environment value, dropping surrounding whitespace."""
    return [part.strip() for part in value.split(separator) if part.strip()]


class Config:
    """Configuration class for the printer client."""

    def __init__(self):
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Load configuration from environment variables."""

        # Bluetooth Configuration
        self.PRINTER_ADDRESS = os.getenv("PRINTER_ADDRESS", "")
        self.SCAN_TIMEOUT = float(os.getenv("SCAN_TIMEOUT", "8"))
        self.CONNECT_TIMEOUT = float(os.getenv("CONNECT_TIMEOUT", "15"))
        self.SERVICE_UUIDS = [
            u.lower() for u in _split_list(os.getenv("SERVICE_UUIDS", ",".join(DEFAULT_SERVICE_UUIDS)))
        ]
        self.CHARACTERISTIC_UUIDS = [
            u.lower() for u in _split_list(
                os.getenv("CHARACTERISTIC_UUIDS", ",".join(DEFAULT_CHARACTERISTIC_UUIDS))
            )
        ]

        # Transport Configuration
        self.CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "512"))
        self.CHUNK_DELAY_MS = int(os.getenv("CHUNK_DELAY_MS", "50"))
        self.DISCONNECT_GRACE_MS = int(os.getenv("DISCONNECT_GRACE_MS", "1000"))

        # Receipt Layout Configuration
        self.LINE_WIDTH = int(os.getenv("LINE_WIDTH", "32"))
        self.SHOP_NAME = os.getenv("SHOP_NAME", DEFAULT_SHOP_NAME)
        # Blank entries are kept so the footer can carry empty spacer lines
        self.SHOP_ADDRESS_LINES = os.getenv("SHOP_ADDRESS_LINES", DEFAULT_SHOP_ADDRESS_LINES).split("|")
        self.FOOTER_LINES = os.getenv("FOOTER_LINES", DEFAULT_FOOTER_LINES).split("|")
        self.VALIDATE_TRANSACTIONS = os.getenv("VALIDATE_TRANSACTIONS", "true").lower() == "true"

        # MQTT Configuration
        self.MQTT_BROKER = os.getenv("MQTT_BROKER", "localhost")
        self.MQTT_PORT = int(os.getenv("MQTT_PORT", "1883"))
        self.MQTT_USERNAME = os.getenv("MQTT_USERNAME", "")
        self.MQTT_PASSWORD = os.getenv("MQTT_PASSWORD", "")
        self.MQTT_KEEPALIVE = int(os.getenv("MQTT_KEEPALIVE", "60"))
        self.MQTT_QOS = int(os.getenv("MQTT_QOS", "1"))
        self.MQTT_TOPIC_PREFIX = os.getenv("MQTT_TOPIC_PREFIX", "pos/printer").rstrip("/")

        # System Configuration
        station_id = os.getenv("STATION_ID", "auto")
        if station_id == "auto":
            # Derive a stable station id from the host MAC address
            self.STATION_ID = self._generate_station_id()
        else:
            self.STATION_ID = station_id

        self.HEARTBEAT_INTERVAL = int(os.getenv("HEARTBEAT_INTERVAL", "30"))
        self.DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"

        # Logging Configuration
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE = os.getenv("LOG_FILE", "receipt_printer.log")
        self.LOG_MAX_SIZE = os.getenv("LOG_MAX_SIZE", "10MB")
        self.LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

        # Derived configurations
        self.CLIENT_ID = f"ReceiptPrinter-{self.STATION_ID}"

        # MQTT Topics
        base = f"{self.MQTT_TOPIC_PREFIX}/{self.STATION_ID}"
        self.TOPIC_PRINT = f"{base}/print"
        self.TOPIC_STATUS = f"{base}/status"
        self.TOPIC_HEARTBEAT = f"{base}/heartbeat"
        self.TOPIC_ERROR = f"{base}/error"

    def _generate_station_id(self) -> str:
        """Generate a consistent station id based on the host MAC address."""
        return f"{uuid.getnode():012X}"

    def _validate_config(self):
        """Validate configuration values."""

        # Validate Bluetooth configuration
        if not self.SERVICE_UUIDS:
            raise ValueError("SERVICE_UUIDS must list at least one service UUID")

        if not self.CHARACTERISTIC_UUIDS:
            raise ValueError("CHARACTERISTIC_UUIDS must list at least one characteristic UUID")

        for value in self.SERVICE_UUIDS + self.CHARACTERISTIC_UUIDS:
            try:
                uuid.UUID(value)
            except ValueError:
                raise ValueError(f"Invalid Bluetooth UUID: {value}")

        if self.SCAN_TIMEOUT <= 0:
            raise ValueError("SCAN_TIMEOUT must be positive")

        if self.CONNECT_TIMEOUT <= 0:
            raise ValueError("CONNECT_TIMEOUT must be positive")

        # Validate transport configuration
        if not (1 <= self.CHUNK_SIZE <= 4096):
            raise ValueError("CHUNK_SIZE must be between 1 and 4096 bytes")

        if not (0 <= self.CHUNK_DELAY_MS <= 5000):
            raise ValueError("CHUNK_DELAY_MS must be between 0 and 5000")

        if not (0 <= self.DISCONNECT_GRACE_MS <= 60000):
            raise ValueError("DISCONNECT_GRACE_MS must be between 0 and 60000")

        # Validate receipt layout
        if not (16 <= self.LINE_WIDTH <= 64):
            raise ValueError("LINE_WIDTH must be between 16 and 64 characters")

        if not self.SHOP_NAME:
            raise ValueError("SHOP_NAME is required")

        # Validate MQTT configuration
        if not self.MQTT_BROKER:
            raise ValueError("MQTT_BROKER is required")

        if not (1 <= self.MQTT_PORT <= 65535):
            raise ValueError("MQTT_PORT must be between 1 and 65535")

        if self.MQTT_QOS not in (0, 1, 2):
            raise ValueError("MQTT_QOS must be 0, 1 or 2")

        # Validate system configuration
        if not (1 <= self.HEARTBEAT_INTERVAL <= 300):
            raise ValueError("HEARTBEAT_INTERVAL must be between 1 and 300 seconds")

        if self.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be DEBUG, INFO, WARNING, ERROR or CRITICAL")

    def get_printer_config(self) -> dict:
        """Get Bluetooth printer configuration as a dictionary."""
        return {
            "address": self.PRINTER_ADDRESS,
            "scan_timeout": self.SCAN_TIMEOUT,
            "connect_timeout": self.CONNECT_TIMEOUT,
            "service_uuids": list(self.SERVICE_UUIDS),
            "characteristic_uuids": list(self.CHARACTERISTIC_UUIDS),
            "chunk_size": self.CHUNK_SIZE,
            "chunk_delay_ms": self.CHUNK_DELAY_MS,
            "disconnect_grace_ms": self.DISCONNECT_GRACE_MS,
        }

    def get_receipt_config(self) -> dict:
        """Get receipt layout configuration as a dictionary."""
        return {
            "line_width": self.LINE_WIDTH,
            "shop_name": self.SHOP_NAME,
            "address_lines": list(self.SHOP_ADDRESS_LINES),
            "footer_lines": list(self.FOOTER_LINES),
        }

    def get_mqtt_config(self) -> dict:
        """Get MQTT configuration as a dictionary."""
        return {
            "broker": self.MQTT_BROKER,
            "port": self.MQTT_PORT,
            "username": self.MQTT_USERNAME,
            "password": self.MQTT_PASSWORD,
            "keepalive": self.MQTT_KEEPALIVE,
            "qos": self.MQTT_QOS,
            "client_id": self.CLIENT_ID,
        }

    def get_topics(self) -> dict:
        """Get MQTT topics as a dictionary."""
        return {
            "print": self.TOPIC_PRINT,
            "status": self.TOPIC_STATUS,
            "heartbeat": self.TOPIC_HEARTBEAT,
            "error": self.TOPIC_ERROR,
        }

    def __str__(self) -> str:
        """String representation of configuration."""
        return f"""
Receipt Printer Configuration:
==============================
Station ID: {self.STATION_ID}
Printer Address: {self.PRINTER_ADDRESS or '(choose on scan)'}
Scan Timeout: {self.SCAN_TIMEOUT}s
Chunk Size: {self.CHUNK_SIZE} bytes every {self.CHUNK_DELAY_MS}ms
Line Width: {self.LINE_WIDTH}
MQTT Broker: {self.MQTT_BROKER}:{self.MQTT_PORT}
Heartbeat Interval: {self.HEARTBEAT_INTERVAL}s
Debug Mode: {self.DEBUG_MODE}

Topics:
- Print: {self.TOPIC_PRINT}
- Status: {self.TOPIC_STATUS}
- Heartbeat: {self.TOPIC_HEARTBEAT}
- Error: {self.TOPIC_ERROR}
"""


# Global configuration instance
config = Config()
