"""
Logging for the Bluetooth receipt printer client.

Messages go to a size-rotated log file and to a colored console stream.
Keyword arguments are appended to the message as ``key=value`` context.
"""

import logging
import logging.handlers
import sys
from typing import Optional

from ..config import config


SIZE_UNITS = {"KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def parse_size(value: str) -> int:
    """Byte count for values like '10MB', '512KB' or '1048576'."""
    value = value.strip().upper()
    for suffix, factor in SIZE_UNITS.items():
        if value.endswith(suffix):
            return int(value[:-len(suffix)]) * factor
    return int(value)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname)
        if color is None:
            return super().format(record)
        # Copy so the file handler still sees the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname:<8}{self.RESET}"
        return super().format(record)


class PrinterLogger:
    """Application logger with print-job and station helpers."""

    def __init__(self, name: str = "receipt_printer"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(config.LOG_LEVEL)

        # Handlers are attached once per process
        if not self.logger.handlers:
            self.logger.addHandler(self._file_handler())
            self.logger.addHandler(self._console_handler())

    @staticmethod
    def _file_handler() -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            config.LOG_FILE,
            maxBytes=parse_size(config.LOG_MAX_SIZE),
            backupCount=config.LOG_BACKUP_COUNT,
            encoding="utf-8",
            delay=True,
        )
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        return handler

    @staticmethod
    def _console_handler() -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        return handler

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = message + " | " + " | ".join(f"{key}={value}" for key, value in context.items())
        self.logger.log(level, message)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    # Print job
    def print_start(self, transaction_id: str, size: int):
        self.info("🖨️ Printing receipt", transaction_id=transaction_id, bytes=size)

    def print_complete(self, transaction_id: str, chunks: int):
        self.info("✅ Receipt sent", transaction_id=transaction_id, chunks=chunks)

    def print_error(self, transaction_id: str, error_type: str, error: str):
        self.error("❌ Receipt not printed", transaction_id=transaction_id,
                   error_type=error_type, error=error)

    # Bluetooth session
    def device_selected(self, address: str, name: Optional[str]):
        self.info("✅ Printer selected", address=address, name=name or "unknown")

    def channel_resolved(self, service_uuid: str, characteristic_uuid: str):
        self.info("✅ Printer channel resolved", service=service_uuid, characteristic=characteristic_uuid)

    def chunk_sent(self, index: int, size: int, total: int):
        self.debug("📤 Chunk written", chunk=f"{index + 1}/{total}", size=size)

    # Station
    def mqtt_connect(self, broker: str, port: int):
        self.info("🔌 Print-job broker connected", broker=broker, port=port)

    def mqtt_disconnect(self, reason: str = ""):
        if reason:
            self.warning("🔌 Print-job broker disconnected", reason=reason)
        else:
            self.info("🔌 Print-job broker disconnected")

    def mqtt_message(self, topic: str, size: int):
        self.debug("📨 Job message", topic=topic, size=size)

    def heartbeat_sent(self, status: str):
        self.debug("💓 Heartbeat", printer_status=status)

    def system_info(self, info: dict):
        self.info("💻 Host", **info)


# Global logger instance
logger = PrinterLogger()
