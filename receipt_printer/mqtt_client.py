"""
MQTT Client for the receipt printer client.
Receives print jobs from the checkout backend and reports job status.
"""

import json
import threading
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt
import psutil

from .config import config
from .errors import InvalidTransaction, PrinterError
from .models import Transaction
from .printer_manager import BluetoothPrinterManager, printer_manager as default_printer_manager
from .utils.logger import logger


class MQTTClient:
    """
    MQTT print-job listener.

    Jobs run one at a time on the network thread; every job ends with a
    status message, and rejected payloads are reported on the error topic.
    """

    def __init__(self, printer_manager: Optional[BluetoothPrinterManager] = None):
        self.printer_manager = printer_manager or default_printer_manager
        self.client = None
        self.is_connected = False
        self.last_heartbeat = 0
        self._heartbeat_worker: Optional[threading.Thread] = None
        self._stop_heartbeat = threading.Event()
        self._print_lock = threading.Lock()

        # Message handlers
        self.message_handlers = {
            config.TOPIC_PRINT: self._handle_print_message,
        }

        # Statistics
        self.stats = {
            "connection_time": None,
            "messages_received": 0,
            "messages_sent": 0,
            "print_jobs_received": 0,
            "print_jobs_completed": 0,
            "print_jobs_failed": 0,
            "last_message_time": None,
            "reconnect_count": 0,
        }

    def connect(self) -> bool:
        """
        Connect to MQTT broker.

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            logger.info(f"🔌 Connecting to MQTT broker: {config.MQTT_BROKER}:{config.MQTT_PORT}")

            # Create MQTT client
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=config.CLIENT_ID)

            # Set credentials
            if config.MQTT_USERNAME:
                self.client.username_pw_set(config.MQTT_USERNAME, config.MQTT_PASSWORD)

            # Set callbacks
            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect
            self.client.on_message = self._on_message
            self.client.on_publish = self._on_publish

            # Connect to broker
            self.client.connect(config.MQTT_BROKER, config.MQTT_PORT, config.MQTT_KEEPALIVE)

            # Start network loop
            self.client.loop_start()

            # on_connect fires on the network thread
            deadline = time.monotonic() + 10
            while not self.is_connected and time.monotonic() < deadline:
                time.sleep(0.1)

            if self.is_connected:
                logger.mqtt_connect(config.MQTT_BROKER, config.MQTT_PORT)
                self.stats["connection_time"] = time.time()
                self._start_heartbeat()
                return True
            else:
                logger.error("❌ MQTT connection timeout")
                return False

        except (OSError, ValueError) as e:
            logger.error(f"❌ MQTT connection error: {str(e)}")
            return False

    def disconnect(self):
        """Disconnect from MQTT broker."""
        self._stop_heartbeat.set()
        if self._heartbeat_worker is not None:
            self._heartbeat_worker.join(timeout=5)
            self._heartbeat_worker = None

        if self.client:
            try:
                self.client.loop_stop()
                self.client.disconnect()
            except Exception as e:
                logger.debug(f"🔍 MQTT disconnect error: {str(e)}")

        self.is_connected = False
        logger.mqtt_disconnect()

    def reconnect(self) -> bool:
        """Reconnect to MQTT broker."""
        logger.info("🔄 Attempting MQTT reconnection...")
        self.disconnect()
        time.sleep(2)
        success = self.connect()
        if success:
            self.stats["reconnect_count"] += 1
        return success

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Handle MQTT connection callback."""
        if not reason_code.is_failure:
            self.is_connected = True
            logger.info(f"✅ MQTT connected with result code {reason_code}")

            client.subscribe(config.TOPIC_PRINT, qos=config.MQTT_QOS)
            logger.info(f"📡 Subscribed to print topic: {config.TOPIC_PRINT}")
        else:
            logger.error(f"❌ MQTT connection failed with result code {reason_code}")
            self.is_connected = False

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Handle MQTT disconnection callback."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"⚠️ MQTT unexpected disconnection: {reason_code}")
        else:
            logger.info("🔌 MQTT disconnected gracefully")

    def _on_message(self, client, userdata, msg):
        """Handle incoming MQTT messages."""
        topic = msg.topic
        try:
            payload = msg.payload.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.error(f"❌ Undecodable payload on {topic}: {str(e)}")
            self._send_error("invalid_payload", str(e), retryable=False)
            return

        logger.mqtt_message(topic, len(payload))

        # Update statistics
        self.stats["messages_received"] += 1
        self.stats["last_message_time"] = time.time()

        # Handle message based on topic
        handler = self.message_handlers.get(topic)
        if not handler:
            logger.warning(f"⚠️ Unknown topic: {topic}")
            return

        # Errors must not escape into paho's network thread
        try:
            handler(payload)
        except Exception as e:
            logger.error(f"❌ Message handling error: {str(e)}", topic=topic)
            self._send_error("message_handling_error", str(e))

    def _on_publish(self, client, userdata, mid, reason_code=None, properties=None):
        """Handle MQTT publish callback."""
        self.stats["messages_sent"] += 1
        logger.debug(f"📤 Message published: {mid}")

    def _handle_print_message(self, payload: str):
        """
        Handle print job messages.

        Args:
            payload: Transaction JSON, bare or wrapped as {"transaction": {...}}
        """
        logger.info("📨 Print message received")
        self.stats["print_jobs_received"] += 1

        try:
            transaction = self.parse_print_payload(payload)
        except InvalidTransaction as e:
            logger.error(f"❌ Rejected print job: {e.message}")
            self.stats["print_jobs_failed"] += 1
            self._send_error(e.error_type, e.message, retryable=e.retryable)
            return

        # Printing is not re-entrant: one device picker, one channel at a time
        with self._print_lock:
            try:
                result = self.printer_manager.print_receipt_sync(transaction)
            except PrinterError as e:
                self.stats["print_jobs_failed"] += 1
                self._send_print_status(transaction.id, "failed", error=e)
                self._send_error(e.error_type, e.message, retryable=e.retryable)
                return

        self.stats["print_jobs_completed"] += 1
        self._send_print_status(transaction.id, "completed", details=result.to_dict())

    @staticmethod
    def parse_print_payload(payload: str) -> Transaction:
        """Parse a print job payload into a Transaction."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise InvalidTransaction(f"Invalid JSON in print message: {str(e)}")

        if isinstance(data, dict) and isinstance(data.get("transaction"), dict):
            data = data["transaction"]
        return Transaction.from_dict(data)

    def _send_heartbeat(self):
        """Send heartbeat message to server."""
        printer_status = self.printer_manager.get_status()

        heartbeat_data = {
            "station_id": config.STATION_ID,
            "timestamp": int(time.time() * 1000),
            "online": True,
            "mqtt_connected": self.is_connected,
            "printer_status": printer_status["printer_status"],
            "last_error": printer_status["last_error"],
            "print_stats": printer_status["print_stats"],
            "free_memory_mb": self._get_system_memory(),
        }

        self._publish(config.TOPIC_HEARTBEAT, heartbeat_data)
        logger.heartbeat_sent(printer_status["printer_status"])

    def _send_print_status(self, transaction_id: str, status: str,
                           error: Optional[PrinterError] = None, details: Optional[Dict[str, Any]] = None):
        """
        Send print job status to server.

        Args:
            transaction_id: Transaction ID
            status: Print status (completed, failed)
            error: Failure that ended the job, if any
            details: Extra fields to include
        """
        status_data = {
            "timestamp": int(time.time() * 1000),
            "station_id": config.STATION_ID,
            "transaction_id": transaction_id,
            "status": status,
        }
        if details:
            status_data.update(details)
        if error is not None:
            status_data["error_type"] = error.error_type
            status_data["retryable"] = error.retryable
            status_data["message"] = error.message

        self._publish(config.TOPIC_STATUS, status_data)

    def _send_error(self, error_type: str, error_message: str, retryable: bool = True):
        """
        Send error message to server.

        Args:
            error_type: Type of error
            error_message: Error description
            retryable: Whether resending the job can succeed
        """
        error_data = {
            "timestamp": int(time.time() * 1000),
            "station_id": config.STATION_ID,
            "error_type": error_type,
            "error_message": error_message,
            "retryable": retryable,
        }

        self._publish(config.TOPIC_ERROR, error_data)

    def _publish(self, topic: str, data: dict):
        """
        Publish data to MQTT topic.

        Args:
            topic: MQTT topic
            data: Data to publish
        """
        if not self.is_connected:
            logger.warning("⚠️ Cannot publish - MQTT not connected")
            return

        payload = json.dumps(data)
        result = self.client.publish(topic, payload, qos=config.MQTT_QOS)

        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"📤 Published to {topic}", size=len(payload))
        else:
            logger.error(f"❌ Publish failed: {result.rc}")

    def _start_heartbeat(self):
        """Publish station heartbeats from a daemon thread until disconnect."""
        self._stop_heartbeat.clear()
        self._heartbeat_worker = threading.Thread(target=self._heartbeat_loop, name="heartbeat", daemon=True)
        self._heartbeat_worker.start()
        logger.info(f"💓 Heartbeat every {config.HEARTBEAT_INTERVAL}s")

    def _heartbeat_loop(self):
        # First beat goes out right after connecting
        while self.is_connected:
            self._send_heartbeat()
            self.last_heartbeat = time.time()
            if self._stop_heartbeat.wait(config.HEARTBEAT_INTERVAL):
                break

    def _get_system_memory(self) -> int:
        """Available system memory in MB."""
        return int(psutil.virtual_memory().available / 1024 / 1024)

    def get_connection_info(self) -> dict:
        """Get connection information."""
        return {
            "connected": self.is_connected,
            "broker": config.MQTT_BROKER,
            "port": config.MQTT_PORT,
            "client_id": config.CLIENT_ID,
            "topics": config.get_topics(),
            "stats": self.stats.copy()
        }


# Global MQTT client instance
mqtt_client = MQTTClient()
