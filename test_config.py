# Tests for environment configuration

import pytest

from receipt_printer.config import DEFAULT_CHARACTERISTIC_UUIDS, DEFAULT_SERVICE_UUIDS, Config


class TestConfig:
    """Test configuration loading and validation"""

    def test_defaults(self, monkeypatch):
        for name in ("SERVICE_UUIDS", "CHARACTERISTIC_UUIDS", "CHUNK_SIZE", "LINE_WIDTH", "STATION_ID"):
            monkeypatch.delenv(name, raising=False)

        settings = Config()

        assert settings.SERVICE_UUIDS == DEFAULT_SERVICE_UUIDS
        assert settings.CHARACTERISTIC_UUIDS == DEFAULT_CHARACTERISTIC_UUIDS
        assert settings.CHUNK_SIZE == 512
        assert settings.CHUNK_DELAY_MS == 50
        assert settings.DISCONNECT_GRACE_MS == 1000
        assert settings.LINE_WIDTH == 32
        assert len(settings.STATION_ID) == 12

    def test_uuid_lists_are_normalized(self, monkeypatch):
        monkeypatch.setenv("SERVICE_UUIDS", " 000018F0-0000-1000-8000-00805F9B34FB , ")

        assert Config().SERVICE_UUIDS == ["000018f0-0000-1000-8000-00805f9b34fb"]

    def test_topics_follow_station_id(self, monkeypatch):
        monkeypatch.setenv("STATION_ID", "kasir-01")
        monkeypatch.setenv("MQTT_TOPIC_PREFIX", "shop/printers/")

        settings = Config()

        assert settings.TOPIC_PRINT == "shop/printers/kasir-01/print"
        assert settings.get_topics()["heartbeat"] == "shop/printers/kasir-01/heartbeat"
        assert settings.CLIENT_ID == "ReceiptPrinter-kasir-01"

    def test_footer_keeps_blank_lines(self, monkeypatch):
        monkeypatch.setenv("FOOTER_LINES", "Thanks||Come again")

        assert Config().get_receipt_config()["footer_lines"] == ["Thanks", "", "Come again"]

    @pytest.mark.parametrize("name,value", [
        ("SERVICE_UUIDS", "not-a-uuid"),
        ("CHARACTERISTIC_UUIDS", ","),
        ("CHUNK_SIZE", "0"),
        ("LINE_WIDTH", "80"),
        ("MQTT_QOS", "3"),
        ("LOG_LEVEL", "chatty"),
    ])
    def test_invalid_values_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValueError):
            Config()
