"""Tests for the configuration module."""

import pytest

from src.config import ClientConfig, Config, load_client_config, load_config

_SERVER_ENV = (
    "HOST", "PORT", "INFLUX_DBURL", "INFLUX_DBNAME", "INFLUXB_DBNAME", "BATCH_SIZE",
    "FLUSH_INTERVAL", "MAX_BUFFER", "DEBUG", "WRITE_TO_FILE", "OUTPUT_DIR",
    "SEND_TIMEOUT", "DRAIN_TIMEOUT", "RECV_BUFFER_SIZE", "SIP_HEADERS", "DASHBOARD_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _SERVER_ENV + (
        "HEP_SERVER", "HEP_PORT", "HEP_PROTO", "LOOP", "SEND_INTERVAL", "MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)


def test_config_defaults():
    cfg = Config()
    assert cfg.host == "0.0.0.0"
    assert cfg.port == 9060
    assert cfg.influx_url == "http://localhost:7971"
    assert cfg.influx_database == "hep"
    assert cfg.batch_size == 1000
    assert cfg.flush_interval_ms == 5000
    assert cfg.flush_interval == 5.0
    assert cfg.max_buffer_size == 10000
    assert cfg.debug is False
    assert cfg.write_to_file is False
    assert cfg.output_dir == "./data"
    assert cfg.sip_headers == ("Call-ID", "From", "To", "CSeq", "User-Agent")
    assert cfg.dashboard_port == 0


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9061")
    monkeypatch.setenv("INFLUX_DBURL", "http://gigapi:7971")
    monkeypatch.setenv("INFLUX_DBNAME", "sip")
    monkeypatch.setenv("BATCH_SIZE", "50")
    monkeypatch.setenv("FLUSH_INTERVAL", "250")
    monkeypatch.setenv("MAX_BUFFER", "500")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("WRITE_TO_FILE", "1")
    monkeypatch.setenv("OUTPUT_DIR", "/tmp/hep")
    monkeypatch.setenv("SEND_TIMEOUT", "2.5")
    monkeypatch.setenv("SIP_HEADERS", "Call-ID, Contact ,")

    cfg = load_config([])
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 9061
    assert cfg.influx_url == "http://gigapi:7971"
    assert cfg.influx_database == "sip"
    assert cfg.batch_size == 50
    assert cfg.flush_interval == 0.25
    assert cfg.max_buffer_size == 500
    assert cfg.debug is True
    assert cfg.write_to_file is True
    assert cfg.output_dir == "/tmp/hep"
    assert cfg.send_timeout == 2.5
    assert cfg.sip_headers == ("Call-ID", "Contact")


def test_legacy_database_variable(monkeypatch):
    monkeypatch.setenv("INFLUXB_DBNAME", "legacy")
    assert load_config([]).influx_database == "legacy"


def test_cli_overrides_env(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "50")
    monkeypatch.setenv("PORT", "9061")
    cfg = load_config(["--batch-size", "20", "--port", "9999", "--debug", "--write-to-file"])
    assert cfg.batch_size == 20
    assert cfg.port == 9999
    assert cfg.debug is True
    assert cfg.write_to_file is True


def test_invalid_number_in_env(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "lots")
    with pytest.raises(ValueError):
        load_config([])


@pytest.mark.parametrize("overrides", [
    {"batch_size": 0},
    {"flush_interval_ms": 0},
    {"max_buffer_size": -1},
    {"port": 70000},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        Config(**overrides)


def test_config_frozen():
    cfg = Config()
    with pytest.raises(AttributeError):
        cfg.port = 1234


def test_client_config_defaults():
    cfg = load_client_config([])
    assert cfg == ClientConfig()


def test_client_config_hepgen_env(monkeypatch):
    monkeypatch.setenv("HEP_SERVER", "hep-gigapi")
    monkeypatch.setenv("HEP_PORT", "9070")
    monkeypatch.setenv("HEP_PROTO", "tcp4")
    monkeypatch.setenv("LOOP", "400")

    cfg = load_client_config([])
    assert cfg.target_host == "hep-gigapi"
    assert cfg.target_port == 9070
    assert cfg.transport == "tcp"
    assert cfg.count == 400


def test_client_config_cli():
    cfg = load_client_config(["--transport", "tcp", "--count", "3", "--capture-id", "7"])
    assert cfg.transport == "tcp"
    assert cfg.count == 3
    assert cfg.capture_id == 7
