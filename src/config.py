"""Configuration module: frozen dataclasses loaded from environment variables,
overridden by command-line flags."""

import argparse
import os
from dataclasses import dataclass

from src.sip import DEFAULT_SIP_HEADERS


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _parse_list(value: str) -> tuple:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Config:
    host: str = "0.0.0.0"
    port: int = 9060
    influx_url: str = "http://localhost:7971"
    influx_database: str = "hep"
    batch_size: int = 1000
    flush_interval_ms: int = 5000
    max_buffer_size: int = 10000
    debug: bool = False
    write_to_file: bool = False
    output_dir: str = "./data"
    send_timeout: float = 10.0
    drain_timeout: float = 5.0
    recv_buffer_size: int = 65535
    sip_headers: tuple = DEFAULT_SIP_HEADERS
    dashboard_port: int = 0

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.flush_interval_ms < 1:
            raise ValueError(
                f"flush_interval_ms must be positive, got {self.flush_interval_ms}"
            )
        if self.max_buffer_size < 1:
            raise ValueError(
                f"max_buffer_size must be positive, got {self.max_buffer_size}"
            )
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")

    @property
    def flush_interval(self) -> float:
        """Flush interval in seconds."""
        return self.flush_interval_ms / 1000


def load_config(argv=None) -> Config:
    """Build Config from environment variables, then override with CLI args.

    Pass argv for testability; when None, argparse reads sys.argv.
    """
    env_host = os.environ.get("HOST", Config.host)
    env_port = int(os.environ.get("PORT", Config.port))
    env_influx_url = os.environ.get("INFLUX_DBURL", Config.influx_url)
    env_influx_database = os.environ.get(
        "INFLUX_DBNAME", os.environ.get("INFLUXB_DBNAME", Config.influx_database)
    )
    env_batch_size = int(os.environ.get("BATCH_SIZE", Config.batch_size))
    env_flush_interval = int(os.environ.get("FLUSH_INTERVAL", Config.flush_interval_ms))
    env_max_buffer = int(os.environ.get("MAX_BUFFER", Config.max_buffer_size))
    env_debug = _parse_bool(os.environ.get("DEBUG", "false"))
    env_write_to_file = _parse_bool(os.environ.get("WRITE_TO_FILE", "false"))
    env_output_dir = os.environ.get("OUTPUT_DIR", Config.output_dir)
    env_send_timeout = float(os.environ.get("SEND_TIMEOUT", Config.send_timeout))
    env_drain_timeout = float(os.environ.get("DRAIN_TIMEOUT", Config.drain_timeout))
    env_recv_buffer_size = int(os.environ.get("RECV_BUFFER_SIZE", Config.recv_buffer_size))
    env_sip_headers = os.environ.get("SIP_HEADERS")
    env_dashboard_port = int(os.environ.get("DASHBOARD_PORT", Config.dashboard_port))

    # CLI flags override env vars
    parser = argparse.ArgumentParser(description="HEP to line protocol server")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--influx-url", type=str, default=None)
    parser.add_argument("--influx-db", type=str, default=None)
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--flush-interval", type=int, default=None, help="milliseconds")
    parser.add_argument("--max-buffer", type=int, default=None)
    parser.add_argument("--output-dir", type=str, default=None)
    parser.add_argument("--dashboard-port", type=int, default=None)
    parser.add_argument("--debug", action="store_true", default=False)
    parser.add_argument("--write-to-file", action="store_true", default=False)

    args = parser.parse_args(argv)

    return Config(
        host=args.host if args.host is not None else env_host,
        port=args.port if args.port is not None else env_port,
        influx_url=args.influx_url if args.influx_url is not None else env_influx_url,
        influx_database=args.influx_db if args.influx_db is not None else env_influx_database,
        batch_size=args.batch_size if args.batch_size is not None else env_batch_size,
        flush_interval_ms=args.flush_interval if args.flush_interval is not None else env_flush_interval,
        max_buffer_size=args.max_buffer if args.max_buffer is not None else env_max_buffer,
        debug=args.debug or env_debug,
        write_to_file=args.write_to_file or env_write_to_file,
        output_dir=args.output_dir if args.output_dir is not None else env_output_dir,
        send_timeout=env_send_timeout,
        drain_timeout=env_drain_timeout,
        recv_buffer_size=env_recv_buffer_size,
        sip_headers=_parse_list(env_sip_headers) if env_sip_headers else Config.sip_headers,
        dashboard_port=args.dashboard_port if args.dashboard_port is not None else env_dashboard_port,
    )


@dataclass(frozen=True)
class ClientConfig:
    target_host: str = "localhost"
    target_port: int = 9060
    transport: str = "udp"
    count: int = 10
    interval: float = 1.0
    capture_id: int = 2001
    capture_pass: str = "myHep"
    max_retries: int = 3


def load_client_config(argv=None) -> ClientConfig:
    """Build ClientConfig from environment variables, then override with CLI args."""
    env_target_host = os.environ.get("HEP_SERVER", ClientConfig.target_host)
    env_target_port = int(os.environ.get("HEP_PORT", ClientConfig.target_port))
    env_transport = os.environ.get("HEP_PROTO", ClientConfig.transport)
    env_count = int(os.environ.get("LOOP", ClientConfig.count))
    env_interval = float(os.environ.get("SEND_INTERVAL", ClientConfig.interval))
    env_max_retries = int(os.environ.get("MAX_RETRIES", ClientConfig.max_retries))

    parser = argparse.ArgumentParser(description="Sample HEP packet sender")
    parser.add_argument("--target-host", type=str, default=None)
    parser.add_argument("--target-port", type=int, default=None)
    parser.add_argument("--transport", choices=("udp", "tcp"), default=None)
    parser.add_argument("--count", type=int, default=None)
    parser.add_argument("--interval", type=float, default=None)
    parser.add_argument("--capture-id", type=int, default=None)
    parser.add_argument("--capture-pass", type=str, default=None)

    args = parser.parse_args(argv)

    transport = args.transport if args.transport is not None else env_transport
    # hepgen style values such as "udp4" map onto the base transport
    transport = "tcp" if transport.lower().startswith("tcp") else "udp"

    return ClientConfig(
        target_host=args.target_host if args.target_host is not None else env_target_host,
        target_port=args.target_port if args.target_port is not None else env_target_port,
        transport=transport,
        count=args.count if args.count is not None else env_count,
        interval=args.interval if args.interval is not None else env_interval,
        capture_id=args.capture_id if args.capture_id is not None else ClientConfig.capture_id,
        capture_pass=args.capture_pass if args.capture_pass is not None else ClientConfig.capture_pass,
        max_retries=env_max_retries,
    )
