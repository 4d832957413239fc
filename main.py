"""Entry point for the HEP to line protocol server."""

import logging
import signal
import sys
import threading

from src.config import load_config
from src.dashboard import create_dashboard_app, run_dashboard
from src.server import BindError, HepServer


def main(argv=None):
    config = load_config(argv)
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    server = HepServer(config, shutdown_event)
    try:
        server.start()
    except BindError as exc:
        logger.error("Failed to start server: %s", exc)
        sys.exit(1)

    logger.info("HEP server initialized with config: %s", config)

    if config.dashboard_port:
        app = create_dashboard_app(server)
        dash_thread = threading.Thread(
            target=run_dashboard, args=(app, config.dashboard_port), daemon=True
        )
        dash_thread.start()
        logger.info("Stats dashboard running on port %d", config.dashboard_port)

    try:
        while not shutdown_event.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        server.stop()


if __name__ == "__main__":
    main()
