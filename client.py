"""Client entry point: sends sample SIP INVITE HEP packets to a server."""

import logging
import signal
import threading

from src.config import load_client_config
from src.sender import HepSender, build_sample_packet


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    config = load_client_config(argv)
    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    sender = HepSender(
        config.target_host, config.target_port, config.transport, config.max_retries
    )
    logger.info(
        "Sending %d HEP packets to %s:%d over %s",
        config.count,
        config.target_host,
        config.target_port,
        config.transport.upper(),
    )

    sent = 0
    try:
        for _ in range(config.count):
            if shutdown_event.is_set():
                break
            packet = build_sample_packet(config.capture_id, config.capture_pass)
            if sender.send(packet):
                sent += 1
            shutdown_event.wait(timeout=config.interval)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        sender.close()
        logger.info("Sent %d/%d packets", sent, config.count)


if __name__ == "__main__":
    main()
