from __future__ import annotations

import argparse
import logging
import time

from growhub import create_app
from growhub.config import load_config, setup_logging
from growhub.domain.exceptions import BrokerUnavailable, ConfigurationError
from growhub.services.container import HubContainer

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Run the hub: bus, state sync, sensors, controller and the HTTP endpoints."""
    parser = argparse.ArgumentParser(prog="growhub")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the in-process loopback bus instead of the external MQTT broker",
    )
    parser.add_argument(
        "--no-serial",
        action="store_true",
        help="Do not open serial sensor ports",
    )
    parser.add_argument(
        "--no-http",
        action="store_true",
        help="Do not serve the broker auth hook and status endpoints",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Invalid configuration: %s", e)
        return 1
    setup_logging(debug=config.DEBUG)

    try:
        container = HubContainer.build(config, offline=args.offline, enable_serial=False if args.no_serial else None)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        container.start()
    except BrokerUnavailable as e:
        logger.error("Cannot start hub: %s", e)
        container.shutdown()
        return 1

    logger.info("GrowHub running (press Ctrl+C to stop)")
    try:
        if args.no_http:
            while True:
                time.sleep(1)
        else:
            app = create_app(container)
            app.run(host=config.http_host, port=config.http_port, debug=False, use_reloader=False)
    except KeyboardInterrupt:
        logger.info("Stopping hub...")
    finally:
        try:
            container.shutdown()
        except (RuntimeError, OSError):
            logger.exception("Failed to shut down hub cleanly")
            return 1
    return 0


if __name__ == "__main__":
    import sys

    raise SystemExit(main(sys.argv[1:]))
