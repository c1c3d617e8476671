#!/usr/bin/env python3
"""
Switchboard main entry point.

Allows Switchboard to be run as a module: python3 -m switchboard
"""

import argparse
import logging
import sys

from switchboard.config import load_config
from switchboard.logging_setup import configure_logging
from switchboard.service import SwitchboardService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="switchboard", description="HTTP/1.1 + WebSocket server")
    parser.add_argument("--host", help="Bind address (overrides SWITCHBOARD_HOST)")
    parser.add_argument("--port", type=int, help="Listen port (overrides SWITCHBOARD_PORT)")
    parser.add_argument("--directory", help="Directory for /files/ (overrides SWITCHBOARD_FILES_DIR)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = load_config()
        if args.host is not None:
            config.host = args.host
        if args.port is not None:
            config.port = args.port
        if args.directory is not None:
            config.files_dir = args.directory
        config.validate()
    except ValueError as e:
        print(f"switchboard: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_file)

    try:
        service = SwitchboardService(config)
        service.start()
        service.run_forever()
    except KeyboardInterrupt:
        logging.info("Switchboard shutdown requested")
    except Exception as e:
        logging.error(f"Switchboard failed to start: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
