#!/usr/bin/env python3
"""
hassInk - Home Assistant Screenshot Server for eInk Devices

Renders Home Assistant dashboards with Playwright, converts them for e-ink
displays and serves the latest image of each page over HTTP.

Usage: python -m hassink [--config config.yaml] [--port 5000]
"""

import argparse
import logging
import os
import sys

import uvicorn

from .config import CONFIG_FILE, Config
from .errors import ConfigurationError
from .server import create_app
from .service import ScreensaverService

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description='Serve Home Assistant dashboards as e-ink images')
    parser.add_argument(
        '--config',
        default=CONFIG_FILE,
        help=f'YAML configuration file, environment variables take precedence (default: {CONFIG_FILE})'
    )
    parser.add_argument(
        '--host',
        default='0.0.0.0',
        help='Address to bind to (default: 0.0.0.0)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Port to listen on (default: PORT or 5000)'
    )
    args = parser.parse_args()

    # Configure logging
    debug = os.environ.get('DEBUG') == 'true'
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = Config(args.config)
    except ConfigurationError as e:
        logger.error(f"Please check your configuration: {e}")
        sys.exit(1)

    service = ScreensaverService(config)
    app = create_app(service)

    port = args.port if args.port is not None else config.port
    logger.info(f"Server is starting at {args.host}:{port}")
    # uvicorn runs the startup event (browser launch, first render) before binding the port
    uvicorn.run(app, host=args.host, port=port, log_level="info")


if __name__ == "__main__":
    main()
