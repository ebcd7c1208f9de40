#!/usr/bin/env python3
"""
Customer Ledger Entry Point

Starts the FastAPI server with settings from LEDGER_* environment variables.
"""

import sys

import uvicorn

from customer_ledger.api import create_app
from customer_ledger.config import get_config
from customer_ledger.logging_config import setup_logging


def main():
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info(f"Starting Customer Ledger API on {config.api_host}:{config.api_port}")

    try:
        uvicorn.run(
            create_app(),
            host=config.api_host,
            port=config.api_port,
            access_log=False
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Customer Ledger API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
