#!/usr/bin/env python3
"""
Bank Ledger Entry Point

Starts the FastAPI server with settings from BANK_LEDGER_* environment variables.
"""

import sys

from bank_ledger.config import get_config
from bank_ledger.logging_config import setup_logging
from bank_ledger.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, log_file=config.log_file)
    logger.info("Starting bank ledger API on %s:%s (storage: %s)",
                config.api_host, config.api_port, config.storage_backend)

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down bank ledger API")
    except Exception as e:
        logger.error("Error starting server: %s", e)
        sys.exit(1)
