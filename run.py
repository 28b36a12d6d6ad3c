#!/usr/bin/env python3
"""
Banking Operations Entry Point

Starts the FastAPI server with the settings from BANK_OPS_* environment
variables (or .env).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from bank_ops.api import run_server
from bank_ops.config import get_config
from bank_ops.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, log_file=config.log_file)
    logger.info(f"Starting banking operations API on {config.api_host}:{config.api_port}")
    logger.info(f"Store: {config.database_url}")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            log_level=config.log_level
        )
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
