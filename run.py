#!/usr/bin/env python3
"""
Card Banking System Entry Point

Starts the FastAPI server with the card transfer system.
Requires CARDBANK_ENCRYPTION_MASTER_KEY to be set.
"""

import sys

from card_banking.api import run_server
from card_banking.config import get_config


if __name__ == "__main__":
    config = get_config()
    if not config.encryption_master_key:
        print("CARDBANK_ENCRYPTION_MASTER_KEY is not set")
        sys.exit(1)

    print("Starting Card Banking System...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Card Banking System...")
