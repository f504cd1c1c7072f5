#!/usr/bin/env python3
"""
Payments Core Entry Point

Starts the FastAPI server (port 8090 by default, see PAYMENTS_API_PORT).
"""

import sys

from core_payments.api import run_server
from core_payments.config import get_config


if __name__ == "__main__":
    cfg = get_config()
    print("Starting Payments Core...")
    print(f"API available at: http://localhost:{cfg.api_port}")
    print(f"Documentation at: http://localhost:{cfg.api_port}/docs")
    print(f"Receipts stored in: {cfg.artifact_dir} (kept {cfg.retention_days} days)")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Payments Core...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
