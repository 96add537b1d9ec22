#!/usr/bin/env python3
"""
Peerspace server startup script.

Runs uvicorn with the host and port from the application configuration.
"""

import os
import sys
from pathlib import Path

import uvicorn

from peerspace.config import get_config


def main():
    """Start the Peerspace server with uvicorn."""
    project_root = Path(__file__).parent
    os.chdir(project_root)

    config = get_config()
    host = config.server.host
    port = config.server.port
    app_module = "peerspace.main:app"

    print(f"Starting Peerspace server on {host}:{port}")

    try:
        uvicorn_config = uvicorn.Config(
            app_module,
            host=host,
            port=port,
            log_level=config.logging.level.lower(),
            access_log=True,
            ws="auto",
        )
        server = uvicorn.Server(uvicorn_config)
        server.run()
    except KeyboardInterrupt:
        print("\nServer shutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
