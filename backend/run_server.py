#!/usr/bin/env python3
"""
Standalone server script for the promo engine API.
Applies migrations, then starts uvicorn with settings from promo_engine.core.config.
"""
import sys
import os
import socket
import time
import traceback
from pathlib import Path

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

os.chdir(backend_dir)


def run_migrations():
    """Run migrations once in this process before uvicorn starts."""
    try:
        from scripts.init_db import init_db
        init_db()
    except Exception as e:
        print(f"Warning: Migrations failed (server will still start): {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)


def is_port_in_use(host, port):
    """Check if a port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            return False
        except OSError:
            return True


if __name__ == "__main__":
    import uvicorn
    from promo_engine.core.config import settings

    HOST = settings.HOST
    PORT = settings.PORT

    # Retry a few times (e.g. previous instance still shutting down)
    for attempt in range(3):
        if not is_port_in_use(HOST, PORT):
            break
        print(f"Port {PORT} is in use. Retrying in 3s ({attempt + 1}/3)...", file=sys.stderr)
        time.sleep(3)
    else:
        print(f"ERROR: Port {PORT} is still in use after retries. Another instance may be running.", file=sys.stderr)
        print(f"Please stop the existing server or kill the process: lsof -ti:{PORT} | xargs kill -9", file=sys.stderr)
        sys.exit(1)

    run_migrations()

    # Test import before starting server
    try:
        print("Testing app import...")
        from promo_engine.main import app  # noqa: F401
        print("App import successful!")
    except Exception as e:
        print(f"ERROR: Failed to import app: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)

    try:
        print("Starting uvicorn server...")
        uvicorn.run(
            "promo_engine.main:app",
            host=HOST,
            port=PORT,
            log_level="debug" if settings.DEBUG else "info",
            access_log=True,
            reload=False,
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"ERROR: Failed to start server: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)
