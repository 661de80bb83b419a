"""Web server entry point for the FlowForge auth API"""

import os
import socket

import uvicorn

# Load environment variables from .env file BEFORE building settings
from dotenv import load_dotenv
load_dotenv()

from flowforge.core.config import load_settings
from flowforge.utils.exceptions import ConfigError
from web_api.app import create_app


def _port_in_use(host: str, port: int) -> bool:
    """Return True if the given port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            return False
        except OSError:
            return True


def _get_available_port(host: str, preferred: int, max_tries: int = 10) -> int:
    """Return preferred port if free, otherwise the first free port in [preferred, preferred+max_tries)."""
    for p in range(preferred, preferred + max_tries):
        if not _port_in_use(host, p):
            return p
    raise RuntimeError(
        f"None of the ports {preferred}-{preferred + max_tries - 1} are available. "
        "Stop the process using the port or set WEB_PORT to a different number."
    )


if __name__ == "__main__":
    host = os.getenv("WEB_HOST", "0.0.0.0")
    preferred_port = int(os.getenv("WEB_PORT", "8000"))
    port = _get_available_port(host, preferred_port)
    if port != preferred_port:
        print(f"Port {preferred_port} is in use; using port {port} instead.")

    try:
        settings = load_settings()
    except ConfigError as e:
        raise SystemExit(f"Invalid configuration: {e}")

    print("Starting FlowForge Auth API...")
    print(f"Local server will be available at: http://localhost:{port}")
    print(f"Environment: {settings.environment} | data dir: {settings.data_dir}")
    print()

    try:
        # Sessions and rate limits are process-local state; keep one worker
        uvicorn.run(create_app(settings), host=host, port=port, reload=False)
    except KeyboardInterrupt:
        print("\nShutting down...")
