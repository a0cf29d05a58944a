"""Run the API server: ``python -m ftex_api``."""
from __future__ import annotations

import math

import uvicorn

from ftex_core import load_settings

from .main import create_app


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.server.port_number,
        timeout_keep_alive=max(1, math.ceil(settings.server.read_timeout)),
        timeout_graceful_shutdown=max(1, math.ceil(settings.server.shutdown_delay)),
        log_config=None,
    )


if __name__ == "__main__":
    main()
