"""HTTP server entry point for the Sentinel hunting integration.

Provides run_server() which validates the environment, builds the FastAPI
app and serves it with uvicorn.
"""

import logging
import sys

import uvicorn

from sentinel_th.api import create_app
from sentinel_th.config import load_settings, validate_env_vars

logger = logging.getLogger(__name__)


def run_server() -> None:
    """Start the API server. Exits 1 if required configuration is missing."""
    _passed, failed = validate_env_vars()
    if failed:
        print(
            f"Configuration error: {len(failed)} required env var(s) missing:",
            file=sys.stderr,
        )
        for var_desc in failed:
            print(f"  - {var_desc}", file=sys.stderr)
        sys.exit(1)

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(settings)
    logger.info("Server running on port %s", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run_server()
