"""
Entrypoint for running the gateway server.

Usage:
    python -m gw_server
    job-gateway  (after pip install)

Environment Variables:
    PORT: Port to listen on (default: 3000)
    GW_LOG_LEVEL: Logging level (default: INFO)

The app can also be served directly with `uvicorn gw_server.app:app`.
"""

import logging
import os
import sys

import uvicorn

logger = logging.getLogger(__name__)


def main() -> int:
    """
    Main entrypoint for the server.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    log_level = os.environ.get("GW_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.environ.get("PORT", "3000"))
    logger.info(f"Listening on port {port}")

    try:
        uvicorn.run(
            "gw_server.app:app",
            host="0.0.0.0",
            port=port,
            log_level=log_level.lower(),
        )
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
