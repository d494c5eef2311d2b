"""Main entry point."""

import logging

import uvicorn

from .config import get_config, setup_logging
from .server import create_app

logger = logging.getLogger("smartsearch-proxy.main")


def main() -> None:
    """Run the proxy under uvicorn on the configured host and port."""
    config = get_config()
    setup_logging(config.log_level)

    try:
        app = create_app(config)
        logger.info(f"Starting proxy on {config.host}:{config.port}")
        uvicorn.run(
            app,
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
    except Exception as e:
        logger.error(f"Server failed: {e}")
        raise


if __name__ == "__main__":
    main()
