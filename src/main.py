"""Application entry point for the marketplace search API server."""

import uvicorn

from src.utils.config import config, settings
from src.utils.logger import get_logger

logger = get_logger(__name__)


def main() -> None:
    """Start the uvicorn server with configuration from config.yaml."""
    api = config["api"]
    logger.info(
        "Starting marketplace search on %s:%s (vendor=%s)",
        api["host"],
        api["port"],
        settings.search_vendor,
    )
    uvicorn.run(
        "src.api.app:app",
        host=api["host"],
        port=int(api["port"]),
        log_level=str(config.get("app", {}).get("log_level", "info")).lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
