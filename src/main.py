"""Application entry point for the OCR fusion API server."""

import uvicorn

from src.api.app import app
from src.utils.config import load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the FastAPI application server on the configured address."""
    config = load_config()
    setup_logging(config.log_level)
    if config.openai.api_key() is None:
        logger.warning(
            "%s is not set; structured extraction disabled",
            config.openai.api_key_env,
        )
    if config.google.api_key() is None:
        logger.warning(
            "%s is not set; text detection disabled", config.google.api_key_env
        )
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
