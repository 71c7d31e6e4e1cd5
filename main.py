"""Run the Horizon API under uvicorn.

``PORT`` (set by most container platforms) takes precedence over
``API_PORT``. In debug mode uvicorn reloads on code changes.
"""

import os

import uvicorn
from loguru import logger

from src.api.main import app
from src.core.config import get_settings
from src.core.logging import INTERCEPTED_LOGGERS, setup_logging

APP_IMPORT_PATH = "src.api.main:app"


def uvicorn_log_config() -> dict[str, object]:
    """Logging config that hands uvicorn's records to loguru."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {"class": "src.core.logging.InterceptHandler"},
        },
        "loggers": {
            name: {"handlers": ["default"], "level": "INFO", "propagate": False}
            for name in INTERCEPTED_LOGGERS
        },
    }


def main() -> None:
    settings = get_settings()
    setup_logging(settings)

    port = int(os.environ.get("PORT", settings.api_port))
    logger.info(
        "Serving {} on http://{}:{} (reload: {})",
        settings.app_name,
        settings.api_host,
        port,
        settings.debug,
    )

    # reload needs an import path instead of the app object
    uvicorn.run(
        APP_IMPORT_PATH if settings.debug else app,
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
