"""Launch the API with Uvicorn."""

from __future__ import annotations

import logging
import os

import uvicorn

from dealerbot.core.config import get_settings
from dealerbot.core.logging import configure_logging

logger = logging.getLogger("dealerbot.launcher")


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.environment)

    port = int(os.environ.get("PORT", "8000"))
    logger.info("Starting %s on port %s", settings.app_name, port)
    uvicorn.run("dealerbot.main:create_app", factory=True, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
