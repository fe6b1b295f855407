"""Logging setup shared by the API server and scripts."""

import logging
from typing import Optional

from reply_orchestrator.config.settings import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(level=level, format=LOG_FORMAT)

    # Client libraries are noisy at INFO
    for noisy in ("httpx", "openai", "chromadb"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
