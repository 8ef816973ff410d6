"""Environment-driven settings for the scoring facade and smoke script."""

import os
from functools import lru_cache
from typing import Dict

from pydantic import BaseModel


class Settings(BaseModel):
    database_url: str = "sqlite:///kr_scoring.db"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "text"  # "json" or "text"
    log_module_levels: Dict[str, str] = {}


def _parse_module_levels(raw: str) -> Dict[str, str]:
    """Parses ``"module1:DEBUG,module2:INFO"``; malformed items are skipped."""
    levels: Dict[str, str] = {}
    for item in raw.split(","):
        if ":" in item:
            module, level = item.split(":", 1)
            if module.strip() and level.strip():
                levels[module.strip()] = level.strip()
    return levels


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("KRSCORE_DB_URL", "sqlite:///kr_scoring.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "text"),
        log_module_levels=_parse_module_levels(os.getenv("LOG_MODULE_LEVELS", "")),
    )
