"""
Settings & logging
==================

Runtime configuration for the compiler. Values come from environment
variables prefixed with ``REPORT_NL2SQL_`` (or a local ``.env`` file), e.g.::

    export REPORT_NL2SQL_KNOWLEDGE_DIR=/etc/reports/knowledge
    export REPORT_NL2SQL_LOG_LEVEL=DEBUG
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_KNOWLEDGE_DIR = Path(__file__).parent / "knowledge"

_LOGGER_NAME = "report_nl2sql"
_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class Settings(BaseSettings):
    knowledge_dir: Path = PACKAGE_KNOWLEDGE_DIR
    ontology_file: str = "ontology.json5"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="REPORT_NL2SQL_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def ontology_path(self) -> Path:
        return self.knowledge_dir / self.ontology_file


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the process-wide settings, reading the environment on first use.

    Returns:
        The cached Settings instance
    """
    return Settings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Calling it more than once only adjusts the level.

    Args:
        level: logging level name; defaults to ``Settings.log_level``

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel((level or get_settings().log_level).upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    return logger
