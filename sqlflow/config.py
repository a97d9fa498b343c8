"""Runtime settings and logging setup for sqlflow."""

from __future__ import annotations

import logging
import os
import sys
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ENV_PREFIX = "SQLFLOW_"


class Settings(BaseModel):
    """Settings shared by the CLI, the HTTP server and the layout engine."""

    dialect: str = "postgres"
    log_level: str = "WARNING"

    # Layout spacing, in pixels
    node_spacing: int = Field(default=40, ge=0)
    layer_spacing: int = Field(default=80, ge=0)
    group_padding: int = Field(default=30, ge=0)

    # Box used for nodes the solver did not place
    default_node_width: int = Field(default=220, gt=0)
    default_node_height: int = Field(default=60, gt=0)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> Settings:
        """Build settings from ``SQLFLOW_*`` environment variables."""
        env = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in env:
                overrides[name] = env[key]
        return cls.model_validate(overrides)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings.from_env()


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a stream handler to the ``sqlflow`` logger.

    Calling it again only updates the level.
    """
    resolved = (level or get_settings().log_level).upper()
    logger = logging.getLogger("sqlflow")
    logger.setLevel(resolved)

    if not any(getattr(h, "_sqlflow", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._sqlflow = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.propagate = False
