"""Logging setup for the API process."""

from __future__ import annotations

import logging.config


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "format": "{asctime} | {levelname:8} | {name} | {message}",
                    "style": "{",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": level.upper(),
            },
            "loggers": {
                # Access logs are emitted by uvicorn itself.
                "uvicorn.access": {"level": "WARNING"},
            },
        }
    )
