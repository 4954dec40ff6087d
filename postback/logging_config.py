"""Logging utilities."""
import logging.config


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
        "loggers": {
            "postback": {"level": level.upper()},
            "rates": {"level": level.upper()},
        },
    })
