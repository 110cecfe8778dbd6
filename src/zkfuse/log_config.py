"""Logging setup shared by the whole process."""

import logging.config


def setup_logging(level: str = "INFO", fmt: str = "detailed") -> None:
    """Configure console logging for zkfuse, kazoo and fusepy."""
    level = level.upper()
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "simple": {"format": "%(levelname)s - %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "simple" if fmt == "simple" else "detailed",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "zkfuse": {"level": level, "handlers": ["console"], "propagate": False},
            "fuse.log-mixin": {"level": level, "handlers": ["console"], "propagate": False},
            # kazoo is chatty at INFO about every reconnect attempt
            "kazoo": {"level": "WARNING" if level != "DEBUG" else level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }

    logging.config.dictConfig(log_config)
