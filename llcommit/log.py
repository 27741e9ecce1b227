"""Logging setup.

Nothing is logged unless file logging is requested: components take an
explicit logger and default to a silent one.
"""

import logging
import logging.config
import os

LOGGER_NAME = "llcommit"
DEBUG_LOG_FILENAME = "llcommit_debug.log"
DEFAULT_DEBUG_DIRS = ["/tmp/", "/tmp/var/"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def null_logger() -> logging.Logger:
    """Logger that discards every record."""
    logger = logging.getLogger(f"{LOGGER_NAME}.null")
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


def _logging_config(path: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT},
        },
        "handlers": {
            "file": {
                "class": "logging.FileHandler",
                "formatter": "standard",
                "filename": path,
                "mode": "a",
                "encoding": "utf-8",
            },
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["file"],
                "level": "DEBUG",
                "propagate": False,
            },
        },
    }


def init_file_logging(*dirs: str) -> logging.Logger:
    """Write DEBUG logs to the first usable directory.

    A permission error moves on to the next directory unless it is the last
    one; any other failure is raised.
    """
    dirs = dirs or tuple(DEFAULT_DEBUG_DIRS)

    for i, directory in enumerate(dirs):
        path = os.path.join(directory, DEBUG_LOG_FILENAME)
        try:
            # Open once up front so the failure surfaces here, not inside dictConfig
            with open(path, "a", encoding="utf-8"):
                pass
        except PermissionError:
            if i != len(dirs) - 1:
                continue
            raise
        logging.config.dictConfig(_logging_config(path))
        return logging.getLogger(LOGGER_NAME)

    raise OSError("no log directory given")
