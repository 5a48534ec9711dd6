"""Logging configuration."""
import logging
import sys

# Library loggers that would drown the per-command lines at INFO
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "aiosqlite",
    "uvicorn.access",
    "websockets.protocol",
)


def setup_logging(level: str = "INFO") -> None:
    """Send service logs to stdout and keep library loggers at WARNING."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
