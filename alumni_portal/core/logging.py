import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "info") -> None:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("alumni_portal")
    logger.setLevel(level.upper())

    if not any(getattr(h, "_alumni_portal", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._alumni_portal = True
        logger.addHandler(handler)
