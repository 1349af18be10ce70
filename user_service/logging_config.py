import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send service logs to stdout once; repeated calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_user_service", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._user_service = True
    root.addHandler(handler)
