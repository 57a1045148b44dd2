# app/utils/logging.py
import contextvars
import logging
import sys

from pythonjsonlogger import jsonlogger

from app.utils.settings import LOG_LEVEL

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


class RequestIdFilter(logging.Filter):
    """Copies the current request id onto every record so the formatter can use it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(jsonlogger.JsonFormatter(_FORMAT))
        h.addFilter(RequestIdFilter())
        logger.addHandler(h)
        logger.setLevel(LOG_LEVEL)
        logger.propagate = False
    return logger
