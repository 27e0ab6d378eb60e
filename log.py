import logging
import sys
from middleware import RequestIDMiddleware

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(request_id)s] - %(name)s - %(message)s"

# Chatty third-party loggers that drown the evaluation logs at DEBUG
QUIET_LOGGERS = ("sqlalchemy.engine", "celery.app.trace", "httpx", "urllib3")


class ContextualFilter(logging.Filter):
    """Stamps every record with the id of the request being served (or N/A outside one)."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = RequestIDMiddleware.request_id_context().get()
        return True


def setup_logging(log_level: str = "INFO", log_filename: str | None = "landing_experiments.log"):
    """
    Configure the root logger with a stdout handler and, unless ``log_filename``
    is empty, an append-mode file handler. Safe to call more than once.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_filename:
        handlers.append(logging.FileHandler(log_filename, mode="a"))

    formatter = logging.Formatter(LOG_FORMAT)
    request_filter = ContextualFilter()
    for handler in handlers:
        handler.addFilter(request_filter)
        handler.setFormatter(formatter)

    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))
