"""Per-request logging context using contextvars.

Usage:
    # In the HTTP middleware (main.py):
    bind_request(request_id)

    # Anywhere later in the same request:
    bind_user(user_id)
    logger.info("...")   # record carries request_id and user_id
"""

import contextvars
import logging
import uuid
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(request_id)s] [%(user_id)s] %(name)s: %(message)s"

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_user_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("user_id", default=None)


def bind_request(request_id: Optional[str] = None) -> str:
    """Start a request scope, generating an id when the caller did not send one."""
    request_id = request_id or uuid.uuid4().hex[:16]
    _request_id.set(request_id)
    _user_id.set(None)
    return request_id


def bind_user(user_id: str) -> None:
    _user_id.set(user_id)


def current_request_id() -> Optional[str]:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamp every record with the current request and user ids ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        record.user_id = _user_id.get() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(RequestContextFilter())
