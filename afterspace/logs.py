import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Union

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
principal_var: ContextVar[Optional[str]] = ContextVar("principal", default=None)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | trace=%(trace_id)s | principal=%(principal)s | %(message)s"


class TraceContextFilter(logging.Filter):
    """Copies the current trace id and principal onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_var.get() or "-"
        record.principal = principal_var.get() or "-"
        return True


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Install one stdout handler on the root logger, replacing any others."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(TraceContextFilter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)


@contextmanager
def trace_context(trace_id: Optional[str] = None, principal: Optional[str] = None) -> Iterator[str]:
    """Bind a trace id (and optionally the calling principal) for one request."""
    trace_id = trace_id or uuid.uuid4().hex
    trace_token = trace_id_var.set(trace_id)
    principal_token = principal_var.set(principal)
    try:
        yield trace_id
    finally:
        principal_var.reset(principal_token)
        trace_id_var.reset(trace_token)
