import json
import logging
import sys
import contextvars
from typing import Optional

# Context variable to carry the current invocation id across the call chain
_INVOCATION_ID: contextvars.ContextVar[str] = contextvars.ContextVar("invocation_id", default="-")


class _InvocationFilter(logging.Filter):
    """Logging filter that injects the invocation_id from contextvars into the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.invocation_id = _INVOCATION_ID.get()
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per line, for log pipelines that parse structured output."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "invocation_id": getattr(record, "invocation_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _build_formatter(fmt: str = "text") -> logging.Formatter:
    if fmt == "json":
        return _JsonFormatter()
    return logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | inv=%(invocation_id)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def configure_root_logger(level: str = "INFO", fmt: str = "text") -> None:
    """
    Configure root logger and the streampost logger.

    Root logger stays at INFO to keep httpx/httpcore noise down; only the
    streampost namespace is set to the requested level.

    Safe to call multiple times; it will not duplicate handlers.
    """
    root = logging.getLogger()

    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and any(isinstance(f, _InvocationFilter) for f in h.filters):
            logging.getLogger("streampost").setLevel(getattr(logging, level.upper(), logging.INFO))
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(fmt))
    handler.addFilter(_InvocationFilter())
    handler.setLevel(logging.DEBUG)
    root.addHandler(handler)
    root.setLevel(logging.INFO)

    logging.getLogger("streampost").setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str = "streampost") -> logging.Logger:
    """
    Get a module-specific logger. Handlers live on the root logger, so this
    never touches the child logger's handlers.
    """
    return logging.getLogger(name)


def current_invocation_id() -> str:
    return _INVOCATION_ID.get()


def push_invocation_id(invocation_id: Optional[str]) -> Optional[contextvars.Token]:
    """Set the current invocation id in context and return a token for later reset."""
    if not invocation_id:
        return None
    return _INVOCATION_ID.set(invocation_id)


def reset_invocation_id(token: Optional[contextvars.Token]) -> None:
    """Reset the invocation id context using the provided token (if any)."""
    if token is None:
        return
    try:
        _INVOCATION_ID.reset(token)
    except ValueError:
        # Token created in a different context; leave the value alone
        pass
