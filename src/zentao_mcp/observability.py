from __future__ import annotations

import logging
from typing import Any, Dict

# Attribute names every LogRecord already owns; passing them in `extra` raises.
RESERVED_LOG_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}

# Credentials never reach a log record, whatever the caller passes.
REDACTED_KEYS = frozenset({"password", "token", "secret"})

DEFAULT_LOGGER = "zentao_mcp.observability"


def _clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in RESERVED_LOG_KEYS or value is None:
            continue
        cleaned[key] = "***" if key in REDACTED_KEYS else value
    return cleaned


def log_event(
    event: str,
    logger: logging.Logger | None = None,
    *,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """
    Emit one ZenTao gateway event (zentao_call, token_refresh, scope_fallback,
    comment_fallback, batch_item, batch_done, zentao_retry).

    The event name is both the message and the `event` attribute, so
    LogfmtFormatter can pick the field set that belongs to it. None values
    are dropped and credential keys are masked.
    """
    log = logger or logging.getLogger(DEFAULT_LOGGER)
    if not log.isEnabledFor(level):
        return
    log.log(level, event, extra={"event": event, **_clean_fields(fields)})


__all__ = ["log_event", "REDACTED_KEYS", "RESERVED_LOG_KEYS"]
