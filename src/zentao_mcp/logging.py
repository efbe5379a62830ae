import logging
import sys
from typing import Any, Dict, Tuple

# Fields rendered for each gateway event, in order.
EVENT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "zentao_call": ("tool", "method", "endpoint", "status", "duration_ms", "error_type"),
    "zentao_retry": ("tool", "method", "endpoint", "attempt", "error_type"),
    "token_refresh": ("source", "forced"),
    "scope_fallback": ("tool", "endpoint", "status"),
    "comment_fallback": ("tool", "bug_id", "endpoint"),
    "batch_item": ("tool", "bug_id", "status", "error_type"),
    "batch_done": ("tool", "requested", "attempted", "resolved", "failed", "stopped"),
    "tool_error": ("tool", "error_type"),
}
# Plain log lines (no event) still show these when a caller sets them.
FALLBACK_FIELDS: Tuple[str, ...] = ("tool", "endpoint", "status", "error_type")

# Third-party loggers that would repeat what zentao_call already reports.
QUIET_LOGGERS = ("httpx", "httpcore")


def _fmt_val(val: Any) -> str:
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, (int, float)):
        return str(val)
    s = str(val)
    if not s or any(ch in s for ch in ' ="\n'):
        s = '"' + s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'
    return s


class LogfmtFormatter(logging.Formatter):
    """
    logfmt lines for the stderr log of the stdio server:

        level=info logger=zentao_mcp.tools.bugs event=scope_fallback tool=list_my_bugs ...

    Records produced by log_event render the field set of their event.
    """

    def format(self, record: logging.LogRecord) -> str:
        event = getattr(record, "event", None)
        parts = [
            f"level={record.levelname.lower()}",
            f"logger={record.name}",
        ]
        if event:
            parts.append(f"event={_fmt_val(event)}")
            fields = EVENT_FIELDS.get(event, FALLBACK_FIELDS)
        else:
            parts.append(f"msg={_fmt_val(record.getMessage())}")
            fields = FALLBACK_FIELDS

        for key in fields:
            val = getattr(record, key, None)
            if val is not None:
                parts.append(f"{key}={_fmt_val(val)}")

        if record.exc_info and record.exc_info[0] is not None:
            parts.append(f"exc_type={record.exc_info[0].__name__}")
        return " ".join(parts)


def setup_logging(level: str = "INFO") -> None:
    """Send logfmt to stderr; stdout belongs to the MCP stdio protocol."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(LogfmtFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["setup_logging", "LogfmtFormatter", "EVENT_FIELDS"]
