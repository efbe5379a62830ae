import re
from typing import Any, Mapping, Optional

import httpx

from .errors import InvalidPathError, ZenTaoValidationError

_ABSOLUTE_URL = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)

ID_PLACEHOLDER = "{id}"


def is_absolute_url(value: str) -> bool:
    return bool(_ABSOLUTE_URL.match(value.strip()))


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_url(
    base_url: str,
    api_prefix: str,
    path: str,
    query: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Join base URL, API prefix and a relative path into an absolute URL.
    Example: build_url('https://zt.example', '/api.php/v1', 'bugs/1')
        -> 'https://zt.example/api.php/v1/bugs/1'

    None query values are dropped; the last value set for a key wins.
    """
    if not isinstance(path, str) or not path.strip():
        raise InvalidPathError("path is required")
    if is_absolute_url(path):
        raise InvalidPathError(
            f"path must be relative (absolute URL is not allowed): {path}"
        )

    segments = [base_url.rstrip("/")]
    prefix = (api_prefix or "").strip("/")
    if prefix:
        segments.append(prefix)
    segments.append(path.strip().lstrip("/"))

    url = httpx.URL("/".join(segments))
    for key, value in (query or {}).items():
        if value is None:
            continue
        url = url.copy_set_param(str(key), _query_value(value))
    return str(url)


def resolve_path_template(template: str, item_id: int, suffix: str = "") -> str:
    """
    Substitute an identifier into a route template.
    Example: resolve_path_template('/bugs/{id}/close', 7) -> '/bugs/7/close'
    Example: resolve_path_template('/bugs/', 7, 'close') -> '/bugs/7/close'
    """
    if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id <= 0:
        raise ZenTaoValidationError(f"id must be a positive integer, got {item_id!r}")
    if not template or not template.strip():
        raise InvalidPathError("path template is required")

    if ID_PLACEHOLDER in template:
        return template.replace(ID_PLACEHOLDER, str(item_id))

    path = f"{template.rstrip('/')}/{item_id}"
    if suffix:
        path = f"{path}/{suffix.strip('/')}"
    return path


def pluralize_path(path: str) -> Optional[str]:
    """'/bugs/7/comment' -> '/bugs/7/comments'; None when there is nothing to pluralize."""
    trimmed = path.rstrip("/")
    if trimmed.endswith("/comment"):
        return trimmed + "s"
    return None


__all__ = [
    "ID_PLACEHOLDER",
    "build_url",
    "is_absolute_url",
    "pluralize_path",
    "resolve_path_template",
]
