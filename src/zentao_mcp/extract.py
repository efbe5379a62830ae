"""
Shared helpers for pulling payloads out of ZenTao response envelopes.

The v1 API is inconsistent about where it puts things: a list may arrive as
{"bugs": [...]}, {"data": {"bugs": [...]}}, {"data": [...]} or a bare array,
and detail records behave the same way. Each helper walks an ordered tuple of
strategies and returns the first hit. Nothing here raises on a shape mismatch;
an empty list or None means "no match".
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

ListStrategy = Callable[[Any, str], Optional[List[Any]]]
DetailStrategy = Callable[[Any, str], Optional[Dict[str, Any]]]
TokenStrategy = Callable[[Any], Optional[str]]

ID_FIELDS: Tuple[str, ...] = ("id", "bugID", "bugId", "bug_id")


def _nested(body: Any, *keys: str) -> Any:
    current = body
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _as_list(value: Any) -> Optional[List[Any]]:
    return value if isinstance(value, list) else None


def _as_object(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


# --- Lists ----------------------------------------------------------------- #


def list_from_named_field(body: Any, key: str) -> Optional[List[Any]]:
    return _as_list(_nested(body, key))


def list_from_data_field(body: Any, key: str) -> Optional[List[Any]]:
    return _as_list(_nested(body, "data", key))


def list_from_data(body: Any, key: str) -> Optional[List[Any]]:
    return _as_list(_nested(body, "data"))


def list_from_body(body: Any, key: str) -> Optional[List[Any]]:
    return _as_list(body)


LIST_STRATEGIES: Tuple[ListStrategy, ...] = (
    list_from_named_field,
    list_from_data_field,
    list_from_data,
    list_from_body,
)


def extract_list(
    body: Any, key: str, strategies: Tuple[ListStrategy, ...] = LIST_STRATEGIES
) -> List[Any]:
    """
    Extract a list payload.
    Example: extract_list({'data': {'bugs': [{'id': 1}]}}, 'bugs') -> [{'id': 1}]
    """
    for strategy in strategies:
        found = strategy(body, key)
        if found is not None:
            return found
    return []


# --- Detail records -------------------------------------------------------- #


def detail_from_named_field(body: Any, key: str) -> Optional[Dict[str, Any]]:
    return _as_object(_nested(body, key))


def detail_from_data_field(body: Any, key: str) -> Optional[Dict[str, Any]]:
    return _as_object(_nested(body, "data", key))


def detail_from_data(body: Any, key: str) -> Optional[Dict[str, Any]]:
    return _as_object(_nested(body, "data"))


def detail_from_body(body: Any, key: str) -> Optional[Dict[str, Any]]:
    return _as_object(body)


DETAIL_STRATEGIES: Tuple[DetailStrategy, ...] = (
    detail_from_named_field,
    detail_from_data_field,
    detail_from_data,
    detail_from_body,
)


def extract_detail(
    body: Any, key: str, strategies: Tuple[DetailStrategy, ...] = DETAIL_STRATEGIES
) -> Optional[Dict[str, Any]]:
    """
    Extract a single record.
    Example: extract_detail({'bug': {'id': 3}}, 'bug') -> {'id': 3}
    """
    for strategy in strategies:
        found = strategy(body, key)
        if found is not None:
            return found
    return None


# --- Identifiers ----------------------------------------------------------- #


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def extract_record_id(
    record: Any, fields: Tuple[str, ...] = ID_FIELDS
) -> Optional[int]:
    """Return the first usable positive identifier of a record, or None."""
    if not isinstance(record, dict):
        return None
    for field in fields:
        found = _positive_int(record.get(field))
        if found is not None:
            return found
    return None


# --- Login tokens ---------------------------------------------------------- #


def _non_empty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def token_from_body(body: Any) -> Optional[str]:
    return _non_empty_str(_nested(body, "token"))


def token_from_data(body: Any) -> Optional[str]:
    return _non_empty_str(_nested(body, "data", "token"))


def token_from_session(body: Any) -> Optional[str]:
    return _non_empty_str(_nested(body, "data", "session", "token"))


TOKEN_STRATEGIES: Tuple[TokenStrategy, ...] = (
    token_from_body,
    token_from_data,
    token_from_session,
)


def extract_token(
    body: Any, strategies: Tuple[TokenStrategy, ...] = TOKEN_STRATEGIES
) -> Optional[str]:
    for strategy in strategies:
        found = strategy(body)
        if found is not None:
            return found
    return None


__all__ = [
    "ID_FIELDS",
    "LIST_STRATEGIES",
    "DETAIL_STRATEGIES",
    "TOKEN_STRATEGIES",
    "extract_list",
    "extract_detail",
    "extract_record_id",
    "extract_token",
]
