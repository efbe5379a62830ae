from __future__ import annotations

from typing import Any, Optional


class ZenTaoClientError(Exception):
    """Base error for client failures."""


class ZenTaoValidationError(ZenTaoClientError, ValueError):
    """Tool arguments were rejected before any request was made."""


class InvalidPathError(ZenTaoValidationError):
    pass


class InvalidVerifyResultError(ZenTaoValidationError):
    pass


class MissingCredentialsError(ZenTaoClientError):
    pass


class TokenFieldMissingError(ZenTaoClientError):
    pass


class MissingIdentifierError(ZenTaoClientError):
    pass


class ZenTaoTransportError(ZenTaoClientError):
    """Network failure before an HTTP status was received."""


class ZenTaoTimeoutError(ZenTaoTransportError):
    pass


class ZenTaoHTTPError(ZenTaoClientError):
    def __init__(
        self,
        *,
        status_code: int,
        method: str,
        url: str,
        body: str = "",
        data: Optional[Any] = None,
    ):
        super().__init__(f"Request failed {status_code} {method} {url}: {body}")
        self.status_code = status_code
        self.method = method
        self.url = url
        self.body = body
        self.data = data


__all__ = [
    "ZenTaoClientError",
    "ZenTaoValidationError",
    "InvalidPathError",
    "InvalidVerifyResultError",
    "MissingCredentialsError",
    "TokenFieldMissingError",
    "MissingIdentifierError",
    "ZenTaoTransportError",
    "ZenTaoTimeoutError",
    "ZenTaoHTTPError",
]
