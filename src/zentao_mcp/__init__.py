"""zentao_mcp package exports."""

from .auth import Credential, TokenGrant, TokenManager, mask_token
from .client import ApiResponse, RetryConfig, ZenTaoClient, product_scope_required
from .config import ZenTaoConfig
from .errors import (
    InvalidPathError,
    InvalidVerifyResultError,
    MissingCredentialsError,
    MissingIdentifierError,
    TokenFieldMissingError,
    ZenTaoClientError,
    ZenTaoHTTPError,
    ZenTaoTimeoutError,
    ZenTaoTransportError,
    ZenTaoValidationError,
)
from .extract import extract_detail, extract_list, extract_record_id, extract_token
from .urls import build_url, pluralize_path, resolve_path_template

__all__ = [
    # Client
    "ZenTaoClient",
    "ZenTaoConfig",
    "ApiResponse",
    "RetryConfig",
    "product_scope_required",
    # Auth
    "TokenManager",
    "TokenGrant",
    "Credential",
    "mask_token",
    # Exceptions
    "ZenTaoClientError",
    "ZenTaoValidationError",
    "ZenTaoHTTPError",
    "ZenTaoTimeoutError",
    "ZenTaoTransportError",
    "InvalidPathError",
    "InvalidVerifyResultError",
    "MissingCredentialsError",
    "MissingIdentifierError",
    "TokenFieldMissingError",
    # Helpers
    "build_url",
    "resolve_path_template",
    "pluralize_path",
    "extract_list",
    "extract_detail",
    "extract_record_id",
    "extract_token",
]
