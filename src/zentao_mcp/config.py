from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_API_PREFIX = "/api.php/v1"
DEFAULT_TOKEN_TTL_MS = 3_000_000
DEFAULT_TIMEOUT_MS = 30_000


def _get_bool_env(name: str, default: bool) -> bool:
    """Parse a boolean environment variable with a safe default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip().replace("_", ""))
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _enforce_positive(name: str, value: int) -> int:
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return value


@dataclass(frozen=True)
class ZenTaoConfig:
    """Connection settings for one ZenTao instance; immutable once built."""

    base_url: str
    api_prefix: str = DEFAULT_API_PREFIX
    token_path: str = ""
    token_ttl_ms: int = DEFAULT_TOKEN_TTL_MS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    account: str = ""
    password: str = ""
    default_product_id: Optional[int] = None
    expose_token: bool = False

    def __post_init__(self) -> None:
        base_url = (self.base_url or "").strip().rstrip("/")
        if not base_url:
            raise ValueError("base_url must be provided.")
        api_prefix = (self.api_prefix or "").strip().rstrip("/")
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "base_url", base_url)
        object.__setattr__(self, "api_prefix", api_prefix)
        if not self.token_path:
            object.__setattr__(self, "token_path", f"{api_prefix}/tokens")
        _enforce_positive("token_ttl_ms", self.token_ttl_ms)
        _enforce_positive("timeout_ms", self.timeout_ms)
        if self.default_product_id is not None:
            _enforce_positive("default_product_id", self.default_product_id)

    @property
    def token_ttl_seconds(self) -> float:
        return self.token_ttl_ms / 1000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_env(cls, *, use_dotenv: bool = True) -> "ZenTaoConfig":
        """Load settings from ZENTAO_* environment variables (optional .env)."""
        if use_dotenv:
            load_dotenv()

        base_url = os.getenv("ZENTAO_BASE_URL", "").strip()
        if not base_url:
            raise ValueError("Missing ZENTAO_BASE_URL in environment.")

        product_raw = os.getenv("ZENTAO_PRODUCT_ID", "").strip()
        default_product_id: Optional[int] = None
        if product_raw:
            default_product_id = _read_int_env("ZENTAO_PRODUCT_ID", 0)

        return cls(
            base_url=base_url,
            api_prefix=os.getenv("ZENTAO_API_PREFIX", "").strip() or DEFAULT_API_PREFIX,
            token_path=os.getenv("ZENTAO_TOKEN_PATH", "").strip(),
            token_ttl_ms=_enforce_positive(
                "ZENTAO_TOKEN_TTL_MS",
                _read_int_env("ZENTAO_TOKEN_TTL_MS", DEFAULT_TOKEN_TTL_MS),
            ),
            timeout_ms=_enforce_positive(
                "ZENTAO_HTTP_TIMEOUT_MS",
                _read_int_env("ZENTAO_HTTP_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            ),
            account=os.getenv("ZENTAO_ACCOUNT", "").strip(),
            password=os.getenv("ZENTAO_PASSWORD", ""),
            default_product_id=default_product_id,
            expose_token=_get_bool_env("ZENTAO_EXPOSE_TOKEN", False),
        )


__all__ = ["ZenTaoConfig", "DEFAULT_API_PREFIX"]
