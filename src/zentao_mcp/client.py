import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .auth import Clock, TokenGrant, TokenManager
from .config import ZenTaoConfig
from .errors import (
    ZenTaoClientError,
    ZenTaoHTTPError,
    ZenTaoTimeoutError,
    ZenTaoTransportError,
)
from .observability import log_event
from .urls import build_url, is_absolute_url

TOKEN_HEADER = "Token"
MAX_ERROR_BODY_CHARS = 2000

_SCOPE_REQUIRED = re.compile(
    r"(need|require|required|must|missing)[^.]{0,40}product"
    r"|product[^.]{0,40}(need|required|must|missing)"
    r"|(需要|必须|请先?选择|缺少)[^。]{0,20}产品|产品[^。]{0,20}(不能为空|必填|为空|缺失)",
    re.IGNORECASE,
)

ScopePredicate = Callable[[ZenTaoHTTPError], bool]


def product_scope_required(exc: ZenTaoHTTPError) -> bool:
    """Default heuristic: the upstream error text says a product is mandatory."""
    texts = [exc.body or ""]
    # PHP escapes non-ASCII in JSON, so Chinese messages only show once decoded
    if isinstance(exc.data, (dict, list)):
        texts.append(json.dumps(exc.data, ensure_ascii=False))
    return any(_SCOPE_REQUIRED.search(text) for text in texts)


def truncate(text: str, limit: int = MAX_ERROR_BODY_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


@dataclass(frozen=True)
class ApiResponse:
    status: int
    headers: Dict[str, str]
    data: Any

    def as_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "headers": dict(self.headers), "data": self.data}


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 0  # total extra attempts; opt-in
    backoff_seconds: float = 0.2  # 0.2, 0.4, 0.6...
    retry_statuses: frozenset[int] = frozenset({502, 503, 504})


class ZenTaoClient:
    """
    Shared HTTP client for the ZenTao REST API v1.
    - Owns its token cache, base URL, API prefix and timeout
    - Every call() is authenticated through the Token header
    - Returns ApiResponse envelopes; tools own domain decisions
    """

    def __init__(
        self,
        *,
        base_url: str,
        account: str = "",
        password: str = "",
        api_prefix: str = "/api.php/v1",
        token_path: Optional[str] = None,
        token_ttl_seconds: float = 3000.0,
        timeout_seconds: float = 30.0,
        default_product_id: Optional[int] = None,
        expose_token: bool = False,
        scope_required: Optional[ScopePredicate] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        base_url = (base_url or "").strip().rstrip("/")
        if not base_url:
            raise ValueError("base_url must be provided.")

        self.base_url = base_url
        self.api_prefix = (api_prefix or "").rstrip("/")
        self.token_path = token_path or f"{self.api_prefix}/tokens"
        self.timeout_seconds = timeout_seconds
        self.account = account or ""
        self.default_product_id = default_product_id
        self.expose_token = expose_token
        self.scope_required: ScopePredicate = scope_required or product_scope_required
        self.log = logger or logging.getLogger("zentao_mcp.client")

        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=timeout_seconds,
        )

        self.tokens = TokenManager(
            token_url=self._token_url(),
            account=self.account,
            password=password,
            ttl_seconds=token_ttl_seconds,
            send=self.send,
            clock=clock,
        )

    @classmethod
    def from_config(cls, config: ZenTaoConfig, **kwargs) -> "ZenTaoClient":
        return cls(
            base_url=config.base_url,
            account=config.account,
            password=config.password,
            api_prefix=config.api_prefix,
            token_path=config.token_path,
            token_ttl_seconds=config.token_ttl_seconds,
            timeout_seconds=config.timeout_seconds,
            default_product_id=config.default_product_id,
            expose_token=config.expose_token,
            **kwargs,
        )

    @classmethod
    def from_env(cls, **kwargs) -> "ZenTaoClient":
        return cls.from_config(ZenTaoConfig.from_env(), **kwargs)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "ZenTaoClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _token_url(self) -> str:
        if is_absolute_url(self.token_path):
            return self.token_path
        return f"{self.base_url}/{self.token_path.lstrip('/')}"

    def url_for(self, path: str, query: Optional[Mapping[str, Any]] = None) -> str:
        return build_url(self.base_url, self.api_prefix, path, query)

    async def get_token(self, force: bool = False) -> TokenGrant:
        return await self.tokens.get_token(force=force)

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        tool: Optional[str] = None,
    ) -> ApiResponse:
        """
        Single HTTP exchange.
        - Raises ZenTaoTimeoutError when the timeout elapses (no retry here)
        - Raises ZenTaoTransportError on other network failures
        - Raises ZenTaoHTTPError on non-2xx responses, body truncated
        - Returns ApiResponse with JSON decoded only for JSON content types
        """
        method = method.upper()
        req_headers = dict(headers or {})
        content: Optional[bytes] = None
        if body is not None:
            req_headers["Content-Type"] = "application/json"
            content = json.dumps(body, ensure_ascii=False).encode("utf-8")

        endpoint = httpx.URL(url).path
        start = time.perf_counter()
        try:
            resp = await self.http.request(
                method, url, headers=req_headers, content=content
            )
        except httpx.TimeoutException as exc:
            self._log_call(tool, method, endpoint, start, exc=exc)
            raise ZenTaoTimeoutError(
                f"Request timeout after {self.timeout_seconds}s calling {method} {url}"
            ) from exc
        except httpx.HTTPError as exc:
            self._log_call(tool, method, endpoint, start, exc=exc)
            raise ZenTaoTransportError(
                f"HTTPX error calling {method} {url}: {exc}"
            ) from exc

        self._log_call(tool, method, endpoint, start, status=resp.status_code)

        data = self._decode(resp)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise ZenTaoHTTPError(
                status_code=resp.status_code,
                method=method,
                url=str(resp.request.url),
                body=truncate(resp.text or ""),
                data=data,
            )

        return ApiResponse(
            status=resp.status_code, headers=dict(resp.headers), data=data
        )

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        text = resp.text or ""
        content_type = resp.headers.get("content-type", "")
        if "json" not in content_type.lower():
            return text
        try:
            return json.loads(text)
        except ValueError:
            # A broken JSON body must not hide the HTTP status behind a parse error.
            return text

    def _log_call(
        self,
        tool: Optional[str],
        method: str,
        endpoint: str,
        start: float,
        *,
        status: Optional[int] = None,
        exc: Optional[BaseException] = None,
    ) -> None:
        duration_ms = int((time.perf_counter() - start) * 1000)
        if exc is not None:
            log_event(
                "zentao_call",
                level=logging.WARNING,
                tool=tool,
                method=method,
                endpoint=endpoint,
                status="exception",
                error_type=type(exc).__name__,
                duration_ms=duration_ms,
            )
            return
        log_event(
            "zentao_call",
            tool=tool,
            method=method,
            endpoint=endpoint,
            status=status,
            duration_ms=duration_ms,
        )

    async def call(
        self,
        path: str,
        method: str = "GET",
        *,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        tool: Optional[str] = None,
    ) -> ApiResponse:
        """
        Authenticated request against the API prefix.
        Token and transport errors propagate unchanged.
        """
        url = self.url_for(path, query)
        grant = await self.tokens.get_token()
        return await self.send(
            method,
            url,
            headers={TOKEN_HEADER: grant.token},
            body=body,
            tool=tool,
        )

    async def call_with_retry(
        self,
        path: str,
        method: str = "GET",
        *,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        tool: Optional[str] = None,
        retry: Optional[RetryConfig] = None,
    ) -> ApiResponse:
        """
        call() with linear backoff on timeouts, network errors and
        retry_statuses. Other failures are raised on the first attempt.
        """
        retry = retry or RetryConfig()
        attempt = 0
        while True:
            try:
                return await self.call(
                    path, method, query=query, body=body, tool=tool
                )
            except ZenTaoClientError as exc:
                if attempt >= retry.max_retries or not self._is_retryable(exc, retry):
                    raise
                log_event(
                    "zentao_retry",
                    logger=self.log,
                    level=logging.DEBUG,
                    tool=tool,
                    method=method.upper(),
                    endpoint=path,
                    attempt=attempt + 1,
                    error_type=type(exc).__name__,
                )
                await asyncio.sleep(retry.backoff_seconds * (attempt + 1))
                attempt += 1

    @staticmethod
    def _is_retryable(exc: ZenTaoClientError, retry: RetryConfig) -> bool:
        if isinstance(exc, ZenTaoTransportError):
            return True
        if isinstance(exc, ZenTaoHTTPError):
            return exc.status_code in retry.retry_statuses
        return False

    async def get(
        self,
        path: str,
        *,
        query: Optional[Mapping[str, Any]] = None,
        tool: Optional[str] = None,
    ) -> ApiResponse:
        return await self.call(path, "GET", query=query, tool=tool)

    async def post(
        self, path: str, *, body: Any, tool: Optional[str] = None
    ) -> ApiResponse:
        return await self.call(path, "POST", body=body, tool=tool)
