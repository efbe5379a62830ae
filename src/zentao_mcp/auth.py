"""Token lifecycle for the ZenTao v1 API.

A ``TokenManager`` owns exactly one cached credential. Refreshing is not
single-flight: two callers that both observe an expired credential will both
log in, and the last login wins. ZenTao hands out a fresh token per login, so
the redundant call is harmless.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional, Protocol

from .errors import MissingCredentialsError, TokenFieldMissingError
from .extract import extract_token
from .observability import log_event

log = logging.getLogger("zentao_mcp.auth")


class Clock(Protocol):
    """Callable returning seconds from an arbitrary, monotonic origin."""

    def __call__(self) -> float: ...


class _Sender(Protocol):
    def __call__(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        tool: Optional[str] = None,
    ) -> Awaitable[Any]: ...


@dataclass(frozen=True)
class Credential:
    token: str
    obtained_at: float


@dataclass(frozen=True)
class TokenGrant:
    token: str
    source: str  # "cache" | "login"

    def masked(self) -> Dict[str, str]:
        return {"token": mask_token(self.token), "source": self.source}

    def as_dict(self) -> Dict[str, str]:
        return {"token": self.token, "source": self.source}


def mask_token(token: str) -> str:
    if not token:
        return ""
    if len(token) <= 10:
        return "…"
    return f"{token[:6]}…{token[-4:]}"


class TokenManager:
    def __init__(
        self,
        *,
        token_url: str,
        account: str,
        password: str,
        ttl_seconds: float,
        send: _Sender,
        clock: Optional[Clock] = None,
    ):
        self.token_url = token_url
        self.account = account or ""
        self._password = password or ""
        self.ttl_seconds = ttl_seconds
        self._send = send
        self._clock = clock or time.monotonic
        self._credential: Optional[Credential] = None

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def is_expired(self) -> bool:
        cred = self._credential
        if cred is None or not cred.token:
            return True
        return (self._clock() - cred.obtained_at) > self.ttl_seconds

    def invalidate(self) -> None:
        self._credential = None

    async def get_token(self, force: bool = False) -> TokenGrant:
        cred = self._credential
        if not force and cred is not None and not self.is_expired():
            return TokenGrant(token=cred.token, source="cache")

        token = await self._login()
        self._credential = Credential(token=token, obtained_at=self._clock())
        log_event("token_refresh", logger=log, source="login", forced=force)
        return TokenGrant(token=token, source="login")

    async def _login(self) -> str:
        if not self.account or not self._password:
            raise MissingCredentialsError(
                "Need ZENTAO_ACCOUNT and ZENTAO_PASSWORD to request a token."
            )

        resp = await self._send(
            "POST",
            self.token_url,
            body={"account": self.account, "password": self._password},
            tool="get_token",
        )
        token = extract_token(resp.data)
        if not token:
            raise TokenFieldMissingError(
                f"Token response from {self.token_url} does not contain a token field "
                "(tried token, data.token, data.session.token)."
            )
        return token


__all__ = ["Clock", "Credential", "TokenGrant", "TokenManager", "mask_token"]
