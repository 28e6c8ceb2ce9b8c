# backend/transport.py
"""
Request/response capability the sync controller talks through.

A Transport has one coroutine, request(method, path, body=None), that either
returns a Response or raises TransportError carrying a FailureKind. The
controller only depends on that contract; HttpxTransport is the HTTP
implementation used by the client.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

from errors import TransportError
from mealbot_logging import get_logger

logger = get_logger(__name__)


class FailureKind(Enum):
    ERROR = "error"
    TIMEOUT = "timeout"
    ABORT = "abort"


@dataclass(frozen=True)
class Response:
    status: int
    text: str

    def json(self) -> Any:
        return json.loads(self.text)


class Transport(Protocol):
    async def request(self, method: str, path: str, body: Any = None) -> Response: ...


class HttpxTransport:
    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
        self._client.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    async def request(self, method: str, path: str, body: Any = None) -> Response:
        if self._client.is_closed:
            raise TransportError(FailureKind.ABORT, f"{method} {path}: transport is closed")

        content = json.dumps(body) if body is not None else None
        start = time.perf_counter()
        try:
            resp = await self._client.request(method, path, content=content)
        except httpx.TimeoutException as e:
            raise TransportError(FailureKind.TIMEOUT, f"{method} {path}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(FailureKind.ERROR, f"{method} {path}: {e}") from e
        finally:
            logger.debug(
                "request_complete",
                method=method,
                path=path,
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )

        if resp.status_code >= 400:
            raise TransportError(
                FailureKind.ERROR,
                f"{method} {path}: HTTP {resp.status_code}",
                status=resp.status_code,
            )
        return Response(resp.status_code, resp.text)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()
