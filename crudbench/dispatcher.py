from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

import requests
from requests.adapters import HTTPAdapter

from .config import Operation

LOGGER = logging.getLogger("crudbench.benchmark.dispatch")

HEALTH_PATH = "/health"
BULK_READ_LIMIT = 1000


@dataclass(frozen=True)
class RequestOutcome:
    """Latency of one dispatched call, or the reason it failed."""

    latency_ms: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.latency_ms is not None

    @classmethod
    def success(cls, latency_ms: float) -> "RequestOutcome":
        return cls(latency_ms=max(latency_ms, 0.0))

    @classmethod
    def failure(cls, error: str) -> "RequestOutcome":
        return cls(error=error)


@dataclass(frozen=True)
class RequestShape:
    method: str
    path: str
    json: dict[str, Any] | None = None
    params: dict[str, Any] | None = None


def _create_shape() -> RequestShape:
    return RequestShape(
        "POST",
        "/products",
        json={
            "name": f"Product {uuid.uuid4()}",
            "description": "Benchmark product",
            "price": 99.99,
        },
    )


def _read_shape() -> RequestShape:
    return RequestShape("GET", "/products")


def _update_shape() -> RequestShape:
    return RequestShape(
        "PUT",
        f"/products/{uuid.uuid4()}",
        json={
            "name": "Updated Product",
            "description": "Updated description",
            "price": 149.99,
        },
    )


def _delete_shape() -> RequestShape:
    return RequestShape("DELETE", f"/products/{uuid.uuid4()}")


def _bulk_read_shape() -> RequestShape:
    return RequestShape("GET", "/products/bulk", params={"limit": BULK_READ_LIMIT})


OPERATION_SHAPES: dict[Operation, Callable[[], RequestShape]] = {
    Operation.CREATE: _create_shape,
    Operation.READ: _read_shape,
    Operation.UPDATE: _update_shape,
    Operation.DELETE: _delete_shape,
    Operation.BULK_READ: _bulk_read_shape,
}


def build_request(operation: Operation | str) -> RequestShape:
    return OPERATION_SHAPES[Operation.parse(operation)]()


def _ensure_2xx(response: requests.Response) -> None:
    """Raise HTTPError for any final status outside 2xx.

    ``raise_for_status`` only covers 4xx/5xx; an unfollowed 3xx or a 304 must
    not be counted as a successful call either.
    """
    response.raise_for_status()
    if not 200 <= response.status_code < 300:
        raise requests.HTTPError(
            f"{response.status_code} Non-2xx response for url: {response.url}",
            response=response,
        )


def create_session(pool_size: int = 10) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class RequestDispatcher:
    """Issue single CRUD calls against a target base URL and time them."""

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or create_session()
        self._timeout_s = timeout_s

    @property
    def base_url(self) -> str:
        return self._base_url

    def dispatch(self, operation: Operation | str) -> RequestOutcome:
        shape = build_request(operation)
        url = f"{self._base_url}{shape.path}"
        started = time.perf_counter()
        try:
            response = self._session.request(
                shape.method,
                url,
                json=shape.json,
                params=shape.params,
                timeout=self._timeout_s,
            )
            try:
                _ensure_2xx(response)
            finally:
                response.close()
        except requests.RequestException as exc:
            LOGGER.debug("%s %s failed: %s", shape.method, url, exc)
            return RequestOutcome.failure(f"{type(exc).__name__}: {exc}")
        return RequestOutcome.success((time.perf_counter() - started) * 1000.0)

    def probe(self) -> None:
        """Hit the liveness endpoint, raising on transport errors or non-2xx."""
        response = self._session.get(
            f"{self._base_url}{HEALTH_PATH}", timeout=self._timeout_s
        )
        try:
            _ensure_2xx(response)
        finally:
            response.close()

    def close(self) -> None:
        self._session.close()
