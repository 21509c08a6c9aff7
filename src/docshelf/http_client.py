from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping

import requests
from requests import exceptions as req_exc

from .config import DEFAULT_USER_AGENT
from .errors import EmptyResponseError, HTTPError, NetworkError
from .security import SecurityGate
from .urls import normalize_url

logger = logging.getLogger(__name__)

TRANSIENT_HTTP_STATUSES = {429, 500, 502, 503, 504}

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def _retry_after_seconds(headers: Mapping[str, str]) -> float | None:
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None
    try:
        return max(0.0, float(retry_after))
    except ValueError:
        return None


def _charset(content_type: str | None) -> str | None:
    for part in (content_type or "").split(";")[1:]:
        key, _, value = part.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip("\"'")
    return None


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: int
    headers: dict[str, str]
    fetched_at: float
    body: bytes

    @property
    def content_type(self) -> str | None:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return None

    @property
    def text(self) -> str:
        encoding = _charset(self.content_type) or "utf-8"
        try:
            return self.body.decode(encoding, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")


class HttpClient:
    """Fetches documents with a fixed timeout and exponential backoff.

    ``max_attempts`` counts the first request; the delay before attempt
    ``n + 1`` is ``backoff_base_s * 2 ** (n - 1)``.
    """

    def __init__(
        self,
        session: requests.Session,
        *,
        gate: SecurityGate,
        timeout_s: float = 30.0,
        max_attempts: int = 3,
        backoff_base_s: float = 2.0,
        user_agent: str = DEFAULT_USER_AGENT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._session = session
        self._gate = gate
        self._timeout_s = timeout_s
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_s = backoff_base_s
        self._headers = {"User-Agent": user_agent, "Accept": ACCEPT_HEADER}
        self._sleep = sleep

    def _backoff(self, attempt: int) -> float:
        return self._backoff_base_s * (2 ** (attempt - 1))

    async def fetch(self, url: str) -> FetchResult:
        normalized = normalize_url(url)
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                resp = await asyncio.to_thread(
                    self._session.get,
                    normalized,
                    timeout=self._timeout_s,
                    headers=self._headers,
                )
            except req_exc.RequestException as e:
                last_error = e
                if attempt >= self._max_attempts:
                    break
                wait_s = self._backoff(attempt)
                logger.warning(
                    "Fetch attempt %d for %s failed: %s; retrying in %.1fs",
                    attempt,
                    normalized,
                    e,
                    wait_s,
                )
                await self._sleep(wait_s)
                continue

            status = int(resp.status_code)
            if not 200 <= status <= 299:
                if status in TRANSIENT_HTTP_STATUSES and attempt < self._max_attempts:
                    retry_after = _retry_after_seconds(resp.headers)
                    wait_s = (
                        retry_after
                        if retry_after is not None
                        else self._backoff(attempt)
                    )
                    logger.warning(
                        "Fetch attempt %d for %s returned HTTP %d; "
                        "retrying in %.1fs",
                        attempt,
                        normalized,
                        status,
                        wait_s,
                    )
                    await self._sleep(wait_s)
                    continue
                raise HTTPError(status, url=normalized)

            body = resp.content or b""
            if not body:
                raise EmptyResponseError(url=normalized)
            self._gate.validate_content_size(len(body), url=normalized)

            return FetchResult(
                url=normalized,
                final_url=str(resp.url or normalized),
                status_code=status,
                headers={k: str(v) for k, v in resp.headers.items()},
                fetched_at=time.time(),
                body=body,
            )

        raise NetworkError(
            f"Failed to fetch {normalized}: {last_error}", url=normalized
        ) from last_error
