import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from app.services.errors import ParseFailure, ProviderUnavailable

logger = logging.getLogger("matchintel.http_client")

# Retryable HTTP status codes
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Extract wait time from Retry-After or X-RateLimit-Retry-After headers."""
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return float(value)
        except (ValueError, TypeError):
            continue
    return None


def _safe_url(url: str) -> str:
    """Strip query params (may contain API keys) for safe logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """httpx.AsyncClient wrapper with retry and exponential backoff.

    Circuit breaking is done by the callers (app.services.circuit_breaker).
    """

    def __init__(
        self,
        name: str,
        timeout: float = 10.0,
        max_retries: int = 1,
        base_delay: float = 1.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)
        self._name = name
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def name(self) -> str:
        return self._name

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry/backoff on transient failures."""
        last_exc: Optional[Exception] = None
        last_resp: Optional[httpx.Response] = None

        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.request(method, url, **kwargs)

                if resp.status_code not in _RETRYABLE_STATUSES:
                    return resp

                last_resp = resp

                if resp.status_code == 429:
                    logger.warning(
                        "[%s] Rate limited (429) on %s %s (attempt %d/%d)",
                        self._name, method, _safe_url(url),
                        attempt + 1, self._max_retries + 1,
                    )
                else:
                    logger.warning(
                        "[%s] Server error %d on %s %s (attempt %d/%d)",
                        self._name, resp.status_code, method, _safe_url(url),
                        attempt + 1, self._max_retries + 1,
                    )

                if attempt < self._max_retries:
                    delay = _parse_retry_after(resp)
                    if delay is None:
                        delay = self._base_delay * (2 ** attempt)
                    # Cap delay at 30s, callers run under a wait_for bound anyway
                    delay = min(delay, 30.0)
                    await asyncio.sleep(delay)

            except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as exc:
                last_exc = exc
                logger.warning(
                    "[%s] Network error on %s %s (attempt %d/%d): %s",
                    self._name, method, _safe_url(url),
                    attempt + 1, self._max_retries + 1, exc,
                )
                if attempt < self._max_retries:
                    delay = self._base_delay * (2 ** attempt)
                    await asyncio.sleep(delay)

        if last_resp is not None:
            logger.error(
                "[%s] All %d attempts failed for %s %s (last status: %d)",
                self._name, self._max_retries + 1, method, _safe_url(url),
                last_resp.status_code,
            )
            return last_resp

        logger.error(
            "[%s] All %d attempts failed for %s %s: %s",
            self._name, self._max_retries + 1, method, _safe_url(url), last_exc,
        )
        raise last_exc  # type: ignore[misc]

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs) -> tuple[Any, httpx.Response]:
        """GET and decode JSON, mapping every failure onto the pipeline taxonomy.

        Network errors and non-2xx statuses raise ProviderUnavailable, an
        undecodable body raises ParseFailure.
        """
        try:
            resp = await self.get(url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(self._name, f"network error: {exc}") from exc
        if resp.status_code >= 400:
            raise ProviderUnavailable(
                self._name,
                f"HTTP {resp.status_code} on {_safe_url(url)}",
                status_code=resp.status_code,
            )
        try:
            return resp.json(), resp
        except ValueError as exc:
            raise ParseFailure(self._name, f"non-JSON body from {_safe_url(url)}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
