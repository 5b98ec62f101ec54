"""HTTP fetcher for HTML quote pages (client-injected for tests/offline)."""

from __future__ import annotations

import time
from typing import Dict, List, Optional

import httpx

from ingestion.models.domain import ScrapingSource
from ingestion.settings import DEFAULT_USER_AGENT, Settings, get_settings

from .base import BaseFetcher, FetchConnectionError, FetchHTTPStatusError, FetchTimeoutError


def browser_headers(user_agent: str = DEFAULT_USER_AGENT, accept_language: str = "es-BO,es;q=0.8") -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": accept_language,
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }


class HttpSourceFetcher(BaseFetcher):
    """Single-attempt GET with a browser-like header set.

    - with a client: the given ``httpx.Client`` is used as-is (tests pass one
      built on ``httpx.MockTransport``)
    - without one: a client is built from settings and owned by the fetcher
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        cfg = settings or get_settings()
        self.timeout = float(timeout if timeout is not None else cfg.scrape_timeout_seconds)
        self.headers = headers or browser_headers(cfg.scrape_user_agent, cfg.scrape_accept_language)
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.timeout, follow_redirects=True)

    def fetch(self, source: ScrapingSource) -> str:
        """GET the page within ``self.timeout`` seconds in total.

        httpx bounds each connect and read separately, so the body is streamed
        and the overall deadline is checked as chunks arrive.
        """
        deadline = time.monotonic() + self.timeout
        try:
            with self._client.stream("GET", source.url, headers=self.headers, timeout=self.timeout) as resp:
                if not resp.is_success:
                    raise FetchHTTPStatusError(source.name, resp.status_code, resp.reason_phrase)
                chunks: List[bytes] = []
                for chunk in resp.iter_bytes():
                    if time.monotonic() > deadline:
                        raise FetchTimeoutError(source.name, f"page not fully received within {self.timeout:g}s")
                    chunks.append(chunk)
                encoding = resp.encoding or "utf-8"
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(source.name, f"no response within {self.timeout:g}s") from exc
        except httpx.TransportError as exc:
            raise FetchConnectionError(source.name, f"no response, the page may be blocking requests ({exc})") from exc

        if time.monotonic() > deadline:
            raise FetchTimeoutError(source.name, f"page not fully received within {self.timeout:g}s")
        return b"".join(chunks).decode(encoding, errors="replace")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
