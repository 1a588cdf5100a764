"""
HTTP fetching for feeds, gateway probes and avatars.

All requests go through a shared httpx.AsyncClient. There is no retry
loop: a failed fetch is reported and the next periodic cycle tries again.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import httpx

from ..config import FetchConfig


@dataclass
class FetchResult:
    """Result of an HTTP fetch operation.

    Either content will be populated (status 200) or error will be populated,
    but never both. status_code may be None for network-level failures.

    Attributes:
        url: The URL that was fetched
        status_code: HTTP status code, or None if request failed before getting response
        content: The response body bytes, or None unless the status was 200
        error: Error message if fetch failed, None on success
    """
    url: str
    status_code: int | None
    content: bytes | None
    error: str | None

    @property
    def ok(self) -> bool:
        return self.status_code == 200 and self.error is None

    @property
    def sha256(self) -> str | None:
        if self.content is None:
            return None
        return hashlib.sha256(self.content).hexdigest()


def build_client(cfg: FetchConfig, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the shared async client with configured timeout and headers."""
    return httpx.AsyncClient(
        timeout=cfg.timeout_seconds,
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=True,
        trust_env=cfg.trust_env,
        transport=transport,
    )


async def fetch_url(
    client: httpx.AsyncClient,
    url: str,
    timeout: float | None = None,
) -> FetchResult:
    """GET a URL and classify the outcome.

    Only status 200 counts as success; any other status is returned with
    an error message and no content.

    Args:
        client: Shared async HTTP client
        url: The URL to fetch
        timeout: Optional per-request timeout overriding the client's

    Returns:
        FetchResult with content on success or error message on failure
    """
    try:
        if timeout is None:
            resp = await client.get(url)
        else:
            resp = await client.get(url, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        return FetchResult(url=url, status_code=None, content=None, error=f"{type(exc).__name__}: {exc}")

    if resp.status_code != 200:
        return FetchResult(
            url=url,
            status_code=resp.status_code,
            content=None,
            error=f"HTTP {resp.status_code}",
        )
    return FetchResult(url=url, status_code=200, content=resp.content, error=None)


def categorize_error(error: str | None, status_code: int | None) -> str:
    """Categorize fetch errors for better logging.

    Returns:
        Error category: "not_ready", "timeout", "network_failed", "unknown"
    """
    if status_code is not None and status_code != 200:
        return "not_ready"
    if not error:
        return "unknown"
    error_lower = error.lower()
    if "timeout" in error_lower or "timed out" in error_lower:
        return "timeout"
    if "connect" in error_lower or "connection" in error_lower:
        return "network_failed"
    return "unknown"
