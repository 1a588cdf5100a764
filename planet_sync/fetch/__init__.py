"""
HTTP fetching.

This package wraps httpx for feed downloads, gateway probes
and avatar fetches.
"""

from .fetcher import FetchResult, build_client, categorize_error, fetch_url

__all__ = [
    "FetchResult",
    "build_client",
    "categorize_error",
    "fetch_url",
]
