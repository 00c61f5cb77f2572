from __future__ import annotations

import json
import time
from dataclasses import dataclass

import httpx


BMKG_BASE_URL = "https://data.bmkg.go.id/DataMKG/TEWS/"

FEED_URLS: dict[str, str] = {
    "latest": BMKG_BASE_URL + "autogempa.json",
    "recent": BMKG_BASE_URL + "gempaterkini.json",
    "felt": BMKG_BASE_URL + "gempadirasakan.json",
}

FETCH_TIMEOUT_SECONDS = 10.0


class FeedError(Exception):
    """Raised when a BMKG feed cannot be fetched or decoded.

    The caller decides whether to retry; ``status_code`` is ``None`` for
    transport failures.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        status_code: int | None = None,
        elapsed_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.elapsed_ms = elapsed_ms


@dataclass(frozen=True)
class FetchResult:
    kind: str
    url: str
    status_code: int
    document: object
    elapsed_ms: int


def feed_url(kind: str) -> str:
    try:
        return FEED_URLS[kind]
    except KeyError:
        raise ValueError(f"unknown feed kind: {kind}") from None


async def fetch_feed(
    client: httpx.AsyncClient,
    kind: str,
    *,
    user_agent: str,
) -> FetchResult:
    url = feed_url(kind)
    headers = {
        "User-Agent": user_agent,
        "Accept": "application/json",
    }

    started = time.perf_counter()
    try:
        response = await client.get(
            url, headers=headers, timeout=httpx.Timeout(FETCH_TIMEOUT_SECONDS)
        )
    except httpx.TimeoutException as e:
        raise FeedError(kind, f"BMKG {kind} feed timed out: {e.__class__.__name__}") from e
    except httpx.RequestError as e:
        raise FeedError(kind, f"BMKG {kind} feed unreachable: {e.__class__.__name__}") from e

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    if not response.is_success:
        raise FeedError(
            kind,
            f"BMKG API returned status: {response.status_code}",
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

    try:
        document = response.json()
    except (ValueError, json.JSONDecodeError) as e:
        raise FeedError(
            kind,
            f"BMKG {kind} feed returned invalid JSON: {e.__class__.__name__}",
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        ) from e

    return FetchResult(
        kind=kind,
        url=url,
        status_code=response.status_code,
        document=document,
        elapsed_ms=elapsed_ms,
    )
