"""Shared HTTP plumbing for the searcher backends."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fake_useragent import UserAgent

from onebot_sauce.config import Settings
from onebot_sauce.searchers.base import RequestFailed

logger = logging.getLogger(__name__)

FALLBACK_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/102.0.0.0 Safari/537.36"
)


def browser_user_agent() -> str:
    try:
        return UserAgent().random
    except Exception:
        logger.warning("user_agent_lookup_failed using_fallback=true")
        return FALLBACK_USER_AGENT


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": browser_user_agent()},
        proxy=settings.bot_proxy_url,
        timeout=settings.bot_search_timeout_seconds,
        follow_redirects=True,
        http2=True,
    )


async def fetch(
    http_client: httpx.AsyncClient,
    *,
    searcher: str,
    url: str,
    image_url: str,
    **kwargs: Any,
) -> httpx.Response:
    """GET ``url`` and turn transport errors and 4xx/5xx into ``RequestFailed``."""
    try:
        response = await http_client.get(url, **kwargs)
    except httpx.TimeoutException as exc:
        raise RequestFailed(
            f"{searcher} timed out: {exc.__class__.__name__}",
            searcher=searcher,
            url=image_url,
        ) from exc
    except httpx.HTTPError as exc:
        raise RequestFailed(
            f"{searcher} request failed: {exc}",
            searcher=searcher,
            url=image_url,
        ) from exc

    if response.status_code >= 400:
        raise RequestFailed(
            f"{searcher} responded with status {response.status_code}",
            searcher=searcher,
            url=image_url,
            status_code=response.status_code,
        )
    return response
