"""iqdb.org multi-service search, scraped from HTML."""

from __future__ import annotations

import logging

import httpx
from lxml import etree, html  # type: ignore

from onebot_sauce.config import Settings
from onebot_sauce.searchers.base import (
    ResponseUnparseable,
    SourceImage,
    SourceNotLocatable,
    normalize_source_url,
)
from onebot_sauce.searchers.http import FALLBACK_USER_AGENT, fetch
from onebot_sauce.searchers.registry import register

logger = logging.getLogger(__name__)

SEARCH_URL = "https://iqdb.org/"
NO_MATCH_MARKER = "No relevant matches"


@register
class IqdbSearcher:
    name = "iqdb"

    def __init__(
        self, *, http_client: httpx.AsyncClient, timeout_seconds: float = 20.0
    ) -> None:
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds

    @classmethod
    def create(
        cls, settings: Settings, http_client: httpx.AsyncClient
    ) -> IqdbSearcher:
        return cls(
            http_client=http_client,
            timeout_seconds=settings.bot_iqdb_timeout_seconds,
        )

    async def search(self, image_url: str) -> SourceImage | None:
        response = await fetch(
            self._http_client,
            searcher=self.name,
            url=SEARCH_URL,
            image_url=image_url,
            params={"url": image_url},
            headers={"User-Agent": FALLBACK_USER_AGENT},
            timeout=self._timeout_seconds,
        )
        return self.parse_result(response.text, image_url)

    def parse_result(self, html_text: str, image_url: str) -> SourceImage | None:
        try:
            tree = html.fromstring(html_text)
        except (etree.LxmlError, ValueError) as exc:
            raise ResponseUnparseable(
                f"iqdb returned unparseable HTML: {exc}",
                searcher=self.name,
                url=image_url,
                raw_response=html_text,
            ) from exc

        # First block under #pages is "Your image", the best match follows.
        blocks = tree.xpath("//div[@id='pages']/div")
        if len(blocks) < 2:
            raise SourceNotLocatable(
                "failed to find the result table of iqdb",
                searcher=self.name,
                url=image_url,
                raw_response=html_text,
            )

        best_match = blocks[1]
        if NO_MATCH_MARKER in best_match.text_content():
            logger.debug("iqdb_no_relevant_match url=%s", image_url)
            return None

        hrefs = best_match.xpath(".//tr[2]//a/@href")
        source_url = normalize_source_url(str(hrefs[0])) if hrefs else ""
        if not source_url:
            raise SourceNotLocatable(
                "failed to find href of the result",
                searcher=self.name,
                url=image_url,
                raw_response=html_text,
            )

        return SourceImage(url=source_url, searcher_name=self.name)
