"""ascii2d.net color search, scraped from HTML."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from lxml import etree, html  # type: ignore

from onebot_sauce.config import Settings
from onebot_sauce.searchers.base import (
    ResponseUnparseable,
    SourceImage,
    SourceNotLocatable,
    normalize_source_url,
)
from onebot_sauce.searchers.http import fetch
from onebot_sauce.searchers.registry import register

logger = logging.getLogger(__name__)

SEARCH_URL = "https://ascii2d.net/search/url/"

_ITEM_BOX = "//div[contains(concat(' ', normalize-space(@class), ' '), ' item-box ')]"
_DETAIL_LINKS = (
    ".//div[contains(concat(' ', normalize-space(@class), ' '), ' detail-box ')]//a"
)


@register
class Ascii2dSearcher:
    name = "ascii2d"

    def __init__(self, *, http_client: httpx.AsyncClient) -> None:
        self._http_client = http_client

    @classmethod
    def create(
        cls, settings: Settings, http_client: httpx.AsyncClient
    ) -> Ascii2dSearcher:
        return cls(http_client=http_client)

    async def search(self, image_url: str) -> SourceImage | None:
        response = await fetch(
            self._http_client,
            searcher=self.name,
            url=f"{SEARCH_URL}{quote(image_url, safe='')}",
            image_url=image_url,
        )
        return self.parse_result(response.text, image_url)

    def parse_result(self, html_text: str, image_url: str) -> SourceImage | None:
        try:
            tree = html.fromstring(html_text)
        except (etree.LxmlError, ValueError) as exc:
            raise ResponseUnparseable(
                f"ascii2d returned unparseable HTML: {exc}",
                searcher=self.name,
                url=image_url,
                raw_response=html_text,
            ) from exc

        # The first item box echoes the uploaded image, hits start at the second.
        links: list = []
        source_url = ""
        for item_box in tree.xpath(_ITEM_BOX)[1:]:
            links = item_box.xpath(_DETAIL_LINKS)
            source_url = normalize_source_url(links[0].get("href", "")) if links else ""
            if source_url:
                break
        if not source_url:
            raise SourceNotLocatable(
                "failed to find href for ascii2d result",
                searcher=self.name,
                url=image_url,
                raw_response=html_text,
            )

        metadata: dict[str, str] = {}
        if len(links) > 1:
            author = " ".join(links[1].text_content().split())
            if author:
                metadata["作者"] = author

        return SourceImage(url=source_url, searcher_name=self.name, metadata=metadata)
