"""SauceNAO JSON API."""

from __future__ import annotations

import json
import logging
import math
from typing import Any

import httpx

from onebot_sauce.config import Settings
from onebot_sauce.parsing import as_dict, first_non_empty_str
from onebot_sauce.searchers.base import (
    RequestFailed,
    ResponseUnparseable,
    SourceImage,
    normalize_source_url,
)
from onebot_sauce.searchers.http import fetch
from onebot_sauce.searchers.registry import register

logger = logging.getLogger(__name__)

SEARCH_URL = "https://saucenao.com/search.php"


@register
class SauceNaoSearcher:
    name = "saucenao"

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        api_key: str,
        min_similarity: float = 95.0,
    ) -> None:
        self._http_client = http_client
        self._api_key = api_key
        self._min_similarity = min_similarity

    @classmethod
    def create(
        cls, settings: Settings, http_client: httpx.AsyncClient
    ) -> SauceNaoSearcher:
        return cls(
            http_client=http_client,
            api_key=settings.saucenao_api_key or "",
            min_similarity=settings.bot_saucenao_min_similarity,
        )

    async def search(self, image_url: str) -> SourceImage | None:
        response = await fetch(
            self._http_client,
            searcher=self.name,
            url=SEARCH_URL,
            image_url=image_url,
            params={
                "db": "999",
                "numres": "3",
                "api_key": self._api_key,
                "output_type": "2",
                "url": image_url,
            },
        )
        return self.parse_result(response.text, image_url)

    def parse_result(self, body: str, image_url: str) -> SourceImage | None:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ResponseUnparseable(
                f"saucenao returned invalid JSON: {exc}",
                searcher=self.name,
                url=image_url,
                raw_response=body,
            ) from exc

        payload = as_dict(payload)
        results = payload.get("results")
        if not isinstance(results, list):
            header = as_dict(payload.get("header"))
            status = header.get("status")
            if isinstance(status, int) and status != 0:
                raise RequestFailed(
                    f"saucenao reported status {status}: "
                    f"{header.get('message') or 'no message'}",
                    searcher=self.name,
                    url=image_url,
                )
            return None
        if not results:
            return None

        return self._best_match(as_dict(results[0]), body, image_url)

    def _best_match(
        self, result: dict[str, Any], body: str, image_url: str
    ) -> SourceImage | None:
        header = as_dict(result.get("header"))
        data = as_dict(result.get("data"))

        raw_similarity = header.get("similarity")
        try:
            similarity = float(str(raw_similarity))
        except ValueError as exc:
            raise ResponseUnparseable(
                f"saucenao similarity is not a number: {raw_similarity!r}",
                searcher=self.name,
                url=image_url,
                raw_response=body,
            ) from exc
        if not math.isfinite(similarity):
            raise ResponseUnparseable(
                f"saucenao similarity is not finite: {raw_similarity!r}",
                searcher=self.name,
                url=image_url,
                raw_response=body,
            )

        ext_urls = [
            url for url in data.get("ext_urls") or [] if isinstance(url, str) and url
        ]
        if similarity < self._min_similarity or not ext_urls:
            logger.info(
                "saucenao_below_threshold url=%s similarity=%.2f minimum=%.2f "
                "ext_url_count=%d",
                image_url,
                similarity,
                self._min_similarity,
                len(ext_urls),
            )
            return None

        metadata: dict[str, str] = {}
        author = first_non_empty_str(data, "author_name", "member_name", "creator")
        if author:
            metadata["作者"] = author.strip()
        title = first_non_empty_str(data, "title")
        if title:
            metadata["标题"] = title.strip()

        return SourceImage(
            url=normalize_source_url(ext_urls[0]),
            searcher_name=self.name,
            metadata=metadata,
        )
