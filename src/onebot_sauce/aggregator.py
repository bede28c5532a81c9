from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from onebot_sauce.searchers.base import (
    ImageSearcher,
    SearcherError,
    SearchOutcome,
    SourceImage,
)

logger = logging.getLogger(__name__)


class SourceAggregator:
    """Fans one image URL out to every searcher and joins all answers.

    Every searcher is awaited; a slow or broken backend only removes its
    own answer from the result list. Results keep the searchers' order.
    """

    def __init__(self, searchers: Sequence[ImageSearcher]) -> None:
        self._searchers = tuple(searchers)

    @property
    def searcher_names(self) -> tuple[str, ...]:
        return tuple(searcher.name for searcher in self._searchers)

    async def search_image(self, image_url: str) -> list[SourceImage]:
        outcomes = await self.collect_outcomes(image_url)
        found = [
            outcome.image
            for outcome in outcomes
            if outcome.status == "found" and outcome.image is not None
        ]
        logger.info(
            "aggregate_search_complete url=%s searcher_count=%d found=%d "
            "not_found=%d failed=%d",
            image_url,
            len(outcomes),
            len(found),
            sum(1 for outcome in outcomes if outcome.status == "not_found"),
            sum(1 for outcome in outcomes if outcome.status == "failed"),
        )
        return found

    async def collect_outcomes(self, image_url: str) -> list[SearchOutcome]:
        return list(
            await asyncio.gather(
                *(self._run_one(searcher, image_url) for searcher in self._searchers)
            )
        )

    async def _run_one(self, searcher: ImageSearcher, image_url: str) -> SearchOutcome:
        logger.info("searcher_started searcher=%s url=%s", searcher.name, image_url)
        try:
            image = await searcher.search(image_url)
        except SearcherError as exc:
            logger.warning(
                "searcher_failed searcher=%s url=%s kind=%s detail=%s",
                searcher.name,
                image_url,
                exc.__class__.__name__,
                exc,
            )
            return SearchOutcome.failed(searcher.name, exc)
        except Exception as exc:
            logger.exception(
                "searcher_unexpected_error searcher=%s url=%s", searcher.name, image_url
            )
            return SearchOutcome.failed(searcher.name, exc)

        if image is None:
            logger.info(
                "searcher_not_found searcher=%s url=%s", searcher.name, image_url
            )
            return SearchOutcome.not_found(searcher.name)

        logger.info(
            "searcher_found searcher=%s url=%s source=%s",
            searcher.name,
            image_url,
            image.url,
        )
        return SearchOutcome.found(searcher.name, image.with_origin(searcher.name))
