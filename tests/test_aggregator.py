from __future__ import annotations

import asyncio

import pytest

from onebot_sauce.aggregator import SourceAggregator
from onebot_sauce.searchers.base import (
    ORIGIN_METADATA_KEY,
    RequestFailed,
    ResponseUnparseable,
    SourceImage,
)

IMAGE_URL = "https://example.com/a.jpg"


class StaticSearcher:
    def __init__(
        self,
        name: str,
        *,
        result: SourceImage | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self._result = result
        self._error = error
        self._delay = delay
        self.calls: list[str] = []

    async def search(self, image_url: str) -> SourceImage | None:
        self.calls.append(image_url)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._result


def _image(
    name: str, url: str, metadata: dict[str, str] | None = None
) -> SourceImage:
    return SourceImage(url=url, searcher_name=name, metadata=dict(metadata or {}))


@pytest.mark.anyio
async def test_found_and_failed_keeps_only_found_tagged() -> None:
    found = StaticSearcher("alpha", result=_image("alpha", "https://src.example/1"))
    failed = StaticSearcher(
        "beta",
        error=RequestFailed("boom", searcher="beta", url=IMAGE_URL),
    )

    results = await SourceAggregator([found, failed]).search_image(IMAGE_URL)

    assert len(results) == 1
    assert results[0].url == "https://src.example/1"
    assert results[0].searcher_name == "alpha"
    assert results[0].metadata[ORIGIN_METADATA_KEY] == "alpha"


@pytest.mark.anyio
async def test_every_backend_failing_returns_empty_list() -> None:
    searchers = [
        StaticSearcher("a", error=RequestFailed("x", searcher="a", url=IMAGE_URL)),
        StaticSearcher(
            "b",
            error=ResponseUnparseable(
                "y", searcher="b", url=IMAGE_URL, raw_response=""
            ),
        ),
        StaticSearcher("c", error=ValueError("bug in scraper")),
    ]

    results = await SourceAggregator(searchers).search_image(IMAGE_URL)

    assert results == []
    assert all(searcher.calls == [IMAGE_URL] for searcher in searchers)


@pytest.mark.anyio
async def test_result_order_follows_registration_not_completion() -> None:
    slow = StaticSearcher(
        "slow", result=_image("slow", "https://slow.example"), delay=0.05
    )
    fast = StaticSearcher("fast", result=_image("fast", "https://fast.example"))

    results = await SourceAggregator([slow, fast]).search_image(IMAGE_URL)

    assert [result.searcher_name for result in results] == ["slow", "fast"]


@pytest.mark.anyio
async def test_searchers_run_concurrently() -> None:
    started = asyncio.Event()

    class WaitsForPeer:
        name = "waiter"

        async def search(self, image_url: str) -> SourceImage | None:
            await started.wait()
            return _image(self.name, "https://waiter.example")

    class SignalsPeer:
        name = "signaller"

        async def search(self, image_url: str) -> SourceImage | None:
            started.set()
            return None

    aggregator = SourceAggregator([WaitsForPeer(), SignalsPeer()])
    results = await asyncio.wait_for(aggregator.search_image(IMAGE_URL), timeout=2)

    assert [result.url for result in results] == ["https://waiter.example"]


@pytest.mark.anyio
async def test_collect_outcomes_distinguishes_not_found_from_failed() -> None:
    error = RequestFailed("timeout", searcher="b", url=IMAGE_URL)
    searchers = [
        StaticSearcher("a"),
        StaticSearcher("b", error=error),
        StaticSearcher("c", result=_image("c", "https://c.example", {"作者": "X"})),
    ]

    outcomes = await SourceAggregator(searchers).collect_outcomes(IMAGE_URL)

    assert [outcome.status for outcome in outcomes] == ["not_found", "failed", "found"]
    assert outcomes[1].error is error
    assert outcomes[2].image is not None
    assert outcomes[2].image.metadata == {"作者": "X", ORIGIN_METADATA_KEY: "c"}


@pytest.mark.anyio
async def test_result_count_bounded_by_searcher_count() -> None:
    searchers = [
        StaticSearcher(name, result=_image(name, f"https://{name}.example"))
        for name in ("a", "b", "c")
    ]
    aggregator = SourceAggregator(searchers)

    results = await aggregator.search_image(IMAGE_URL)

    assert len(results) <= len(aggregator.searcher_names)
    assert aggregator.searcher_names == ("a", "b", "c")


@pytest.mark.anyio
async def test_origin_tag_overrides_searcher_supplied_name() -> None:
    mislabeled = StaticSearcher("real", result=_image("other", "https://x.example"))

    results = await SourceAggregator([mislabeled]).search_image(IMAGE_URL)

    assert results[0].searcher_name == "real"
    assert results[0].metadata[ORIGIN_METADATA_KEY] == "real"
