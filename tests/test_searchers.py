from __future__ import annotations

import json

import httpx
import pytest

from onebot_sauce.searchers.ascii2d import Ascii2dSearcher
from onebot_sauce.searchers.base import (
    RequestFailed,
    ResponseUnparseable,
    SourceNotLocatable,
    normalize_source_url,
)
from onebot_sauce.searchers.iqdb import IqdbSearcher
from onebot_sauce.searchers.saucenao import SauceNaoSearcher

IMAGE_URL = "https://example.com/a.jpg"

ASCII2D_HIT = """
<html><body>
<div class="row item-box">
  <div class="info-box"><div class="detail-box"><h6>uploaded image</h6></div></div>
</div>
<div class="row item-box">
  <div class="info-box">
    <div class="detail-box gray-link">
      <h6>
        <a href="https://www.pixiv.net/artworks/99118150">Sunset</a>
        <a href="https://www.pixiv.net/users/42">Some  Artist</a>
        <small>pixiv</small>
      </h6>
    </div>
  </div>
</div>
</body></html>
"""

IQDB_HIT = """
<html><body><div id="pages">
<div><table><tr><th>Your image</th></tr></table></div>
<div><table>
  <tr><th>Best match</th></tr>
  <tr><td class="image"><a href="//danbooru.donmai.us/posts/123">thumb</a></td></tr>
  <tr><td>96% similarity</td></tr>
</table></div>
</div></body></html>
"""

IQDB_NO_MATCH = """
<html><body><div id="pages">
<div><table><tr><th>Your image</th></tr></table></div>
<div><table><tr><th>No relevant matches</th></tr></table></div>
</div></body></html>
"""


def _saucenao_body(similarity: str, **data: object) -> str:
    return json.dumps(
        {
            "header": {"status": 0},
            "results": [{"header": {"similarity": similarity}, "data": data}],
        }
    )


def test_normalize_source_url_protocol_relative() -> None:
    assert normalize_source_url("//example.com/x") == "https://example.com/x"
    assert normalize_source_url(" https://example.com/x ") == "https://example.com/x"


def test_ascii2d_parses_second_item_box() -> None:
    searcher = Ascii2dSearcher(http_client=httpx.AsyncClient())

    image = searcher.parse_result(ASCII2D_HIT, IMAGE_URL)

    assert image is not None
    assert image.url == "https://www.pixiv.net/artworks/99118150"
    assert image.searcher_name == "ascii2d"
    assert image.metadata == {"作者": "Some Artist"}


def test_ascii2d_skips_hits_without_source_links() -> None:
    searcher = Ascii2dSearcher(http_client=httpx.AsyncClient())
    page = """
<html><body>
<div class="item-box"><div class="detail-box">uploaded image</div></div>
<div class="item-box"><div class="detail-box"><h6>no source info</h6></div></div>
<div class="item-box">
  <div class="detail-box">
    <a href="https://www.pixiv.net/artworks/1">Title</a>
    <a href="https://www.pixiv.net/users/2">Third Box Artist</a>
  </div>
</div>
</body></html>
"""

    image = searcher.parse_result(page, IMAGE_URL)

    assert image is not None
    assert image.url == "https://www.pixiv.net/artworks/1"
    assert image.metadata == {"作者": "Third Box Artist"}


def test_ascii2d_missing_link_is_not_locatable() -> None:
    searcher = Ascii2dSearcher(http_client=httpx.AsyncClient())
    only_upload = '<html><body><div class="item-box"></div></body></html>'

    with pytest.raises(SourceNotLocatable) as exc:
        searcher.parse_result(only_upload, IMAGE_URL)

    assert exc.value.url == IMAGE_URL
    assert exc.value.raw_response == only_upload
    assert exc.value.searcher == "ascii2d"


def test_ascii2d_empty_document_is_unparseable() -> None:
    searcher = Ascii2dSearcher(http_client=httpx.AsyncClient())

    with pytest.raises(ResponseUnparseable) as exc:
        searcher.parse_result("", IMAGE_URL)

    assert exc.value.raw_response == ""


@pytest.mark.anyio
async def test_ascii2d_search_quotes_image_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=ASCII2D_HIT)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        image = await Ascii2dSearcher(http_client=client).search(IMAGE_URL)

    assert image is not None
    assert seen[0].url.host == "ascii2d.net"
    assert seen[0].url.raw_path.startswith(b"/search/url/https%3A%2F%2Fexample.com")


def test_iqdb_normalizes_protocol_relative_href() -> None:
    searcher = IqdbSearcher(http_client=httpx.AsyncClient())

    image = searcher.parse_result(IQDB_HIT, IMAGE_URL)

    assert image is not None
    assert image.url == "https://danbooru.donmai.us/posts/123"
    assert image.metadata == {}


def test_iqdb_no_relevant_match_is_not_found() -> None:
    searcher = IqdbSearcher(http_client=httpx.AsyncClient())

    assert searcher.parse_result(IQDB_NO_MATCH, IMAGE_URL) is None


def test_iqdb_unexpected_layout_is_not_locatable() -> None:
    searcher = IqdbSearcher(http_client=httpx.AsyncClient())

    with pytest.raises(SourceNotLocatable):
        searcher.parse_result("<html><body><p>maintenance</p></body></html>", IMAGE_URL)


@pytest.mark.anyio
async def test_iqdb_search_sends_url_and_browser_agent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=IQDB_HIT)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        image = await IqdbSearcher(http_client=client).search(IMAGE_URL)

    assert image is not None
    assert seen[0].url.params["url"] == IMAGE_URL
    assert "Mozilla/5.0" in seen[0].headers["User-Agent"]


@pytest.mark.anyio
async def test_iqdb_timeout_is_request_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RequestFailed) as exc:
            await IqdbSearcher(http_client=client).search(IMAGE_URL)

    assert exc.value.searcher == "iqdb"
    assert exc.value.url == IMAGE_URL
    assert exc.value.status_code is None


def test_saucenao_confident_match() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")
    body = _saucenao_body(
        "96.12",
        ext_urls=["https://www.pixiv.net/artworks/1", "https://other.example"],
        title="Sunset",
        author_name="Artist",
    )

    image = searcher.parse_result(body, IMAGE_URL)

    assert image is not None
    assert image.url == "https://www.pixiv.net/artworks/1"
    assert image.metadata == {"作者": "Artist", "标题": "Sunset"}


def test_saucenao_below_threshold_is_not_found() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")
    body = _saucenao_body("62.5", ext_urls=["https://www.pixiv.net/artworks/1"])

    assert searcher.parse_result(body, IMAGE_URL) is None


def test_saucenao_match_without_links_is_not_found() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")

    assert searcher.parse_result(_saucenao_body("99.0"), IMAGE_URL) is None


def test_saucenao_empty_results_is_not_found() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")
    body = json.dumps({"header": {"status": 0}, "results": []})

    assert searcher.parse_result(body, IMAGE_URL) is None


def test_saucenao_invalid_json_is_unparseable() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")

    with pytest.raises(ResponseUnparseable) as exc:
        searcher.parse_result("<html>rate limited</html>", IMAGE_URL)

    assert exc.value.raw_response == "<html>rate limited</html>"


def test_saucenao_bad_similarity_is_unparseable() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")

    with pytest.raises(ResponseUnparseable):
        searcher.parse_result(_saucenao_body("n/a", ext_urls=["x"]), IMAGE_URL)


@pytest.mark.parametrize("similarity", ["nan", "inf", "-inf"])
def test_saucenao_non_finite_similarity_is_unparseable(similarity: str) -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")

    with pytest.raises(ResponseUnparseable):
        searcher.parse_result(_saucenao_body(similarity, ext_urls=["x"]), IMAGE_URL)


def test_saucenao_error_header_is_request_failed() -> None:
    searcher = SauceNaoSearcher(http_client=httpx.AsyncClient(), api_key="k")
    body = json.dumps({"header": {"status": -2, "message": "Invalid API key"}})

    with pytest.raises(RequestFailed) as exc:
        searcher.parse_result(body, IMAGE_URL)

    assert "Invalid API key" in str(exc.value)


@pytest.mark.anyio
async def test_saucenao_search_params_and_http_error() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(429, text="Too many requests")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        searcher = SauceNaoSearcher(http_client=client, api_key="secret")
        with pytest.raises(RequestFailed) as exc:
            await searcher.search(IMAGE_URL)

    assert exc.value.status_code == 429
    params = seen[0].url.params
    assert params["api_key"] == "secret"
    assert params["output_type"] == "2"
    assert params["db"] == "999"
    assert params["url"] == IMAGE_URL
