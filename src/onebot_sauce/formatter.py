from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from urllib.parse import parse_qs, urlsplit

from onebot_sauce.config import DEFAULT_PIXIV_MIRROR_BASE_URL
from onebot_sauce.searchers.base import SourceImage

NOT_FOUND_TEXT = "并没有找到出处"
MIRROR_LABEL = "镜像"

_NUMERIC_ID = re.compile(r"^\d+$")


def reply_marker(message_id: int) -> str:
    return f"[CQ:reply,id={message_id}]"


def format_reply(
    message_id: int,
    results: Sequence[SourceImage],
    *,
    mirror_base_url: str = DEFAULT_PIXIV_MIRROR_BASE_URL,
) -> str:
    """Render the threaded answer to a source request."""
    if not results:
        return f"{reply_marker(message_id)}{NOT_FOUND_TEXT}"

    blocks = [
        format_source(result, mirror_base_url=mirror_base_url) for result in results
    ]
    header = f"找到了 {len(results)} 个出处"
    return reply_marker(message_id) + header + "\n\n" + "\n\n".join(blocks)


def format_source(
    result: SourceImage, *, mirror_base_url: str = DEFAULT_PIXIV_MIRROR_BASE_URL
) -> str:
    lines = [f"[{result.searcher_name}]"]
    metadata = serialize_metadata(result.metadata)
    if metadata:
        lines.append(metadata)
    lines.append(result.url)

    artwork_id = extract_pixiv_artwork_id(result.url)
    if artwork_id is not None:
        mirror = pixiv_mirror_url(artwork_id, mirror_base_url)
        lines.append(f"{MIRROR_LABEL}：{mirror}")
    return "\n".join(lines)


def serialize_metadata(metadata: Mapping[str, str]) -> str:
    return "\n".join(f"{key}：{value}" for key, value in sorted(metadata.items()))


def extract_pixiv_artwork_id(url: str) -> str | None:
    if "pixiv.net" not in url:
        return None

    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    illust_ids = parse_qs(parts.query).get("illust_id")
    if illust_ids:
        return illust_ids[0]

    last_segment = parts.path.split("/")[-1]
    if _NUMERIC_ID.match(last_segment):
        return last_segment
    return None


def pixiv_mirror_url(
    artwork_id: str, base_url: str = DEFAULT_PIXIV_MIRROR_BASE_URL
) -> str:
    return f"{base_url.rstrip('/')}/{artwork_id}.png"
