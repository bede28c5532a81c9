from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Literal, Protocol

from onebot_sauce.aggregator import SourceAggregator
from onebot_sauce.config import DEFAULT_PIXIV_MIRROR_BASE_URL, DEFAULT_TRIGGER_PHRASES
from onebot_sauce.correlation_store import StoreError
from onebot_sauce.formatter import NOT_FOUND_TEXT, format_reply, reply_marker
from onebot_sauce.parsing import cq_unescape
from onebot_sauce.types import IncomingMessage, OutboundAction, reply_to

logger = logging.getLogger(__name__)

MessageKind = Literal["image_attachment", "source_request", "unrelated"]

_IMAGE_URL = re.compile(r"\[(?:CQ:)?image[,\s][^\]]*?\burl=([^,\]\s]+)")
_REPLY_ID = re.compile(r"^\s*\[(?:CQ:)?reply[,\s][^\]]*?\bid=(-?\d+)[,\s\]]")
_MARKER = re.compile(r"\[(?:CQ:)?[a-z_]+[,\s][^\]]*\]", re.IGNORECASE)


class CorrelationStoreLike(Protocol):
    def put(self, message_id: int, image_url: str) -> None: ...

    def get(self, message_id: int) -> str | None: ...


@dataclass(frozen=True)
class Classification:
    kind: MessageKind
    image_url: str | None = None
    reply_to_id: int | None = None


UNRELATED = Classification(kind="unrelated")


def classify_message(
    text: str, trigger_phrases: tuple[str, ...] = DEFAULT_TRIGGER_PHRASES
) -> Classification:
    reply_match = _REPLY_ID.match(text)
    if reply_match is not None and contains_trigger_phrase(text, trigger_phrases):
        return Classification(
            kind="source_request", reply_to_id=int(reply_match.group(1))
        )

    image_match = _IMAGE_URL.search(text)
    if image_match is not None:
        image_url = cq_unescape(image_match.group(1)).strip()
        if image_url:
            return Classification(kind="image_attachment", image_url=image_url)

    return UNRELATED


def contains_trigger_phrase(text: str, trigger_phrases: tuple[str, ...]) -> bool:
    # Markers are stripped first so phrases hidden inside URLs do not count.
    plain = cq_unescape(_MARKER.sub(" ", text)).casefold()
    return any(
        phrase.casefold() in plain for phrase in trigger_phrases if phrase.strip()
    )


class MessageCorrelator:
    def __init__(
        self,
        *,
        store: CorrelationStoreLike,
        aggregator: SourceAggregator,
        trigger_phrases: tuple[str, ...] = DEFAULT_TRIGGER_PHRASES,
        mirror_base_url: str = DEFAULT_PIXIV_MIRROR_BASE_URL,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._trigger_phrases = trigger_phrases
        self._mirror_base_url = mirror_base_url

    def classify(self, message: IncomingMessage) -> Classification:
        return classify_message(message.text, self._trigger_phrases)

    async def handle(self, message: IncomingMessage) -> OutboundAction | None:
        classification = self.classify(message)
        if classification.kind == "image_attachment" and classification.image_url:
            await self._remember(message, classification.image_url)
            return None
        if (
            classification.kind == "source_request"
            and classification.reply_to_id is not None
        ):
            return await self._answer(message, classification.reply_to_id)
        return None

    async def _remember(self, message: IncomingMessage, image_url: str) -> None:
        try:
            await asyncio.to_thread(self._store.put, message.message_id, image_url)
        except StoreError as exc:
            logger.error(
                "correlation_store_put_failed message_id=%s detail=%s",
                message.message_id,
                exc,
            )
            return
        logger.debug(
            "image_remembered message_id=%s image_url=%s",
            message.message_id,
            image_url,
        )

    async def _answer(
        self, message: IncomingMessage, reply_to_id: int
    ) -> OutboundAction | None:
        try:
            image_url = await asyncio.to_thread(self._store.get, reply_to_id)
        except StoreError as exc:
            logger.error(
                "correlation_store_get_failed message_id=%s reply_to=%s detail=%s",
                message.message_id,
                reply_to_id,
                exc,
            )
            return None

        if image_url is None:
            logger.info(
                "source_request_unknown_target message_id=%s reply_to=%s",
                message.message_id,
                reply_to_id,
            )
            return None

        logger.info(
            "source_request message_id=%s reply_to=%s image_url=%s",
            message.message_id,
            reply_to_id,
            image_url,
        )
        try:
            results = await self._aggregator.search_image(image_url)
        except Exception:
            logger.exception(
                "source_search_aborted message_id=%s image_url=%s",
                message.message_id,
                image_url,
            )
            return reply_to(
                message, f"{reply_marker(message.message_id)}{NOT_FOUND_TEXT}"
            )

        text = format_reply(
            message.message_id, results, mirror_base_url=self._mirror_base_url
        )
        return reply_to(message, text)
