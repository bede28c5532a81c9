from __future__ import annotations

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from onebot_sauce.config import Settings
from onebot_sauce.correlator import MessageCorrelator
from onebot_sauce.dedupe import DedupeCache
from onebot_sauce.onebot_client import ReplyDispatcher
from onebot_sauce.types import IncomingMessage, dedupe_key, parse_onebot_event

logger = logging.getLogger(__name__)


class WebhookHandler:
    def __init__(
        self,
        *,
        settings: Settings,
        correlator: MessageCorrelator,
        dispatcher: ReplyDispatcher,
        dedupe: DedupeCache,
    ) -> None:
        self._settings = settings
        self._correlator = correlator
        self._dispatcher = dispatcher
        self._dedupe = dedupe

    async def handle_event(
        self, payload: dict[str, object], background_tasks: BackgroundTasks
    ) -> dict[str, str]:
        parsed = parse_onebot_event(payload)
        if parsed is None:
            logger.debug(
                "unsupported_event post_type=%s top_level_key_count=%d",
                payload.get("post_type"),
                len(payload),
            )
            return {"status": "ignored", "reason": "unsupported_event"}

        if not is_allowed_message(parsed, self._settings):
            logger.info(
                "ignoring_unlisted_group user_id=%s group_id=%s",
                parsed.user_id,
                parsed.group_id,
            )
            return {"status": "ignored", "reason": "group_not_allowed"}

        if not self._dedupe.mark_once(dedupe_key(parsed)):
            return {"status": "ignored", "reason": "duplicate"}

        classification = self._correlator.classify(parsed)
        if classification.kind == "image_attachment":
            # Stored inline so a quick follow-up reply always finds it.
            await self._correlator.handle(parsed)
            return {"status": "accepted", "reason": "image_remembered"}

        if classification.kind == "source_request":
            background_tasks.add_task(self.process_source_request, parsed)
            return {"status": "accepted", "reason": "source_request_queued"}

        return {"status": "ignored", "reason": "unrelated"}

    async def process_source_request(self, message: IncomingMessage) -> None:
        try:
            action = await self._correlator.handle(message)
        except Exception:
            logger.exception(
                "unexpected_source_request_error message_id=%s", message.message_id
            )
            return
        if action is not None:
            await self._dispatcher.enqueue(action)


def is_allowed_message(message: IncomingMessage, settings: Settings) -> bool:
    if message.group_id is None or not settings.bot_allowed_group_ids:
        return True
    return message.group_id in settings.bot_allowed_group_ids


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature or not signature.startswith("sha1="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    return hmac.compare_digest(expected, signature.removeprefix("sha1="))


def build_router(handler: WebhookHandler, settings: Settings) -> APIRouter:
    router = APIRouter()

    @router.post("/webhook/onebot")
    async def onebot_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
    ) -> dict[str, str]:
        body = await request.body()
        if settings.onebot_secret and not verify_signature(
            settings.onebot_secret, body, request.headers.get("X-Signature")
        ):
            logger.warning("onebot_signature_mismatch")
            raise HTTPException(status_code=401, detail="bad signature")

        try:
            payload = json.loads(body)
        except ValueError:
            return {"status": "ignored", "reason": "invalid_json"}
        if not isinstance(payload, dict):
            return {"status": "ignored", "reason": "invalid_json"}

        return await handler.handle_event(payload, background_tasks)

    return router
