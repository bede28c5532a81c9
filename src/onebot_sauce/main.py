from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from onebot_sauce import __version__
from onebot_sauce.aggregator import SourceAggregator
from onebot_sauce.config import Settings
from onebot_sauce.correlation_store import CorrelationStore, StoreError
from onebot_sauce.correlator import MessageCorrelator
from onebot_sauce.dedupe import DedupeCache
from onebot_sauce.onebot_client import (
    OneBotClient,
    ReplyDispatcher,
    build_onebot_http_client,
)
from onebot_sauce.searchers import build_searchers
from onebot_sauce.searchers.http import build_http_client
from onebot_sauce.webhook import WebhookHandler, build_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings) -> FastAPI:
    http_client = build_http_client(settings)
    onebot_http_client = build_onebot_http_client()
    store = CorrelationStore(settings.bot_correlation_db_path)
    onebot_client = OneBotClient(
        base_url=settings.onebot_api_base_url,
        http_client=onebot_http_client,
        access_token=settings.onebot_access_token,
    )
    dispatcher = ReplyDispatcher(onebot_client, max_size=settings.bot_reply_queue_size)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        store.open()
        dispatcher.start()
        try:
            yield
        finally:
            logger.warning("shutdown_requested flushing_correlation_store=true")
            await dispatcher.stop()
            try:
                store.close()
            except StoreError:
                logger.exception("correlation_store_flush_failed")
            await http_client.aclose()
            await onebot_http_client.aclose()

    app = FastAPI(title="onebot-sauce", version=__version__, lifespan=lifespan)

    aggregator = SourceAggregator(build_searchers(settings, http_client))
    correlator = MessageCorrelator(
        store=store,
        aggregator=aggregator,
        trigger_phrases=settings.bot_trigger_phrases,
        mirror_base_url=settings.bot_pixiv_mirror_base_url,
    )
    handler = WebhookHandler(
        settings=settings,
        correlator=correlator,
        dispatcher=dispatcher,
        dedupe=DedupeCache(ttl_seconds=300),
    )

    app.include_router(build_router(handler, settings))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.bot_log_level)
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.bot_webhook_host,
        port=settings.bot_webhook_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
