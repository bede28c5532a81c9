from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_TRIGGER_PHRASES = ("查出处", "ccc", "find source")
DEFAULT_SEARCHERS = ("ascii2d", "saucenao", "iqdb")
DEFAULT_PIXIV_MIRROR_BASE_URL = "https://pixiv.re"


@dataclass(frozen=True)
class Settings:
    onebot_api_base_url: str
    onebot_access_token: str | None = None
    onebot_secret: str | None = None
    saucenao_api_key: str | None = None
    bot_searchers: tuple[str, ...] = DEFAULT_SEARCHERS
    bot_trigger_phrases: tuple[str, ...] = DEFAULT_TRIGGER_PHRASES
    bot_search_timeout_seconds: float = 15.0
    bot_iqdb_timeout_seconds: float = 20.0
    bot_saucenao_min_similarity: float = 95.0
    bot_proxy_url: str | None = None
    bot_correlation_db_path: str = "correlation.db"
    bot_pixiv_mirror_base_url: str = DEFAULT_PIXIV_MIRROR_BASE_URL
    bot_allowed_group_ids: frozenset[int] = frozenset()
    bot_reply_queue_size: int = 128
    bot_webhook_host: str = "127.0.0.1"
    bot_webhook_port: int = 8002
    bot_log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        api_base_url = os.getenv("ONEBOT_API_BASE_URL")
        if not api_base_url:
            raise RuntimeError(
                "Missing required environment variables: ONEBOT_API_BASE_URL"
            )

        searchers = _split_csv_ordered(os.getenv("BOT_SEARCHERS"))
        if not searchers:
            searchers = DEFAULT_SEARCHERS

        saucenao_api_key = os.getenv("SAUCENAO_API_KEY")
        if "saucenao" in searchers and not saucenao_api_key:
            raise RuntimeError(
                "Missing SAUCENAO_API_KEY: set it or drop saucenao from BOT_SEARCHERS"
            )

        trigger_phrases = _split_csv_ordered(
            os.getenv("BOT_TRIGGER_PHRASES"), lowercase=False
        )
        if not trigger_phrases:
            trigger_phrases = DEFAULT_TRIGGER_PHRASES

        return cls(
            onebot_api_base_url=api_base_url,
            onebot_access_token=os.getenv("ONEBOT_ACCESS_TOKEN") or None,
            onebot_secret=os.getenv("ONEBOT_SECRET") or None,
            saucenao_api_key=saucenao_api_key,
            bot_searchers=searchers,
            bot_trigger_phrases=trigger_phrases,
            bot_search_timeout_seconds=_parse_float(
                "BOT_SEARCH_TIMEOUT_SECONDS", "15"
            ),
            bot_iqdb_timeout_seconds=_parse_float("BOT_IQDB_TIMEOUT_SECONDS", "20"),
            bot_saucenao_min_similarity=_parse_float(
                "BOT_SAUCENAO_MIN_SIMILARITY", "95"
            ),
            bot_proxy_url=os.getenv("BOT_PROXY_URL") or None,
            bot_correlation_db_path=os.getenv(
                "BOT_CORRELATION_DB_PATH", "correlation.db"
            ),
            bot_pixiv_mirror_base_url=os.getenv(
                "BOT_PIXIV_MIRROR_BASE_URL", DEFAULT_PIXIV_MIRROR_BASE_URL
            ).rstrip("/"),
            bot_allowed_group_ids=_parse_id_set(os.getenv("BOT_ALLOWED_GROUP_IDS")),
            bot_reply_queue_size=_parse_int("BOT_REPLY_QUEUE_SIZE", "128"),
            bot_webhook_host=os.getenv("BOT_WEBHOOK_HOST", "127.0.0.1"),
            bot_webhook_port=_parse_int("BOT_WEBHOOK_PORT", "8002"),
            bot_log_level=os.getenv("BOT_LOG_LEVEL", "INFO").strip().upper(),
        )


def _split_csv_ordered(
    value: str | None, *, lowercase: bool = True
) -> tuple[str, ...]:
    if value is None:
        return ()

    seen: set[str] = set()
    ordered: list[str] = []
    for raw_item in value.split(","):
        item = raw_item.strip()
        if lowercase:
            item = item.lower()
        if not item or item in seen:
            continue
        ordered.append(item)
        seen.add(item)

    return tuple(ordered)


def _parse_id_set(value: str | None) -> frozenset[int]:
    ids: set[int] = set()
    for item in _split_csv_ordered(value):
        try:
            ids.add(int(item))
        except ValueError as exc:
            raise RuntimeError(
                f"Invalid BOT_ALLOWED_GROUP_IDS entry: {item!r}"
            ) from exc
    return frozenset(ids)


def _parse_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(
            f"Invalid {name}: expected an integer, got {raw!r}"
        ) from exc
