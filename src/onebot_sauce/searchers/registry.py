from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from onebot_sauce.searchers.base import ImageSearcher

if TYPE_CHECKING:
    import httpx

    from onebot_sauce.config import Settings


class SearcherFactory(Protocol):
    name: str

    @classmethod
    def create(
        cls, settings: Settings, http_client: httpx.AsyncClient
    ) -> ImageSearcher: ...


_SEARCHERS: dict[str, type[SearcherFactory]] = {}


def register(cls: type[SearcherFactory]) -> type[SearcherFactory]:
    """Decorator to register a searcher under its ``name``."""
    if hasattr(cls, "name"):
        _SEARCHERS[cls.name] = cls
    return cls


def get_searcher(name: str) -> type[SearcherFactory]:
    """Get a searcher class by name."""
    if name not in _SEARCHERS:
        raise ValueError(
            f"Searcher '{name}' not found. Available: {list(_SEARCHERS.keys())}"
        )
    return _SEARCHERS[name]


def list_searchers() -> list[str]:
    """List registered searcher names in registration order."""
    return list(_SEARCHERS.keys())


def build_searchers(
    settings: Settings, http_client: httpx.AsyncClient
) -> list[ImageSearcher]:
    """Instantiate the enabled searchers, in the order they are configured."""
    return [
        get_searcher(name).create(settings, http_client)
        for name in settings.bot_searchers
    ]
