from onebot_sauce.searchers import ascii2d, iqdb, saucenao  # noqa: F401
from onebot_sauce.searchers.base import (
    ImageSearcher,
    RequestFailed,
    ResponseUnparseable,
    SearcherError,
    SearchOutcome,
    SourceImage,
    SourceNotLocatable,
)
from onebot_sauce.searchers.registry import build_searchers, list_searchers

__all__ = [
    "ImageSearcher",
    "RequestFailed",
    "ResponseUnparseable",
    "SearchOutcome",
    "SearcherError",
    "SourceImage",
    "SourceNotLocatable",
    "build_searchers",
    "list_searchers",
]
