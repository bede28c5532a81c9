from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal, Protocol, runtime_checkable

ORIGIN_METADATA_KEY = "服务"

OutcomeStatus = Literal["found", "not_found", "failed"]


class SearcherError(Exception):
    """Base class for a single backend failing to answer a query."""

    def __init__(self, message: str, *, searcher: str, url: str) -> None:
        super().__init__(message)
        self.searcher = searcher
        self.url = url


class RequestFailed(SearcherError):
    def __init__(
        self,
        message: str,
        *,
        searcher: str,
        url: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, searcher=searcher, url=url)
        self.status_code = status_code


class ResponseUnparseable(SearcherError):
    def __init__(
        self, message: str, *, searcher: str, url: str, raw_response: str
    ) -> None:
        super().__init__(message, searcher=searcher, url=url)
        self.raw_response = raw_response


class SourceNotLocatable(SearcherError):
    def __init__(
        self, message: str, *, searcher: str, url: str, raw_response: str
    ) -> None:
        super().__init__(message, searcher=searcher, url=url)
        self.raw_response = raw_response


@dataclass(frozen=True)
class SourceImage:
    url: str
    searcher_name: str
    metadata: dict[str, str] = field(default_factory=dict)

    def with_origin(self, searcher_name: str) -> SourceImage:
        metadata = dict(self.metadata)
        metadata[ORIGIN_METADATA_KEY] = searcher_name
        return replace(self, searcher_name=searcher_name, metadata=metadata)

    def sorted_metadata(self) -> list[tuple[str, str]]:
        return sorted(self.metadata.items())


@dataclass(frozen=True)
class SearchOutcome:
    searcher: str
    status: OutcomeStatus
    image: SourceImage | None = None
    error: Exception | None = None

    @classmethod
    def found(cls, searcher: str, image: SourceImage) -> SearchOutcome:
        return cls(searcher=searcher, status="found", image=image)

    @classmethod
    def not_found(cls, searcher: str) -> SearchOutcome:
        return cls(searcher=searcher, status="not_found")

    @classmethod
    def failed(cls, searcher: str, error: Exception) -> SearchOutcome:
        return cls(searcher=searcher, status="failed", error=error)


@runtime_checkable
class ImageSearcher(Protocol):
    """One reverse-image-search backend.

    ``search`` returns the best candidate, ``None`` when the backend ran
    fine but has no confident match, and raises ``SearcherError`` for
    everything else.
    """

    name: str

    async def search(self, image_url: str) -> SourceImage | None: ...


def normalize_source_url(url: str) -> str:
    """Turn protocol-relative links into absolute https URLs."""
    stripped = url.strip()
    if stripped.startswith("//"):
        return f"https:{stripped}"
    return stripped
