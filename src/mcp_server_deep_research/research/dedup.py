"""URL-identity deduplication for accumulated search results."""

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SearchResult


class UrlIndex:
    """Set of seen result URLs, grown alongside an append-only result list."""

    def __init__(self, urls: Iterable[str] = ()):
        self._urls: set[str] = set(urls)

    def __contains__(self, url: object) -> bool:
        return url in self._urls

    def add(self, url: str) -> bool:
        """Record a URL. Returns False if it was already present."""
        if url in self._urls:
            return False
        self._urls.add(url)
        return True

    @classmethod
    def from_results(cls, results: Iterable["SearchResult"]) -> "UrlIndex":
        return cls(r.url for r in results)


class SeenResults(Sequence):
    """Append-only list of results paired with its UrlIndex.

    Behaves as a plain sequence for prompt building and wire payloads while
    ``is_duplicate`` checks hit the index.
    """

    def __init__(self, results: Iterable["SearchResult"] = ()):
        self._results = list(results)
        self.index = UrlIndex.from_results(self._results)

    def __getitem__(self, i):
        return self._results[i]

    def __len__(self) -> int:
        return len(self._results)

    def append(self, result: "SearchResult") -> bool:
        """Append unless the URL is already present. Returns whether it was appended."""
        if not self.index.add(result.url):
            return False
        self._results.append(result)
        return True


def is_duplicate(candidate: "SearchResult", existing: "Iterable[SearchResult] | UrlIndex") -> bool:
    """True iff an existing entry shares the candidate's URL.

    A UrlIndex or SeenResults answers in O(1); other iterables are scanned.
    """
    if isinstance(existing, SeenResults):
        existing = existing.index
    if isinstance(existing, UrlIndex):
        return candidate.url in existing
    return any(result.url == candidate.url for result in existing)
