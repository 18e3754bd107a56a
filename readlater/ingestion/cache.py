"""Bounded in-process cache of extracted articles keyed by source URL."""
from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from readlater.ingestion.models import ReaderArticle


class ArticleCache:
    """Least-recently-used map of URL -> :class:`ReaderArticle`.

    Entries keep the extracted article and its metadata; the styled HTML is
    recomputed from them whenever display settings change.

    The cache is advisory: dropping any entry at any time is always safe.
    ``max_entries <= 0`` disables caching entirely.
    """

    def __init__(self, max_entries: int = 128) -> None:
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, ReaderArticle]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get(self, url: str) -> Optional[ReaderArticle]:
        with self._lock:
            article = self._entries.get(url)
            if article is not None:
                self._entries.move_to_end(url)
            return article

    def put(self, url: str, article: ReaderArticle) -> None:
        if self._max_entries <= 0:
            return
        with self._lock:
            self._entries[url] = article
            self._entries.move_to_end(url)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def discard(self, url: str) -> None:
        with self._lock:
            self._entries.pop(url, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["ArticleCache"]
