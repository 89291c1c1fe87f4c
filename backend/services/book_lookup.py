"""Google Books lookup.

Resolves whatever the user typed into a title, first author and description,
which give the analysis prompt far more to work with than a bare title.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"


class BookInfo(BaseModel):
    title: str
    author: str | None = None
    description: str = ""


class BookLookupService:
    """Keyless Google Books volume search."""

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    @staticmethod
    def parse_volume(item: dict[str, Any]) -> BookInfo | None:
        info = item.get("volumeInfo") or {}
        title = info.get("title")
        if not title:
            return None
        authors = info.get("authors") or []
        return BookInfo(
            title=title,
            author=authors[0] if authors else None,
            description=info.get("description") or info.get("subtitle") or "",
        )

    async def find_book(self, query: str) -> BookInfo | None:
        """Best match for ``query``, or None when nothing usable comes back."""
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.get(GOOGLE_BOOKS_URL, params={"q": query, "maxResults": 1})
            if resp.status_code != 200:
                logger.warning("[BOOKS] Lookup %r failed: HTTP %d", query, resp.status_code)
                return None
            items = resp.json().get("items") or []
            book = self.parse_volume(items[0]) if items else None
            logger.info("[BOOKS] Lookup %r -> %s", query, book.title if book else None)
            return book
        except Exception as e:
            logger.warning("[BOOKS] Lookup %r error: %s", query, e)
            return None
