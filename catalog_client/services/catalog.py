import logging
from typing import Any, Dict, Iterable, List, Optional

from catalog_client.config import settings
from catalog_client.errors import CatalogClientError, MalformedResponseError
from catalog_client.models import Book
from catalog_client.services.http_client import ApiClient

logger = logging.getLogger(__name__)


def filter_books(books: Iterable[Book], query: str = "", category: str = "") -> List[Book]:
    """In-memory filter matching the backend's search and category filters.

    A book matches when the query is a case-insensitive substring of its
    title or author, and when it carries ``category`` (if one is given).
    """
    needle = (query or "").strip().lower()
    result = []
    for book in books:
        matches_search = needle in book.title.lower() or needle in book.author.lower()
        matches_category = not category or category in book.categories
        if matches_search and matches_category:
            result.append(book)
    return result


class CatalogClient:
    """Read and manage books through the backend API."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    @staticmethod
    def _book(payload: Any) -> Book:
        try:
            return Book.from_dict(payload)
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unreadable book record: {e}") from e

    def _books(self, payload: Any) -> List[Book]:
        if payload is not None and not isinstance(payload, list):
            raise MalformedResponseError("Expected a list of books")
        return [self._book(item) for item in payload or []]

    async def list_books(self) -> List[Book]:
        data = await self.api.get_with_retry("/api/books")
        return self._books(data)

    async def get_book(self, book_id: str) -> Book:
        data = await self.api.get_with_retry(f"/api/books/{book_id}")
        return self._book(data)

    async def search_books(self, query: str) -> List[Book]:
        """Search title and author. An empty query lists everything."""
        if not query or not query.strip():
            return await self.list_books()
        data = await self.api.get_with_retry("/api/books/search", params={"query": query.strip()})
        return self._books(data)

    async def books_by_category(self, *categories: str) -> List[Book]:
        wanted = [c for c in categories if c]
        if not wanted:
            return await self.list_books()
        data = await self.api.get_with_retry("/api/books/category", params={"categories": ",".join(wanted)})
        return self._books(data)

    async def list_categories(self) -> List[str]:
        """Distinct categories across the whole catalog, sorted."""
        categories = set()
        for book in await self.list_books():
            categories.update(book.categories)
        return sorted(categories)

    async def similar_books(self, book: Book, limit: Optional[int] = None) -> List[Book]:
        """Books sharing the first category of ``book``.

        Best effort: any failure is logged and yields an empty list.
        """
        limit = settings.similar_books_limit if limit is None else limit
        if not book.categories or limit <= 0:
            return []
        try:
            candidates = await self.books_by_category(book.categories[0])
        except CatalogClientError as e:
            logger.warning(f"Could not load similar books for {book.id}: {e}")
            return []
        return [b for b in candidates if b.id != book.id][:limit]

    # ------------------------- Inventory (admin) ------------------------- #
    async def create_book(self, data: Dict[str, Any]) -> Book:
        book = self._book(await self.api.post("/api/books", json=data))
        logger.info(f"Created book {book.id}: {book.title}")
        return book

    async def update_book(self, book_id: str, data: Dict[str, Any]) -> Book:
        book = self._book(await self.api.put(f"/api/books/{book_id}", json=data))
        logger.info(f"Updated book {book_id}")
        return book

    async def delete_book(self, book_id: str) -> None:
        await self.api.delete(f"/api/books/{book_id}")
        logger.info(f"Deleted book {book_id}")
