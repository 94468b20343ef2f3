"""View models behind the CLI screens.

Each class holds the state one screen renders. Failures are caught here and
turned into an ``error`` string; nothing raised by the clients reaches the
renderer.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from catalog_client.errors import CatalogClientError
from catalog_client.guard import Decision, Guard, Route
from catalog_client.models import Book, Reservation, ReservationStatus
from catalog_client.services.catalog import CatalogClient, filter_books
from catalog_client.services.reservations import ReservationClient
from catalog_client.session import Session

logger = logging.getLogger(__name__)

FEATURED_COUNT = 6


class BookListView:
    """Catalog browsing with search and category filter."""

    def __init__(self, catalog: CatalogClient) -> None:
        self.catalog = catalog
        self.books: List[Book] = []
        self.categories: List[str] = []
        self.search_query = ""
        self.selected_category = ""
        self.error: Optional[str] = None

    async def load(self) -> None:
        self.error = None
        try:
            self.books = await self.catalog.list_books()
            self.categories = sorted({c for book in self.books for c in book.categories})
        except CatalogClientError as e:
            logger.error(f"Error fetching books: {e}")
            self.error = "Failed to load books"

    async def search(self, query: str) -> None:
        self.search_query = query or ""
        self.error = None
        try:
            self.books = await self.catalog.search_books(self.search_query)
        except CatalogClientError as e:
            logger.error(f"Error searching books: {e}")
            self.error = "Failed to search books"

    async def filter_by_category(self, category: str) -> None:
        self.selected_category = category or ""
        self.error = None
        try:
            self.books = await self.catalog.books_by_category(self.selected_category)
        except CatalogClientError as e:
            logger.error(f"Error filtering books: {e}")
            self.error = "Failed to filter books"

    async def clear_filters(self) -> None:
        self.search_query = ""
        self.selected_category = ""
        self.error = None
        await self.load()

    @property
    def visible_books(self) -> List[Book]:
        # Server results are filtered again with the same predicates
        return filter_books(self.books, self.search_query, self.selected_category)

    def featured(self, count: int = FEATURED_COUNT) -> List[Book]:
        """The first books of the catalog, as shown on the home page."""
        return self.books[:count]


class ProfileView:
    """The logged in member's account and reservation history."""

    def __init__(self, guard: Guard, reservations: ReservationClient) -> None:
        self.guard = guard
        self.reservations_client = reservations
        self.reservations: List[Reservation] = []
        self.error: Optional[str] = None

    @property
    def session(self) -> Session:
        return self.guard.session

    async def open(self) -> Decision:
        decision = self.guard.check(Route.PROFILE)
        if not decision.allowed:
            return decision
        self.error = None
        if self.session.user is None:
            profile = await self.session.fetch_current_user()
            if not profile.success:
                self.error = profile.error
                return self.guard.check(Route.PROFILE)
        try:
            self.reservations = await self.reservations_client.list_for_user()
        except CatalogClientError as e:
            logger.error(f"Error fetching reservations: {e}")
            self.error = "Failed to load reservations"
        return self.guard.check(Route.PROFILE)

    def count(self, status: ReservationStatus) -> int:
        return sum(1 for r in self.reservations if r.status is status)


class AdminDashboardView:
    """Inventory and reservation overview for administrators."""

    def __init__(self, guard: Guard, catalog: CatalogClient, reservations: ReservationClient) -> None:
        self.guard = guard
        self.catalog = catalog
        self.reservations_client = reservations
        self.books: List[Book] = []
        self.reservations: List[Reservation] = []
        self.error: Optional[str] = None

    async def open(self) -> Decision:
        session = self.guard.session
        if session.authenticated and session.user is None:
            await session.fetch_current_user()
        decision = self.guard.check(Route.ADMIN)
        if decision.allowed:
            await self.refresh()
        return decision

    async def refresh(self) -> None:
        try:
            self.books = await self.catalog.list_books()
            self.reservations = await self.reservations_client.list_all()
            self.error = None
        except CatalogClientError as e:
            logger.error(f"Error fetching dashboard data: {e}")
            self.error = "Failed to load dashboard data"

    def overview(self) -> Dict[str, int]:
        statuses = Counter(r.status for r in self.reservations)
        return {
            "total_books": len(self.books),
            "active_reservations": statuses[ReservationStatus.ACTIVE],
            "overdue_reservations": statuses[ReservationStatus.OVERDUE],
            "total_users": len({r.user_id for r in self.reservations}),
        }

    async def add_book(self, data: Dict[str, Any]) -> Optional[Book]:
        if not self.guard.check(Route.ADMIN).allowed:
            return None
        try:
            book = await self.catalog.create_book(data)
        except CatalogClientError as e:
            logger.error(f"Error adding book: {e}")
            self.error = e.detail or "Failed to add book"
            return None
        await self.refresh()
        return book

    async def update_book(self, book_id: str, changes: Dict[str, Any]) -> Optional[Book]:
        """Apply ``changes`` on top of the current record and store it.

        Changing the total moves the available count by the same amount, so
        copies out on loan stay accounted for.
        """
        if not self.guard.check(Route.ADMIN).allowed:
            return None
        try:
            current = await self.catalog.get_book(book_id)
            data = current.to_dict()
            data.update({k: v for k, v in changes.items() if v is not None})
            if changes.get("totalCopies") is not None and changes.get("availableCopies") is None:
                delta = data["totalCopies"] - current.total_copies
                data["availableCopies"] = max(0, current.available_copies + delta)
            book = await self.catalog.update_book(book_id, data)
        except CatalogClientError as e:
            logger.error(f"Error updating book {book_id}: {e}")
            self.error = e.detail or "Failed to update book"
            return None
        await self.refresh()
        return book

    async def delete_book(self, book_id: str) -> bool:
        if not self.guard.check(Route.ADMIN).allowed:
            return False
        try:
            await self.catalog.delete_book(book_id)
        except CatalogClientError as e:
            logger.error(f"Error deleting book: {e}")
            self.error = e.detail or "Failed to delete book"
            return False
        await self.refresh()
        return True
