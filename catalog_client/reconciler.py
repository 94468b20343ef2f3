"""Book detail view and its local availability projection.

The backend owns every book's copy count. A :class:`BookDetailView` keeps a
local copy of one book and, once a reservation is confirmed, lowers
``available_copies`` by one instead of fetching the book again. That local
value is a projection: it is only valid until the next :meth:`refresh`, which
re-reads the authoritative count.

Rules kept by the view:

* a reservation is only sent when the user is logged in and the local count
  is above zero;
* at most one reservation is in flight per view;
* the count is only lowered after the backend confirmed the reservation,
  so a failure needs no rollback;
* answers arriving after :meth:`close` (or after a refresh replaced the
  book) are not applied.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from catalog_client.errors import AuthError, CatalogClientError, NotFoundError
from catalog_client.guard import Route
from catalog_client.models import Book, Reservation
from catalog_client.services.catalog import CatalogClient
from catalog_client.services.reservations import ReservationClient
from catalog_client.session import Session

logger = logging.getLogger(__name__)

RESERVE_SUCCESS = "Book reserved successfully!"
RESERVE_FAILED = "Failed to reserve book"
LOAD_FAILED = "Failed to load book details"
NOT_FOUND = "Book not found"

LABEL_RESERVE = "Reserve Book"
LABEL_RESERVING = "Reserving..."
LABEL_OUT_OF_STOCK = "Out of Stock"


@dataclass(frozen=True)
class ReserveOutcome:
    success: bool
    message: Optional[str] = None
    redirect: Optional[Route] = None
    reservation: Optional[Reservation] = None
    # True when the view was closed before the answer came back
    stale: bool = False


class BookDetailView:
    """One opened book page."""

    def __init__(
        self,
        book_id: str,
        catalog: CatalogClient,
        reservations: ReservationClient,
        session: Session,
        similar_limit: Optional[int] = None,
    ) -> None:
        self.book_id = book_id
        self.catalog = catalog
        self.reservations = reservations
        self.session = session
        self.similar_limit = similar_limit

        self.book: Optional[Book] = None
        self.similar: List[Book] = []
        self.loading = False
        self.reserving = False
        self.error: Optional[str] = None
        self.message: Optional[str] = None
        self.closed = False
        # Confirmed reservations applied locally since the last fetch
        self.reserved_locally = 0
        self._generation = 0

    # ------------------------- Loading ------------------------- #
    async def load(self) -> None:
        """Fetch the book, then its similar titles. Never raises."""
        self._generation += 1
        generation = self._generation
        self.loading = True
        self.error = None
        try:
            book = await self.catalog.get_book(self.book_id)
        except NotFoundError:
            book = None
            error = NOT_FOUND
        except CatalogClientError as e:
            logger.error(f"Error fetching book {self.book_id}: {e}")
            book = None
            error = LOAD_FAILED
        else:
            error = None

        if self.closed or generation != self._generation:
            return

        self.book = book
        self.error = error
        self.reserved_locally = 0
        self.loading = False
        if book is None:
            self.similar = []
            return

        similar = await self.catalog.similar_books(book, self.similar_limit)
        if not self.closed and generation == self._generation:
            self.similar = similar

    async def refresh(self) -> None:
        """Drop the local projection and re-read the authoritative count."""
        await self.load()

    def close(self) -> None:
        """Tear the view down; pending answers will be ignored."""
        self.closed = True

    # ------------------------- Reservation ------------------------- #
    @property
    def can_reserve(self) -> bool:
        return self.book is not None and self.book.available_copies > 0

    @property
    def reserve_label(self) -> str:
        if not self.can_reserve:
            return LABEL_OUT_OF_STOCK
        return LABEL_RESERVING if self.reserving else LABEL_RESERVE

    async def reserve(self) -> ReserveOutcome:
        if not self.session.authenticated:
            return ReserveOutcome(success=False, redirect=Route.LOGIN)
        if self.closed:
            return ReserveOutcome(success=False, stale=True)
        if not self.can_reserve:
            return ReserveOutcome(success=False, message=LABEL_OUT_OF_STOCK)
        if self.reserving:
            return ReserveOutcome(success=False, message="A reservation is already in progress")

        self.reserving = True
        self.error = None
        self.message = None
        generation = self._generation
        try:
            if self.session.user is None:
                # Restored sessions only carry the token
                profile = await self.session.fetch_current_user()
                if not profile.success:
                    return self._finish_failure(profile.error, auth_failed=True)
            reservation = await self.reservations.create(self.book_id)
        except CatalogClientError as e:
            return self._finish_failure(e.detail, isinstance(e, AuthError))
        finally:
            self.reserving = False

        if self.closed:
            logger.info(f"Discarding reservation answer for closed view of {self.book_id}")
            return ReserveOutcome(success=True, reservation=reservation, stale=True)

        if generation == self._generation and self.book is not None and self.book.available_copies > 0:
            self.book = self.book.with_available(self.book.available_copies - 1)
            self.reserved_locally += 1
        self.message = RESERVE_SUCCESS
        return ReserveOutcome(success=True, message=RESERVE_SUCCESS, reservation=reservation)

    def _finish_failure(self, detail: Optional[str], auth_failed: bool = False) -> ReserveOutcome:
        if self.closed:
            return ReserveOutcome(success=False, stale=True)
        message = detail or RESERVE_FAILED
        self.error = message
        redirect = Route.LOGIN if auth_failed and not self.session.authenticated else None
        logger.warning(f"Reservation of {self.book_id} failed: {message}")
        return ReserveOutcome(success=False, message=message, redirect=redirect)
