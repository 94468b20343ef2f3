import logging
from typing import Any, List, Optional

from catalog_client.errors import AuthError, MalformedResponseError
from catalog_client.models import Reservation
from catalog_client.services.http_client import ApiClient
from catalog_client.session import Session

logger = logging.getLogger(__name__)


class ReservationClient:
    """Create and list reservations on behalf of the session user."""

    def __init__(self, api: ApiClient, session: Session) -> None:
        self.api = api
        self.session = session

    def _current_user_id(self) -> str:
        user = self.session.user
        if not self.session.authenticated or user is None:
            raise AuthError("You need to be logged in to do that")
        return user.id

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        try:
            return await self.api.request(method, path, **kwargs)
        except AuthError as e:
            # The stored token is no longer accepted by the backend
            if e.status_code == 401:
                self.session.expire()
            raise

    @staticmethod
    def _reservations(payload: Any) -> List[Reservation]:
        if payload is not None and not isinstance(payload, list):
            raise MalformedResponseError("Expected a list of reservations")
        try:
            return [Reservation.from_dict(item) for item in payload or []]
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unreadable reservation record: {e}") from e

    async def create(self, book_id: str) -> Optional[Reservation]:
        """Reserve a copy of ``book_id`` for the session user.

        Any 2xx answer confirms the reservation. The record in the body is
        read best-effort; ``None`` is returned when it is missing or unreadable.
        """
        user_id = self._current_user_id()
        data = await self._call("POST", "/api/reservations", json={"bookId": book_id, "userId": user_id})
        try:
            reservation = Reservation.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Reservation for book {book_id} confirmed with an unreadable body: {e}")
            return None
        logger.info(f"Reservation {reservation.id} created for book {book_id}")
        return reservation

    async def list_for_user(self, user_id: Optional[str] = None) -> List[Reservation]:
        user_id = user_id or self._current_user_id()
        data = await self._call("GET", f"/api/reservations/user/{user_id}")
        return self._reservations(data)

    async def list_all(self) -> List[Reservation]:
        data = await self._call("GET", "/api/reservations")
        return self._reservations(data)

    async def return_reservation(self, reservation_id: str) -> None:
        """Ask the backend to close an active reservation and give the copy back."""
        await self._call("POST", f"/api/reservations/{reservation_id}/return")
        logger.info(f"Reservation {reservation_id} returned")

    async def cancel_reservation(self, reservation_id: str) -> None:
        await self._call("POST", f"/api/reservations/{reservation_id}/cancel")
        logger.info(f"Reservation {reservation_id} cancelled")
