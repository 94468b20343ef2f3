from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(Enum):
    """Account roles known to the client."""
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, raw: Any) -> Optional["Role"]:
        # Unknown roles become None so that authorization fails closed.
        if isinstance(raw, Role):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return None


class ReservationStatus(Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    value = str(raw)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class UserIdentity:
    """A signed-up account as returned by the backend."""
    id: str
    username: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    role: Optional[Role] = Role.MEMBER

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role.value if self.role else None,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "UserIdentity":
        return UserIdentity(
            id=str(data["id"]),
            username=data.get("username", ""),
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            email=data.get("email") or "",
            role=Role.parse(data.get("role")),
        )


@dataclass
class Book:
    """A catalog entry with its copy counts."""
    id: str
    title: str
    author: str
    categories: List[str] = field(default_factory=list)
    total_copies: int = 0
    available_copies: int = 0
    description: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    cover_image_url: Optional[str] = None

    def __post_init__(self) -> None:
        # Keep categories unique while preserving server order
        seen: List[str] = []
        for category in self.categories:
            if category and category not in seen:
                seen.append(category)
        self.categories = seen

        if self.total_copies < 0:
            raise ValueError(f"Book {self.id}: total copies cannot be negative")
        if not 0 <= self.available_copies <= self.total_copies:
            raise ValueError(
                f"Book {self.id}: available copies {self.available_copies} "
                f"outside 0..{self.total_copies}"
            )

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    def with_available(self, available_copies: int) -> "Book":
        """Copy of this book with another availability count (validated)."""
        return replace(self, available_copies=available_copies)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.available_copies}/{self.total_copies})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "categories": list(self.categories),
            "totalCopies": self.total_copies,
            "availableCopies": self.available_copies,
            "description": self.description,
            "isbn": self.isbn,
            "publicationYear": self.publication_year,
            "coverImageUrl": self.cover_image_url,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Book":
        total = int(data.get("totalCopies") or 0)
        available = data.get("availableCopies")
        year = data.get("publicationYear")
        return Book(
            id=str(data["id"]),
            title=(data.get("title") or "").strip(),
            author=(data.get("author") or "").strip(),
            categories=list(data.get("categories") or []),
            total_copies=total,
            # The backend fills availableCopies from totalCopies on create
            available_copies=total if available is None else int(available),
            description=data.get("description"),
            isbn=data.get("isbn"),
            publication_year=int(year) if year not in (None, "") else None,
            cover_image_url=data.get("coverImageUrl"),
        )


@dataclass(frozen=True)
class Reservation:
    """A reservation record. Status is owned by the backend."""
    id: str
    user_id: str
    book_id: str
    status: ReservationStatus = ReservationStatus.ACTIVE
    book_title: Optional[str] = None
    book_author: Optional[str] = None
    reservation_date: Optional[datetime] = None
    expected_return_date: Optional[datetime] = None
    actual_return_date: Optional[datetime] = None
    user_username: Optional[str] = None
    user_first_name: Optional[str] = None
    user_last_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is ReservationStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "status": self.status.value,
            "bookTitle": self.book_title,
            "bookAuthor": self.book_author,
            "reservationDate": _format_datetime(self.reservation_date),
            "expectedReturnDate": _format_datetime(self.expected_return_date),
            "actualReturnDate": _format_datetime(self.actual_return_date),
            "userUsername": self.user_username,
            "userFirstName": self.user_first_name,
            "userLastName": self.user_last_name,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Reservation":
        return Reservation(
            id=str(data["id"]),
            user_id=str(data["userId"]),
            book_id=str(data["bookId"]),
            status=ReservationStatus(data.get("status") or "ACTIVE"),
            book_title=data.get("bookTitle"),
            book_author=data.get("bookAuthor"),
            reservation_date=_parse_datetime(data.get("reservationDate")),
            expected_return_date=_parse_datetime(data.get("expectedReturnDate")),
            actual_return_date=_parse_datetime(data.get("actualReturnDate")),
            user_username=data.get("userUsername"),
            user_first_name=data.get("userFirstName"),
            user_last_name=data.get("userLastName"),
        )
