"""In-memory reference backend for the library REST API.

Implements the endpoints the client talks to, with the same rules as the
production service: reserving takes a copy or fails with 400, returning or
cancelling an active reservation gives the copy back, reservations carry the
book title/author and the user's names. State lives in process memory only.

Run it with ``python main.py serve`` or
``uvicorn catalog_client.devserver:app``.
"""

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from catalog_client.config import settings

logger = logging.getLogger(__name__)


def _hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


# --- API models ---
class LoginRequest(BaseModel):
    username: str
    password: str


class SignupRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    email: str = Field(min_length=3)
    firstName: str = ""
    lastName: str = ""


class BookPayload(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    categories: List[str] = Field(min_length=1)
    totalCopies: int = Field(ge=1)
    availableCopies: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    isbn: Optional[str] = None
    publicationYear: Optional[int] = None
    coverImageUrl: Optional[str] = None


class ReservationRequest(BaseModel):
    bookId: Optional[str] = None
    userId: Optional[str] = None


class LibraryStore:
    """Books, users, tokens and reservations kept in dictionaries."""

    def __init__(self, loan_period_days: int = 14) -> None:
        self.loan_period = timedelta(days=loan_period_days)
        self.books: Dict[str, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, str] = {}
        self.reservations: Dict[str, Dict[str, Any]] = {}

    # ------------------------- Users ------------------------- #
    def add_user(self, username: str, password: str, email: str, first_name: str = "",
                 last_name: str = "", role: str = "MEMBER") -> Dict[str, Any]:
        if any(u["username"].lower() == username.lower() for u in self.users.values()):
            raise ValueError("Username already exists")
        if any(u["email"].lower() == email.lower() for u in self.users.values()):
            raise ValueError("Email already exists")
        user = {
            "id": _new_id(),
            "username": username,
            "email": email,
            "firstName": first_name,
            "lastName": last_name,
            "role": role,
            "password_hash": _hash_password(password),
        }
        self.users[user["id"]] = user
        return user

    def authenticate(self, username: str, password: str) -> Optional[str]:
        for user in self.users.values():
            if user["username"] == username and user["password_hash"] == _hash_password(password):
                token = secrets.token_hex(20)
                self.tokens[token] = user["id"]
                return token
        return None

    @staticmethod
    def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in user.items() if k != "password_hash"}

    # ------------------------- Books ------------------------- #
    def save_book(self, data: Dict[str, Any], book_id: Optional[str] = None) -> Dict[str, Any]:
        book = dict(data)
        book["id"] = book_id or _new_id()
        if book.get("availableCopies") is None:
            book["availableCopies"] = book["totalCopies"]
        if book["availableCopies"] > book["totalCopies"]:
            raise ValueError("Available copies cannot exceed total copies")
        self.books[book["id"]] = book
        return book

    def reserve_copy(self, book_id: str) -> bool:
        book = self.books.get(book_id)
        if book and book["availableCopies"] > 0:
            book["availableCopies"] -= 1
            return True
        return False

    def return_copy(self, book_id: str) -> bool:
        book = self.books.get(book_id)
        if book and book["availableCopies"] < book["totalCopies"]:
            book["availableCopies"] += 1
            return True
        return False

    # ------------------------- Reservations ------------------------- #
    def create_reservation(self, user_id: str, book_id: str) -> Dict[str, Any]:
        if not self.reserve_copy(book_id):
            raise ValueError("Book is not available for reservation")
        now = datetime.now()
        user = self.users.get(user_id, {})
        book = self.books[book_id]
        reservation = {
            "id": _new_id(),
            "userId": user_id,
            "bookId": book_id,
            "reservationDate": now.isoformat(),
            "expectedReturnDate": (now + self.loan_period).isoformat(),
            "actualReturnDate": None,
            "status": "ACTIVE",
            "userUsername": user.get("username"),
            "userFirstName": user.get("firstName"),
            "userLastName": user.get("lastName"),
            "bookTitle": book["title"],
            "bookAuthor": book["author"],
        }
        self.reservations[reservation["id"]] = reservation
        return reservation

    def mark_overdue(self) -> None:
        now = datetime.now()
        for reservation in self.reservations.values():
            due = datetime.fromisoformat(reservation["expectedReturnDate"])
            if reservation["status"] == "ACTIVE" and now > due:
                reservation["status"] = "OVERDUE"

    def close_reservation(self, reservation_id: str, status: str) -> bool:
        reservation = self.reservations.get(reservation_id)
        if not reservation or reservation["status"] not in ("ACTIVE", "OVERDUE"):
            return False
        reservation["status"] = status
        if status == "RETURNED":
            reservation["actualReturnDate"] = datetime.now().isoformat()
        self.return_copy(reservation["bookId"])
        return True


DEMO_BOOKS = [
    {"title": "The Pragmatic Programmer", "author": "Andrew Hunt", "categories": ["Programming"],
     "totalCopies": 3, "isbn": "9780201616224", "publicationYear": 1999},
    {"title": "Clean Code", "author": "Robert C. Martin", "categories": ["Programming"],
     "totalCopies": 2, "isbn": "9780132350884", "publicationYear": 2008},
    {"title": "Dune", "author": "Frank Herbert", "categories": ["Science Fiction", "Classics"],
     "totalCopies": 4, "isbn": "9780441013593", "publicationYear": 1965},
    {"title": "Sapiens", "author": "Yuval Noah Harari", "categories": ["History"],
     "totalCopies": 1, "isbn": "9780099590088", "publicationYear": 2011},
]


def seed(store: LibraryStore) -> None:
    store.add_user(settings.seed_admin_username, settings.seed_admin_password,
                   f"{settings.seed_admin_username}@library.local", "Library", "Admin", role="ADMIN")
    if settings.seed_demo_books:
        for book in DEMO_BOOKS:
            store.save_book(book)


def create_app(store: Optional[LibraryStore] = None, with_seed: bool = True) -> FastAPI:
    """Build a fresh app. Each app owns its own store."""
    if store is None:
        store = LibraryStore(settings.loan_period_days)
        if with_seed:
            seed(store)

    app = FastAPI(title=f"{settings.app_name} reference API", version=settings.app_version)
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Security ---
    def current_user(request: Request) -> Dict[str, Any]:
        header = request.headers.get("Authorization", "")
        token = header[7:] if header.startswith("Bearer ") else None
        user_id = store.tokens.get(token) if token else None
        if not user_id or user_id not in store.users:
            raise HTTPException(status_code=401, detail="Invalid token")
        return store.users[user_id]

    def admin_user(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
        if user["role"] != "ADMIN":
            raise HTTPException(status_code=403, detail="Admin access required")
        return user

    # --- Auth ---
    @app.post("/api/auth/login")
    def login(payload: LoginRequest):
        token = store.authenticate(payload.username, payload.password)
        if not token:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        user = store.users[store.tokens[token]]
        return {"token": token, "user": store.public_user(user)}

    @app.post("/api/auth/signup")
    def signup(payload: SignupRequest):
        try:
            user = store.add_user(payload.username, payload.password, payload.email,
                                  payload.firstName, payload.lastName)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return store.public_user(user)

    @app.get("/api/auth/me")
    def me(user: Dict[str, Any] = Depends(current_user)):
        return store.public_user(user)

    # --- Books ---
    @app.get("/api/books")
    def list_books():
        return list(store.books.values())

    @app.get("/api/books/search")
    def search_books(query: str = Query(...)):
        needle = query.lower()
        return [b for b in store.books.values()
                if needle in b["title"].lower() or needle in b["author"].lower()]

    @app.get("/api/books/category")
    def books_by_category(categories: List[str] = Query(...)):
        # Accept both repeated and comma separated parameters
        wanted = {c.strip() for raw in categories for c in raw.split(",") if c.strip()}
        return [b for b in store.books.values() if wanted.intersection(b["categories"])]

    @app.get("/api/books/{book_id}")
    def get_book(book_id: str):
        book = store.books.get(book_id)
        if not book:
            raise HTTPException(status_code=404, detail="Book not found")
        return book

    @app.post("/api/books", dependencies=[Depends(admin_user)])
    def create_book(payload: BookPayload):
        try:
            return store.save_book(payload.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.put("/api/books/{book_id}", dependencies=[Depends(admin_user)])
    def update_book(book_id: str, payload: BookPayload):
        if book_id not in store.books:
            raise HTTPException(status_code=404, detail="Book not found")
        try:
            return store.save_book(payload.model_dump(), book_id=book_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.delete("/api/books/{book_id}", dependencies=[Depends(admin_user)])
    def delete_book(book_id: str):
        if store.books.pop(book_id, None) is None:
            raise HTTPException(status_code=404, detail="Book not found")
        return Response(status_code=204)

    # --- Reservations ---
    @app.get("/api/reservations", dependencies=[Depends(admin_user)])
    def list_reservations():
        store.mark_overdue()
        return list(store.reservations.values())

    @app.post("/api/reservations")
    def create_reservation(payload: ReservationRequest, user: Dict[str, Any] = Depends(current_user)):
        if not payload.userId or not payload.bookId:
            raise HTTPException(status_code=400, detail="userId and bookId are required")
        if payload.userId != user["id"] and user["role"] != "ADMIN":
            raise HTTPException(status_code=403, detail="Cannot reserve for another user")
        if payload.bookId not in store.books:
            raise HTTPException(status_code=404, detail="Book not found")
        try:
            reservation = store.create_reservation(payload.userId, payload.bookId)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        logger.info(f"Reservation {reservation['id']} created for book {payload.bookId}")
        return reservation

    @app.get("/api/reservations/user/{user_id}")
    def user_reservations(user_id: str, user: Dict[str, Any] = Depends(current_user)):
        if user_id != user["id"] and user["role"] != "ADMIN":
            raise HTTPException(status_code=403, detail="Cannot view another user's reservations")
        store.mark_overdue()
        return [r for r in store.reservations.values() if r["userId"] == user_id]

    def _owned_reservation(reservation_id: str, user: Dict[str, Any]) -> None:
        reservation = store.reservations.get(reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        if reservation["userId"] != user["id"] and user["role"] != "ADMIN":
            raise HTTPException(status_code=403, detail="Not your reservation")

    @app.post("/api/reservations/{reservation_id}/return")
    def return_reservation(reservation_id: str, user: Dict[str, Any] = Depends(current_user)):
        _owned_reservation(reservation_id, user)
        if not store.close_reservation(reservation_id, "RETURNED"):
            raise HTTPException(status_code=400, detail="Failed to return book")
        return {"message": "Book returned successfully"}

    @app.post("/api/reservations/{reservation_id}/cancel")
    def cancel_reservation(reservation_id: str, user: Dict[str, Any] = Depends(current_user)):
        _owned_reservation(reservation_id, user)
        if not store.close_reservation(reservation_id, "CANCELLED"):
            raise HTTPException(status_code=400, detail="Failed to cancel reservation")
        return {"message": "Reservation cancelled successfully"}

    @app.get("/health")
    def health():
        return {"status": "ok", "books": len(store.books), "reservations": len(store.reservations)}

    return app


app = create_app()
