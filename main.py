import asyncio
import logging
import os
import subprocess
import sys
from typing import List, Optional

import typer

from catalog_client.config import settings
from catalog_client.context import ClientContext
from catalog_client.guard import Decision, Route
from catalog_client.models import ReservationStatus
from catalog_client.reconciler import BookDetailView
from catalog_client.errors import CatalogClientError
from catalog_client.services.http_client import ApiClient
from catalog_client.token_store import TokenStore
from catalog_client.ui_helpers import (
    print_book_detail,
    print_book_list,
    print_overview,
    print_reservations,
    set_output_mode,
)
from catalog_client.views import AdminDashboardView, BookListView, ProfileView

APP_NAME = "Library Catalog CLI"

logging.basicConfig(level=getattr(logging, settings.log_level, logging.WARNING))


# Factories kept at module level so tests can point the CLI at another backend
def _api_client() -> ApiClient:
    return ApiClient()


def _token_store() -> TokenStore:
    return TokenStore()


def _context() -> ClientContext:
    return ClientContext(_api_client(), _token_store())


def _run(coro):
    return asyncio.run(coro)


def _print_redirect(decision: Decision) -> None:
    if decision.redirect is Route.LOGIN:
        print("Please log in first (redirected to /login).")
    else:
        print(f"You do not have access to this page (redirected to {decision.redirect.value}).")


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)
admin_app = typer.Typer(help="Administrator commands")
app.add_typer(admin_app, name="admin")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


# --- Session ---
@app.command("login")
def cli_login(
    username: str,
    password: str = typer.Option(..., prompt=True, hide_input=True),
):
    """Log in and remember the session for later commands."""
    async def _login():
        async with _context() as ctx:
            return await ctx.session.login(username, password)

    result = _run(_login())
    if result.success:
        name = result.user.full_name if result.user else username
        print(f"Logged in as {name}.")
    else:
        print(f"Error: {result.error}")


@app.command("logout")
def cli_logout():
    """Forget the stored session."""
    async def _logout():
        async with _context() as ctx:
            ctx.session.logout()

    _run(_logout())
    print("Logged out.")


@app.command("signup")
def cli_signup(
    username: str,
    email: str = typer.Option(..., "--email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    first_name: str = typer.Option("", "--first-name"),
    last_name: str = typer.Option("", "--last-name"),
):
    """Create an account. Log in afterwards to use it."""
    profile = {
        "username": username,
        "password": password,
        "email": email,
        "firstName": first_name,
        "lastName": last_name,
    }

    async def _signup():
        async with _context() as ctx:
            return await ctx.session.signup(profile)

    result = _run(_signup())
    if result.success:
        print(f"Account created for {result.user.username}. Please log in to continue.")
    else:
        print(f"Error: {result.error}")


@app.command("whoami")
def cli_whoami():
    """Show the logged in account."""
    async def _whoami():
        async with _context() as ctx:
            if not ctx.session.authenticated:
                return None
            return await ctx.session.fetch_current_user()

    result = _run(_whoami())
    if result is None:
        print("Not logged in.")
    elif result.success:
        user = result.user
        role = user.role.value.lower() if user.role else "unknown"
        print(f"{user.full_name} ({user.username}, {user.email}) - {role}")
    else:
        print(f"Error: {result.error}")


# --- Catalog ---
@app.command("home")
def cli_home():
    """Welcome screen with a few featured books."""
    async def _home():
        async with _context() as ctx:
            view = BookListView(ctx.catalog)
            await view.load()
            return view

    view = _run(_home())
    print(f"Welcome to {settings.app_name}")
    if view.error:
        print(f"Error: {view.error}")
        return
    print("Featured Books:")
    print_book_list(view.featured())


@app.command("books")
def cli_books(
    search: str = typer.Option("", "--search", "-s", help="Search by title or author"),
    category: str = typer.Option("", "--category", "-c", help="Filter by category"),
):
    """List books, optionally searched and filtered."""
    async def _books():
        async with _context() as ctx:
            view = BookListView(ctx.catalog)
            if search:
                await view.search(search)
            elif category:
                await view.filter_by_category(category)
            else:
                await view.load()
            # Both filters stay active for the in-memory pass
            view.search_query = search
            view.selected_category = category
            return view

    view = _run(_books())
    if view.error:
        print(f"Error: {view.error}")
        return
    print_book_list(view.visible_books)


@app.command("categories")
def cli_categories():
    """List every category in the catalog."""
    async def _categories():
        async with _context() as ctx:
            return await ctx.catalog.list_categories()

    try:
        categories = _run(_categories())
    except CatalogClientError as e:
        print(f"Error: {e.message}")
        return
    if not categories:
        print("No categories.")
    for category in categories:
        print(category)


@app.command("book")
def cli_book(
    book_id: str,
    reserve: bool = typer.Option(False, "--reserve", "-r", help="Reserve a copy after loading"),
):
    """Show a book with its availability and similar titles."""
    async def _book():
        async with _context() as ctx:
            view = BookDetailView(book_id, ctx.catalog, ctx.reservations, ctx.session)
            await view.load()
            outcome = None
            if reserve and view.book is not None:
                outcome = await view.reserve()
            view.close()
            return view, outcome

    view, outcome = _run(_book())
    if view.book is None:
        print(f"Error: {view.error}")
        return
    print_book_detail(view.book, view.reserve_label, view.similar)
    if outcome is not None:
        _print_reserve_outcome(outcome)


def _print_reserve_outcome(outcome) -> None:
    if outcome.redirect is Route.LOGIN and not outcome.message:
        print("Please log in first (redirected to /login).")
    elif outcome.success:
        print(outcome.message)
    else:
        print(f"Error: {outcome.message}")
        if outcome.redirect is Route.LOGIN:
            print("Please log in again (redirected to /login).")


@app.command("reserve")
def cli_reserve(book_id: str):
    """Reserve a copy of a book."""
    async def _reserve():
        async with _context() as ctx:
            view = BookDetailView(book_id, ctx.catalog, ctx.reservations, ctx.session)
            if not ctx.session.authenticated:
                # Nothing is sent for anonymous users
                outcome = await view.reserve()
                return view, outcome
            await view.load()
            if view.book is None:
                return view, None
            outcome = await view.reserve()
            view.close()
            return view, outcome

    view, outcome = _run(_reserve())
    if outcome is None:
        print(f"Error: {view.error}")
        return
    _print_reserve_outcome(outcome)
    if view.book is not None and outcome.success:
        print(f"Available Copies: {view.book.available_copies} of {view.book.total_copies}")


# --- Member area ---
@app.command("profile")
def cli_profile():
    """Show your account and reservation history."""
    async def _profile():
        async with _context() as ctx:
            view = ProfileView(ctx.guard, ctx.reservations)
            decision = await view.open()
            return view, decision

    view, decision = _run(_profile())
    if not decision.allowed:
        _print_redirect(decision)
        return
    user = view.session.user
    if user:
        role = user.role.value.lower() if user.role else "unknown"
        print(f"Name: {user.full_name}")
        print(f"Email: {user.email}")
        print(f"Role: {role}")
    if view.error:
        print(f"Error: {view.error}")
        return
    print(f"Active Reservations: {view.count(ReservationStatus.ACTIVE)}")
    print(f"Books Returned: {view.count(ReservationStatus.RETURNED)}")
    print_reservations(view.reservations)


def _close_reservation(reservation_id: str, cancel: bool) -> None:
    async def _close():
        async with _context() as ctx:
            decision = ctx.guard.requires_authentication()
            if not decision.allowed:
                return decision, None
            try:
                if cancel:
                    await ctx.reservations.cancel_reservation(reservation_id)
                else:
                    await ctx.reservations.return_reservation(reservation_id)
            except CatalogClientError as e:
                fallback = "Failed to cancel reservation" if cancel else "Failed to return book"
                return decision, e.detail or fallback
            return decision, None

    decision, error = _run(_close())
    if not decision.allowed:
        _print_redirect(decision)
    elif error:
        print(f"Error: {error}")
    elif cancel:
        print("Reservation cancelled.")
    else:
        print("Book returned successfully.")


@app.command("return")
def cli_return(reservation_id: str):
    """Return the book of an active reservation."""
    _close_reservation(reservation_id, cancel=False)


@app.command("cancel")
def cli_cancel(reservation_id: str):
    """Cancel an active reservation and release its copy."""
    _close_reservation(reservation_id, cancel=True)


# --- Admin ---
def _open_dashboard(action=None):
    async def _open():
        async with _context() as ctx:
            view = AdminDashboardView(ctx.guard, ctx.catalog, ctx.reservations)
            decision = await view.open()
            result = None
            if decision.allowed and action is not None:
                result = await action(view)
            return view, decision, result

    return _run(_open())


@admin_app.command("overview")
def cli_admin_overview():
    """Catalog and reservation statistics."""
    view, decision, _ = _open_dashboard()
    if not decision.allowed:
        _print_redirect(decision)
        return
    if view.error:
        print(f"Error: {view.error}")
        return
    print_overview(view.overview())


@admin_app.command("reservations")
def cli_admin_reservations():
    """Every reservation in the system."""
    view, decision, _ = _open_dashboard()
    if not decision.allowed:
        _print_redirect(decision)
        return
    if view.error:
        print(f"Error: {view.error}")
        return
    print_reservations(view.reservations)


@admin_app.command("add-book")
def cli_admin_add_book(
    title: str = typer.Option(..., "--title"),
    author: str = typer.Option(..., "--author"),
    categories: List[str] = typer.Option(..., "--category", help="Repeat for several categories"),
    total_copies: int = typer.Option(1, "--copies", min=1),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    publication_year: Optional[int] = typer.Option(None, "--year"),
    description: Optional[str] = typer.Option(None, "--description"),
    cover_image_url: Optional[str] = typer.Option(None, "--cover-url"),
):
    """Add a book to the catalog."""
    data = {
        "title": title,
        "author": author,
        "categories": [c.strip() for c in categories if c.strip()],
        "totalCopies": total_copies,
        "isbn": isbn,
        "publicationYear": publication_year,
        "description": description,
        "coverImageUrl": cover_image_url,
    }

    async def _add(view: AdminDashboardView):
        return await view.add_book(data)

    view, decision, book = _open_dashboard(_add)
    if not decision.allowed:
        _print_redirect(decision)
    elif book is None:
        print(f"Error: {view.error}")
    else:
        print(f"Successfully added: {book.title} by {book.author} (id {book.id})")


@admin_app.command("update-book")
def cli_admin_update_book(
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    categories: Optional[List[str]] = typer.Option(None, "--category", help="Replaces all categories"),
    total_copies: Optional[int] = typer.Option(None, "--copies", min=1),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    publication_year: Optional[int] = typer.Option(None, "--year"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Change fields of an existing book."""
    changes = {
        "title": title,
        "author": author,
        "categories": [c.strip() for c in categories if c.strip()] if categories else None,
        "totalCopies": total_copies,
        "isbn": isbn,
        "publicationYear": publication_year,
        "description": description,
    }

    async def _update(view: AdminDashboardView):
        return await view.update_book(book_id, changes)

    view, decision, book = _open_dashboard(_update)
    if not decision.allowed:
        _print_redirect(decision)
    elif book is None:
        print(f"Error: {view.error}")
    else:
        print(f"Updated: {book.title} by {book.author} "
              f"({book.available_copies} of {book.total_copies} available)")


@admin_app.command("delete-book")
def cli_admin_delete_book(
    book_id: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Remove a book from the catalog."""
    if not yes and not typer.confirm("Are you sure you want to delete this book?"):
        print("Aborted.")
        return

    async def _delete(view: AdminDashboardView):
        return await view.delete_book(book_id)

    view, decision, deleted = _open_dashboard(_delete)
    if not decision.allowed:
        _print_redirect(decision)
    elif not deleted:
        print(f"Error: {view.error}")
    else:
        print(f"Book {book_id} has been removed.")


# --- Reference server ---
@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Start the in-memory reference API with uvicorn."""
    host = host or settings.server_host
    port = int(port or settings.server_port)
    print(f"Starting reference API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "catalog_client.devserver:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, check=False, env=dict(os.environ))
    except KeyboardInterrupt:
        print("Server stopped.")


if __name__ == "__main__":
    app()
