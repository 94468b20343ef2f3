import asyncio

import httpx
import pytest

from catalog_client.errors import MalformedResponseError, NotFoundError
from catalog_client.models import Book
from catalog_client.services.catalog import CatalogClient, filter_books


def _run_catalog(api_factory, action):
    async def scenario():
        api = api_factory()
        try:
            return await action(CatalogClient(api))
        finally:
            await api.close()

    return asyncio.run(scenario())


def test_list_and_get_books(api_factory):
    books = _run_catalog(api_factory, lambda c: c.list_books())
    assert [b.id for b in books] == ["b1", "b2", "b3", "b4"]
    book = _run_catalog(api_factory, lambda c: c.get_book("b3"))
    assert book.title == "Foundation"
    assert not book.is_available


def test_get_unknown_book_raises_not_found(api_factory):
    with pytest.raises(NotFoundError):
        _run_catalog(api_factory, lambda c: c.get_book("missing"))


def test_search_matches_title_or_author_case_insensitively(api_factory):
    by_title = _run_catalog(api_factory, lambda c: c.search_books("dUNe"))
    by_author = _run_catalog(api_factory, lambda c: c.search_books("asimov"))
    assert [b.id for b in by_title] == ["b1"]
    assert [b.id for b in by_author] == ["b3"]


def test_blank_search_lists_everything(api_factory):
    books = _run_catalog(api_factory, lambda c: c.search_books("   "))
    assert len(books) == 4


def test_category_filter_and_category_listing(api_factory):
    history = _run_catalog(api_factory, lambda c: c.books_by_category("History"))
    assert [b.id for b in history] == ["b4"]
    several = _run_catalog(api_factory, lambda c: c.books_by_category("History", "Classics"))
    assert {b.id for b in several} == {"b3", "b4"}
    categories = _run_catalog(api_factory, lambda c: c.list_categories())
    assert categories == ["Classics", "History", "Science Fiction"]


@pytest.mark.parametrize("query,category", [
    ("dune", ""),
    ("", "Science Fiction"),
    ("a", "Classics"),
    ("HARARI", ""),
    ("nothing-matches", ""),
])
def test_local_filter_agrees_with_server_filters(api_factory, query, category):
    everything = _run_catalog(api_factory, lambda c: c.list_books())
    server = everything
    if query:
        server = _run_catalog(api_factory, lambda c: c.search_books(query))
    if category:
        server = [b for b in server if category in b.categories] if query else \
            _run_catalog(api_factory, lambda c: c.books_by_category(category))
    local = filter_books(everything, query, category)
    assert [b.id for b in local] == [b.id for b in server]


def test_filter_is_idempotent_on_filtered_results():
    books = [Book(id="1", title="Dune", author="Herbert", categories=["SF"], total_copies=1, available_copies=1),
             Book(id="2", title="Emma", author="Austen", categories=["Classics"], total_copies=1, available_copies=1)]
    once = filter_books(books, "dune", "SF")
    assert filter_books(once, "dune", "SF") == once


def test_similar_books_respects_limit(api_factory):
    async def action(catalog):
        book = await catalog.get_book("b1")
        return await catalog.similar_books(book, limit=1)

    similar = _run_catalog(api_factory, action)
    assert [b.id for b in similar] == ["b2"]


def test_similar_books_for_uncategorised_book_makes_no_request(mock_api):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=[])

    async def scenario():
        api = mock_api(handler)
        result = await CatalogClient(api).similar_books(Book(id="x", title="T", author="A"))
        await api.close()
        return result

    assert asyncio.run(scenario()) == []
    assert calls == []


def test_category_request_uses_comma_separated_parameter(mock_api):
    params = []

    def handler(request):
        params.append(request.url.params.get("categories"))
        return httpx.Response(200, json=[])

    async def scenario():
        api = mock_api(handler)
        await CatalogClient(api).books_by_category("History", "", "Classics")
        await api.close()

    asyncio.run(scenario())
    assert params == ["History,Classics"]


@pytest.mark.parametrize("payload", [
    [{"id": "b1", "title": "Dune", "author": "Frank Herbert", "totalCopies": 3, "availableCopies": 5}],
    [{"title": "No id"}],
    {"books": []},
])
def test_unreadable_book_list_raises_client_error(mock_api, payload):
    async def scenario():
        api = mock_api(lambda request: httpx.Response(200, json=payload))
        try:
            return await CatalogClient(api).list_books()
        finally:
            await api.close()

    with pytest.raises(MalformedResponseError):
        asyncio.run(scenario())


def test_update_book_replaces_record(api_factory, store):
    async def action(catalog):
        book = await catalog.get_book("b2")
        data = book.to_dict()
        data.update({"title": "Hyperion (Revised)", "totalCopies": 4, "availableCopies": 4})
        return await catalog.update_book("b2", data)

    book = _run_catalog(api_factory, action)
    assert book.title == "Hyperion (Revised)"
    assert store.books["b2"]["totalCopies"] == 4
