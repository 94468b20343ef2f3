import httpx
import pytest

from catalog_client.devserver import LibraryStore, create_app
from catalog_client.services.http_client import ApiClient
from catalog_client.token_store import MemoryTokenStore

BASE_URL = "http://testserver"

ADMIN = ("admin", "admin-pass")
MEMBER = ("alice", "alice-pass")


@pytest.fixture
def store():
    # Deterministic data for every test
    store = LibraryStore(loan_period_days=14)
    store.add_user(*ADMIN, email="admin@library.local", first_name="Ada", last_name="Admin", role="ADMIN")
    store.add_user(*MEMBER, email="alice@example.com", first_name="Alice", last_name="Reader")
    store.save_book({"title": "Dune", "author": "Frank Herbert", "categories": ["Science Fiction"],
                     "totalCopies": 3, "availableCopies": 1}, book_id="b1")
    store.save_book({"title": "Hyperion", "author": "Dan Simmons", "categories": ["Science Fiction"],
                     "totalCopies": 2}, book_id="b2")
    store.save_book({"title": "Foundation", "author": "Isaac Asimov", "categories": ["Science Fiction", "Classics"],
                     "totalCopies": 1, "availableCopies": 0}, book_id="b3")
    store.save_book({"title": "Sapiens", "author": "Yuval Noah Harari", "categories": ["History"],
                     "totalCopies": 2}, book_id="b4")
    return store


@pytest.fixture
def backend(store):
    return create_app(store)


@pytest.fixture
def api_factory(backend):
    """Build ApiClients talking to the in-process reference API."""
    def _make() -> ApiClient:
        return ApiClient(base_url=BASE_URL, transport=httpx.ASGITransport(app=backend), retries=1)
    return _make


@pytest.fixture
def mock_api():
    """Build an ApiClient whose answers come from ``handler``."""
    def _make(handler) -> ApiClient:
        return ApiClient(base_url=BASE_URL, transport=httpx.MockTransport(handler), retries=2, backoff=0)
    return _make


@pytest.fixture
def token_store():
    return MemoryTokenStore()
