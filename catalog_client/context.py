from typing import Optional

from catalog_client.guard import Guard
from catalog_client.services.catalog import CatalogClient
from catalog_client.services.http_client import ApiClient
from catalog_client.services.reservations import ReservationClient
from catalog_client.session import Session
from catalog_client.token_store import TokenStore


class ClientContext:
    """Wires the shared transport, the session and the clients together.

    One context is created per process (per CLI invocation). It restores the
    stored session on entry and closes the HTTP pool on exit.
    """

    def __init__(self, api: Optional[ApiClient] = None, token_store: Optional[TokenStore] = None) -> None:
        self.api = api or ApiClient()
        self.session = Session(self.api, token_store or TokenStore())
        self.guard = Guard(self.session)
        self.catalog = CatalogClient(self.api)
        self.reservations = ReservationClient(self.api, self.session)

    async def __aenter__(self) -> "ClientContext":
        self.session.restore()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.api.close()
