import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from catalog_client.config import settings
from catalog_client.errors import CatalogClientError, TransientError, error_from_response

logger = logging.getLogger(__name__)


class ApiClient:
    """Shared HTTP transport for every call to the library backend.

    Holds one connection pool and the process-wide bearer credential: once
    :meth:`set_bearer_token` is called every outgoing request carries it until
    :meth:`clear_bearer_token`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
    ) -> None:
        limits = httpx.Limits(
            max_keepalive_connections=10,
            max_connections=20,
            keepalive_expiry=30.0,
        )
        timeout = httpx.Timeout(
            timeout=settings.request_timeout,
            connect=settings.connect_timeout,
        )

        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.retries = max(1, retries if retries is not None else settings.retry_attempts)
        self.backoff = settings.retry_backoff if backoff is None else backoff

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            limits=limits,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    # ------------------------- Credential ------------------------- #
    def set_bearer_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    def clear_bearer_token(self) -> None:
        self._client.headers.pop("Authorization", None)

    @property
    def has_credential(self) -> bool:
        return "Authorization" in self._client.headers

    # ------------------------- Requests ------------------------- #
    async def request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded body.

        Raises a :class:`CatalogClientError` subclass for any non-2xx answer
        and :class:`TransientError` when the backend cannot be reached.
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.error(f"{method} {path} failed: {exc}")
            raise TransientError("Library service is unreachable") from exc

        if response.is_error:
            error = error_from_response(response)
            logger.warning(f"{method} {path} -> {response.status_code}: {error.message}")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def get_with_retry(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET with exponential backoff on transport failures.

        Only used for reads; mutations are never retried.
        """
        for attempt in range(self.retries):
            try:
                return await self.get(path, params=params)
            except TransientError as exc:
                # 5xx answers are not retried, only connection level failures
                if exc.status_code is not None or attempt == self.retries - 1:
                    raise
                wait_time = self.backoff * (2 ** attempt)
                logger.info(f"Retrying GET {path} in {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
        raise CatalogClientError(f"GET {path} failed")  # pragma: no cover

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
