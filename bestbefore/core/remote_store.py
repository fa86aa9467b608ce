"""Remote product store client speaking the Supabase (PostgREST) REST dialect.

Every call returns a RemoteResult with either data or a classified error;
HTTP and transport failures are never raised to the caller.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from bestbefore.core.config import Constants, Settings
from bestbefore.core.errors import RemoteError, classify_remote_error


logger = logging.getLogger(__name__)


class RemoteResult(BaseModel):
    """Response of a remote store request: `data` on success, `error` on failure."""

    data: Any = None
    error: RemoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_filter_params(filters: dict[str, Any]) -> dict[str, str]:
    """Translate equality filters into PostgREST query parameters (column=eq.value)."""
    return {column: f"eq.{value}" for column, value in filters.items()}


class RemoteStore:
    """Async client for table-level insert/update/delete/select requests."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        timeout: float = Constants.REMOTE_REQUEST_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json", "Prefer": "return=representation"}
        if api_key:
            headers["apikey"] = api_key
        bearer = access_token or api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers=headers,
            timeout=timeout,
        )
        if client is not None:
            self._client.headers.update(headers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RemoteStore":
        return cls(
            base_url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            access_token=settings.supabase_access_token,
        )

    def set_access_token(self, access_token: str) -> None:
        """Send subsequent requests as the signed-in user."""
        self._client.headers["Authorization"] = f"Bearer {access_token}"

    async def insert(self, table: str, record: dict[str, Any]) -> RemoteResult:
        return await self._request("POST", table, json=to_jsonable_python(record))

    async def update(self, table: str, filters: dict[str, Any], patch: dict[str, Any]) -> RemoteResult:
        return await self._request("PATCH", table, params=build_filter_params(filters), json=to_jsonable_python(patch))

    async def delete(self, table: str, filters: dict[str, Any]) -> RemoteResult:
        return await self._request("DELETE", table, params=build_filter_params(filters))

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        *,
        order: str | None = None,
    ) -> RemoteResult:
        params = {"select": "*", **build_filter_params(filters or {})}
        if order:
            params["order"] = order
        return await self._request("GET", table, params=params)

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,  # noqa: ANN401
    ) -> RemoteResult:
        try:
            response = await self._client.request(method, f"/{table}", params=params, json=json)
        except httpx.HTTPError as e:
            error = classify_remote_error(message=str(e) or type(e).__name__, exception_type=type(e).__name__)
            logger.warning(
                "Remote request failed",
                extra={"method": method, "table": table, "error": error.message, "kind": error.kind},
            )
            return RemoteResult(error=error)

        if response.status_code >= Constants.HTTP_BAD_REQUEST:
            error = classify_remote_error(message=_error_message(response), status=response.status_code)
            logger.warning(
                "Remote request rejected",
                extra={
                    "method": method,
                    "table": table,
                    "status": response.status_code,
                    "error": error.message,
                    "kind": error.kind,
                },
            )
            return RemoteResult(error=error)

        try:
            data = response.json() if response.content else None
        except ValueError as e:
            # Captive portals and proxies answer with HTML while the network is half up
            error = classify_remote_error(
                message=f"Unexpected non-JSON response (HTTP {response.status_code}): {e}",
                exception_type=type(e).__name__,
            )
            logger.warning(
                "Remote response could not be decoded",
                extra={"method": method, "table": table, "status": response.status_code, "error": error.message},
            )
            return RemoteResult(error=error)

        logger.debug("Remote request succeeded", extra={"method": method, "table": table})
        return RemoteResult(data=data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    """Extract the PostgREST error message, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
