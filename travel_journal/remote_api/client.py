# travel_journal/remote_api/client.py
#
# Async client for the Supabase-compatible backend: GoTrue auth (anonymous sign-up,
# refresh) and PostgREST table access (select / upsert / update).
#
# Imports
import json
from typing import Optional, Dict, Any, List, Tuple
#
# 3rd-party Libraries
import httpx
from loguru import logger
#
# Local Imports
from travel_journal.Constants import AUTH_SESSION_KEY, TABLE_TRIPS
from travel_journal.DB.Sync_State import SyncStateStore
from .exceptions import APIConnectionError, APIRequestError, APIResponseError, AuthenticationError
from .schemas import AuthSession
#
########################################################################################################################
#
# Functions:

# A PostgREST filter: column -> (operator, value), e.g. {"updated_at": ("gt", "2024-01-01T00:00:00Z")}
Filters = Dict[str, Tuple[str, Any]]


def _render_filters(filters: Optional[Filters]) -> Dict[str, str]:
    rendered = {}
    for column, (operator, value) in (filters or {}).items():
        if isinstance(value, bool):
            value = str(value).lower()
        rendered[column] = f"{operator}.{value}"
    return rendered


class RemoteStoreClient:
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        timeout: float = 30.0,
        state_store: Optional[SyncStateStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url or not anon_key:
            raise ValueError("Remote backend URL or anon key is not set.")
        self.base_url = base_url.rstrip('/')
        self.anon_key = anon_key
        self.timeout = timeout
        self.state_store = state_store
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._session: Optional[AuthSession] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"apikey": self.anon_key},
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RemoteStoreClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- Transport ---

    def _auth_headers(self) -> Dict[str, str]:
        token = self._session.access_token if self._session else self.anon_key
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{endpoint}"
        request_headers = {**self._auth_headers(), **(headers or {})}

        try:
            response = await client.request(method, endpoint, params=params, json=json_body, headers=request_headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_detail = str(e)
            response_data = None
            try:
                response_data = e.response.json()
                if isinstance(response_data, dict):
                    error_detail = (response_data.get("message") or response_data.get("msg")
                                    or response_data.get("error_description") or response_data.get("error")
                                    or error_detail)
            except ValueError:
                pass

            status = e.response.status_code
            if status in (401, 403):
                if self._session is not None:
                    # Force a refresh on the next ensure_session()
                    self._session.expires_at = 0
                raise AuthenticationError(f"Authentication failed: {error_detail}") from e
            if status in (400, 422):
                raise APIRequestError(f"Request rejected: {error_detail}", response_data=response_data) from e
            raise APIResponseError(status, error_detail, response_data=response_data) from e
        except httpx.RequestError as e:  # Covers ConnectError, TimeoutException, etc.
            raise APIConnectionError(f"Connection error to {url}: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError:
            raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                   response_data={"raw_text": response.text})

    # --- Auth ---

    def _load_persisted_session(self) -> Optional[AuthSession]:
        if self.state_store is None:
            return None
        stored = self.state_store.get(AUTH_SESSION_KEY)
        if not stored:
            return None
        try:
            return AuthSession.model_validate(stored)
        except ValueError as e:
            logger.warning(f"Discarding unreadable persisted auth session: {e}")
            self.state_store.delete(AUTH_SESSION_KEY)
            return None

    def _store_session(self, session: AuthSession) -> AuthSession:
        self._session = session
        if self.state_store is not None:
            self.state_store.set(AUTH_SESSION_KEY, session.model_dump())
        return session

    async def _session_from(self, endpoint: str, params: Optional[Dict[str, Any]], body: Dict[str, Any]) -> AuthSession:
        self._session = None
        payload = await self._request("POST", endpoint, params=params, json_body=body)
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthenticationError(f"Auth endpoint {endpoint} did not return a session.")
        return self._store_session(AuthSession.from_auth_response(payload))

    async def _refresh_session(self, refresh_token: str) -> AuthSession:
        logger.debug("Refreshing remote auth session.")
        return await self._session_from(
            "/auth/v1/token", {"grant_type": "refresh_token"}, {"refresh_token": refresh_token})

    async def _sign_up_anonymously(self) -> AuthSession:
        logger.info("No usable remote session; signing up anonymously.")
        return await self._session_from("/auth/v1/signup", None, {})

    async def ensure_session(self) -> AuthSession:
        """
        Returns a valid session, refreshing a stored one or bootstrapping an anonymous
        identity when needed.

        Raises:
            AuthenticationError: If the backend refuses both refresh and anonymous sign-up.
            APIConnectionError: If the backend cannot be reached.
        """
        if self._session is None:
            self._session = self._load_persisted_session()
        if self._session is not None and not self._session.is_expired():
            return self._session

        if self._session is not None and self._session.refresh_token:
            try:
                return await self._refresh_session(self._session.refresh_token)
            except (AuthenticationError, APIRequestError) as e:
                logger.warning(f"Stored session could not be refreshed ({e}); signing up again.")
        return await self._sign_up_anonymously()

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    # --- Tables ---

    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        columns: str = "*",
        limit: Optional[int] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": columns, **_render_filters(filters)}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = int(limit)
        rows = await self._request("GET", f"/rest/v1/{table}", params=params)
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise APIResponseError(200, f"Expected a list of rows from '{table}'", response_data={"body": rows})
        return rows

    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str = "id") -> None:
        """Inserts `row`, or overwrites the existing row with the same `on_conflict` key."""
        await self._request(
            "POST",
            f"/rest/v1/{table}",
            params={"on_conflict": on_conflict},
            json_body=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def update(self, table: str, fields: Dict[str, Any], filters: Filters) -> None:
        if not filters:
            raise ValueError("Refusing to update a remote table without filters.")
        await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=_render_filters(filters),
            json_body=fields,
            headers={"Prefer": "return=minimal"},
        )

    async def probe(self) -> None:
        """Minimal read used as a reachability check. Raises on any failure."""
        await self.select(TABLE_TRIPS, columns="id", limit=1)

#
# End of travel_journal/remote_api/client.py
########################################################################################################################
