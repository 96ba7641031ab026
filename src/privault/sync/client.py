"""Async HTTP client for the metadata sync server."""

import asyncio

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx

from privault.sync.device import DeviceIdentity
from privault.sync.models import AuthSession, FileMetadata, SyncResult, SyncStatus, VaultFileMetadata
from privault.utils.errors import (
    AuthenticationError, DecodingError, NotAuthenticated, ServerUnavailable, SyncServerError, SyncTimeout,
)
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CANDIDATES = ("http://localhost:8080", "http://localhost:3000", "http://localhost:5000")


class SyncClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


class SyncClient:
    """Client for the sync server: discovery, auth, metadata CRUD and sync exchanges.

    A session token is only held in memory; a new process must log in again.
    Sync exchanges are serialised so two pushes never share a sync token.
    """

    def __init__(
        self,
        device: DeviceIdentity,
        candidates: Sequence[str] = DEFAULT_CANDIDATES,
        probe_timeout: float = 3.0,
        request_timeout: float = 15.0,
        sync_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize sync client.

        Args:
            device: Identity of this installation, sent with auth and sync requests
            candidates: Base URLs probed in order by connect()
            probe_timeout: Per-candidate timeout for discovery probes (seconds)
            request_timeout: Timeout for a single request (seconds)
            sync_timeout: Overall bound on one push_metadata exchange (seconds)
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.device = device
        self.candidates = [c.rstrip("/") for c in candidates]
        self.probe_timeout = probe_timeout
        self.sync_timeout = sync_timeout
        self.http = httpx.AsyncClient(timeout=request_timeout, transport=transport)
        self.server_url: Optional[str] = None
        self.session: Optional[AuthSession] = None
        self.last_error: Optional[Exception] = None
        self._sync_lock = asyncio.Lock()

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    @property
    def state(self) -> SyncClientState:
        if self.session is not None:
            return SyncClientState.AUTHENTICATED
        if self.server_url is not None:
            return SyncClientState.CONNECTED
        return SyncClientState.DISCONNECTED

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    async def _probe(self, base_url: str) -> bool:
        try:
            response = await asyncio.wait_for(
                self.http.get(f"{base_url}/api/status", timeout=self.probe_timeout),
                self.probe_timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            logger.debug("Probe of %s failed: %s", base_url, type(e).__name__)
            return False
        if response.status_code != 200:
            return False
        try:
            payload = response.json()
        except ValueError:
            return False
        return isinstance(payload, dict) and payload.get("status") == "online"

    async def connect(self) -> bool:
        """Probe candidate endpoints in order; the first reporting "online" wins.

        Never raises: when every candidate fails, returns False and leaves a
        ServerUnavailable in ``last_error``.
        """
        for base_url in self.candidates:
            logger.info("Attempting connection to %s", base_url)
            if await self._probe(base_url):
                logger.info("Connected to sync server at %s", base_url)
                self.server_url = base_url
                self.last_error = None
                return True
        self.server_url = None
        self.session = None
        self.last_error = ServerUnavailable("No sync server responded on any candidate endpoint")
        logger.warning("Failed to connect to any sync server candidate")
        return False

    async def check_status(self) -> bool:
        if self.server_url is None:
            return False
        return await self._probe(self.server_url)

    async def _request(self, method: str, path: str, json: Any = None, authenticated: bool = True) -> httpx.Response:
        if authenticated and self.session is None:
            raise NotAuthenticated()
        if self.server_url is None:
            raise ServerUnavailable("Not connected to a sync server")

        headers = {"Accept": "application/json"}
        if authenticated:
            headers["Authorization"] = f"Bearer {self.session.token}"
        try:
            response = await self.http.request(method, f"{self.server_url}{path}", json=json, headers=headers)
        except httpx.TimeoutException:
            raise ServerUnavailable("Sync server did not respond in time") from None
        except httpx.HTTPError as e:
            raise ServerUnavailable(f"Could not reach sync server ({type(e).__name__})") from None

        if authenticated and response.status_code == 401:
            logger.warning("Sync server rejected the session token; session dropped")
            self.session = None
            raise NotAuthenticated("Session expired or was rejected. Please log in again.")
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise DecodingError() from None

    @staticmethod
    def _server_error(payload: Any) -> Optional[str]:
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            return payload["error"]
        return None

    def _checked(self, response: httpx.Response) -> Any:
        """Decode a response, turning error payloads and non-2xx statuses into SyncServerError."""
        try:
            payload = response.json()
        except ValueError:
            if response.is_success:
                raise DecodingError() from None
            raise SyncServerError(f"Server returned HTTP {response.status_code}") from None
        message = self._server_error(payload)
        if message is not None:
            raise SyncServerError(message)
        if not response.is_success:
            raise SyncServerError(f"Server returned HTTP {response.status_code}")
        return payload

    async def _authenticate(self, action: str, username: str, password: str) -> AuthSession:
        if not username or not password:
            raise AuthenticationError("Username and password are required")
        body = {"username": username, "password": password, "device_id": self.device.device_id}
        response = await self._request("POST", f"/api/auth/{action}", json=body, authenticated=False)
        if not response.is_success:
            try:
                message = self._server_error(response.json())
            except ValueError:
                message = None
            raise AuthenticationError(message or f"{action.capitalize()} failed (HTTP {response.status_code})")

        session = AuthSession.from_dict(self._decode(response), self.server_url)
        self.session = session
        logger.info("%s succeeded for user id %s", action.capitalize(), session.user_id)
        return session

    async def register(self, username: str, password: str) -> AuthSession:
        return await self._authenticate("register", username, password)

    async def login(self, username: str, password: str) -> AuthSession:
        return await self._authenticate("login", username, password)

    def logout(self) -> None:
        self.session = None

    async def list_metadata(self) -> List[FileMetadata]:
        payload = self._checked(await self._request("GET", "/api/metadata"))
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise DecodingError("Metadata list response must be an array")
        return [FileMetadata.from_dict(item) for item in payload]

    async def get_metadata(self, record_id: str) -> FileMetadata:
        return FileMetadata.from_dict(self._checked(await self._request("GET", f"/api/metadata/{record_id}")))

    async def add_metadata(self, record: FileMetadata) -> FileMetadata:
        response = await self._request("POST", "/api/metadata", json=record.to_dict())
        return FileMetadata.from_dict(self._checked(response))

    async def update_metadata(self, record_id: str, record: FileMetadata) -> FileMetadata:
        response = await self._request("PUT", f"/api/metadata/{record_id}", json=record.to_dict())
        return FileMetadata.from_dict(self._checked(response))

    async def delete_metadata(self, record_id: str) -> None:
        response = await self._request("DELETE", f"/api/metadata/{record_id}")
        if response.status_code != 200:
            try:
                message = self._server_error(response.json())
            except ValueError:
                message = None
            raise SyncServerError(message or "Failed to delete metadata")

    async def _exchange(self, records: Sequence[VaultFileMetadata], sync_token: str) -> SyncResult:
        owner_id = self.session.user_id if self.session else 0
        body: Dict[str, Any] = {
            "device_id": self.device.device_id,
            "items": [record.to_wire(owner_id).to_dict() for record in records],
            "sync_token": sync_token,
        }
        logger.info("Sending sync request with %d items", len(records))
        response = await self._request("POST", "/api/sync", json=body)
        result = SyncResult.from_payload(self._checked(response))
        logger.info("Sync returned %d updated items, %d deleted ids",
                    len(result.updated_records), len(result.deleted_ids))
        return result

    async def push_metadata(self, records: Sequence[VaultFileMetadata], sync_token: str = "") -> SyncResult:
        """Send the local record set and return the server's merged view since ``sync_token``."""
        if self.session is None:
            raise NotAuthenticated()
        async with self._sync_lock:
            try:
                return await asyncio.wait_for(self._exchange(records, sync_token), self.sync_timeout)
            except asyncio.TimeoutError:
                raise SyncTimeout(f"Sync exchange abandoned after {self.sync_timeout:g}s") from None

    async def sync_status(self) -> SyncStatus:
        return SyncStatus.from_dict(self._checked(await self._request("GET", "/api/sync/status")))
