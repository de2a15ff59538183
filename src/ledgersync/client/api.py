"""HTTP client for LedgerSync server API.

This module provides:
- LedgerClient: HTTP client for communicating with the server
- Entity operations (list, get, create, update, delete)
- Typed exceptions separating conflicts, network failures and other errors
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ledgersync.core.config import ServerConfig
from ledgersync.core.entities import EntityType

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(APIError):
    """Resource not found."""


class ConflictError(APIError):
    """Version conflict detected by the server.

    Attributes:
        client_version: Version the request asserted.
        server_version: Version currently stored on the server.
        current_data: Full server-side state of the entity.
    """

    def __init__(
        self,
        message: str,
        client_version: int,
        server_version: int,
        current_data: dict[str, Any],
    ) -> None:
        super().__init__(message, 409)
        self.client_version = client_version
        self.server_version = server_version
        self.current_data = current_data


class NetworkError(APIError):
    """The server could not be reached."""


class RequestTimeoutError(NetworkError):
    """The request timed out."""


def _error_detail(response: httpx.Response, default: str) -> str:
    """Extract an error message from a (possibly non-JSON) response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or default)
    return default


class LedgerClient:
    """HTTP client for LedgerSync server API."""

    def __init__(
        self,
        config: ServerConfig,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server connection settings.
            http_client: Optional preconfigured httpx client (tests pass a
                FastAPI TestClient or a client with a mock transport).
        """
        self._config = config
        if config.is_secure and not config.verify_ssl:
            logger.warning("SSL certificate verification disabled for %s", config.server_url)
        self._client = http_client or httpx.Client(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Accept": "application/json"},
        )

    @property
    def server_url(self) -> str:
        """Base URL of the server."""
        return self._config.server_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> LedgerClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to NetworkError."""
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timeout: {method} {url}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 404:
            raise NotFoundError(_error_detail(response, "Resource not found"), 404)
        if response.status_code == 409:
            body = response.json()
            if body.get("conflict"):
                data = body["data"]
                raise ConflictError(
                    body.get("message", "Version conflict detected"),
                    client_version=data["client_version"],
                    server_version=data["server_version"],
                    current_data=data["current_data"],
                )
            raise APIError(_error_detail(response, "Conflict"), 409)
        if response.status_code >= 400:
            raise APIError(_error_detail(response, "Unknown error"), response.status_code)
        return response

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the server is reachable and healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    # === Entity operations ===

    def list_entities(
        self,
        entity_type: EntityType,
        active_only: bool = False,
    ) -> list[dict[str, Any]]:
        """List entities of a type.

        Args:
            entity_type: Entity type.
            active_only: Only return active records.

        Returns:
            List of entity dicts.
        """
        params = {"active_only": "true"} if active_only else {}
        response = self._request("GET", f"/api/{entity_type.plural}", params=params)
        data: list[dict[str, Any]] = response.json()["data"]
        return data

    def get_entity(self, entity_type: EntityType, entity_id: int) -> dict[str, Any]:
        """Get one entity.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        response = self._request("GET", f"/api/{entity_type.plural}/{entity_id}")
        data: dict[str, Any] = response.json()["data"]
        return data

    def create_entity(
        self,
        entity_type: EntityType,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        """Create an entity.

        Args:
            entity_type: Entity type.
            payload: Entity fields (sync metadata may be included).

        Returns:
            Created entity as stored by the server.
        """
        response = self._request("POST", f"/api/{entity_type.plural}", json=payload)
        data: dict[str, Any] = response.json()["data"]
        return data

    def update_entity(
        self,
        entity_type: EntityType,
        entity_id: int,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        """Update an entity.

        Args:
            entity_type: Entity type.
            entity_id: Entity ID.
            payload: Entity fields including the ``version`` last observed.

        Returns:
            Updated entity with its new version.

        Raises:
            ConflictError: If the server has a different version.
            NotFoundError: If the entity does not exist.
        """
        response = self._request(
            "PUT", f"/api/{entity_type.plural}/{entity_id}", json=payload
        )
        data: dict[str, Any] = response.json()["data"]
        return data

    def delete_entity(self, entity_type: EntityType, entity_id: int) -> dict[str, Any]:
        """Soft-delete an entity.

        Returns:
            Final state of the deleted entity.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        response = self._request("DELETE", f"/api/{entity_type.plural}/{entity_id}")
        data: dict[str, Any] = response.json()["data"]
        return data
