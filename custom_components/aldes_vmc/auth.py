"""Session management for the Aldes VMC integration.

The vendor issues a single bearer token through an OAuth2 password grant and
does not reliably report its lifetime. The token is cached in memory,
mirrored to Home Assistant storage and dropped as soon as a request is
rejected with 401.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

from . import api
from .models import Credential

if TYPE_CHECKING:
    import httpx

_LOGGER = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Storage backend for the persisted credential (Home Assistant Store)."""

    async def async_load(self) -> Any: ...  # noqa: ANN401

    async def async_save(self, data: dict[str, Any]) -> None: ...

    async def async_remove(self) -> None: ...


class AldesSessionManager:
    """Acquire, persist and invalidate the Aldes bearer credential."""

    def __init__(
        self,
        session: httpx.AsyncClient,
        store: CredentialStore,
        username: str | None,
        password: str | None,
    ) -> None:
        """Initialize the session manager.

        Args:
            session: HTTP client session used for the token exchange.
            store: Durable storage holding the persisted credential.
            username: Aldes account username.
            password: Aldes account password.

        """
        self._session = session
        self._store = store
        self._username = username
        self._password = password
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> Credential | None:
        """Return the in-memory credential, if any."""
        return self._credential

    async def async_get_credential(self) -> Credential:
        """Return a credential, loading or exchanging one when needed.

        Returns:
            The current Credential.

        Raises:
            AldesCredentialsMissingError: If username or password is missing.
            AldesApiAuthError: If the token endpoint rejects the account.
            AldesApiClientError: If the token endpoint cannot be reached.

        """
        if self._credential is not None:
            return self._credential

        async with self._lock:
            if self._credential is not None:
                return self._credential

            stored = await self._async_load()
            if stored is not None:
                _LOGGER.debug("Loaded Aldes access token from storage")
                self._credential = stored
                return stored

            credential = await self._async_exchange()
            await self._store.async_save({"access_token": credential.access_token})
            self._credential = credential
            return credential

    async def async_invalidate(self, rejected: Credential | None = None) -> None:
        """Drop the credential from memory and storage.

        Args:
            rejected: The credential a request was rejected with. When it is
                no longer the current one, a newer credential was already
                obtained and is kept.

        """
        if rejected is not None and rejected != self._credential:
            _LOGGER.debug("Rejected Aldes access token already replaced")
            return
        _LOGGER.warning("Aldes access token rejected, clearing cached token")
        self._credential = None
        await self._store.async_remove()

    async def _async_load(self) -> Credential | None:
        data = await self._store.async_load()
        if not isinstance(data, dict):
            _LOGGER.debug("No persisted Aldes access token")
            return None
        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            _LOGGER.warning("Ignoring malformed persisted Aldes access token")
            return None
        return Credential(access_token=token)

    async def _async_exchange(self) -> Credential:
        if not self._username or not self._password:
            error_msg = "Aldes username or password not configured"
            _LOGGER.error(error_msg)
            raise api.AldesCredentialsMissingError(error_msg)

        _LOGGER.info("Requesting new Aldes access token")
        credential = await api.async_request_token(
            self._session,
            self._username,
            self._password,
        )
        _LOGGER.info("New Aldes access token obtained")
        return credential
