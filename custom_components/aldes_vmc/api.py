"""API client for Aldes VMC systems.

This module provides functions and a client class to interact with the
AldesConnect cloud API, including token exchange, device discovery, status
retrieval and mode commands.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import httpx
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    API_CALL_COOLDOWN_SEC,
    API_RETRY_ATTEMPTS,
    BASE_URL,
    HEALTH_FAILURE_THRESHOLD,
    HEALTH_SUCCESS_WINDOW_SEC,
    HTTP_TIMEOUT_SEC,
    RETRY_DELAY_SEC,
    TOKEN_URL,
)
from .models import Credential, OperatingMode

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .auth import AldesSessionManager

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401


class AldesApiClientError(Exception):
    """Base exception for Aldes API client errors."""


class AldesApiAuthError(AldesApiClientError):
    """Exception raised for authentication errors."""


class AldesCredentialsMissingError(AldesApiClientError):
    """Exception raised when no username or password is configured."""


def create_headers(access_token: str | None = None) -> dict[str, str]:
    """Create HTTP headers for Aldes API requests.

    Args:
        access_token: Optional bearer token to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "accept": "application/json",
        "content-type": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates authentication error."""
    return status == HTTP_UNAUTHORIZED


def validate_response(response: httpx.Response) -> Any:  # noqa: ANN401
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response, or an empty dict for an empty body.

    Raises:
        AldesApiAuthError: If the request was rejected with 401.
        AldesApiClientError: If any other HTTP error or a malformed body is
            detected.

    """
    if is_http_error(response.status_code):
        if is_auth_error(response.status_code):
            auth_error = "Authentication error"
            raise AldesApiAuthError(auth_error)
        client_error = f"Request failed: {response.status_code}"
        raise AldesApiClientError(client_error)

    if not response.content:
        return {}

    try:
        return response.json()
    except ValueError as err:
        error_msg = f"Malformed response body: {err}"
        raise AldesApiClientError(error_msg) from err


def extract_access_token(data: dict[str, Any]) -> Credential:
    """Extract the bearer credential from a token endpoint response.

    Raises:
        AldesApiClientError: If the response does not carry an access token.

    """
    token = data.get("access_token") if isinstance(data, dict) else None
    if not isinstance(token, str) or not token:
        error_msg = "Token response did not contain an access_token"
        raise AldesApiClientError(error_msg)
    return Credential(access_token=token)


def extract_device_id(data: Any) -> str | None:  # noqa: ANN401
    """Extract the device identity (modem) of the first listed product."""
    if not isinstance(data, list) or not data:
        return None
    product = data[0]
    if not isinstance(product, dict):
        return None
    modem = product.get("modem")
    return str(modem) if modem else None


def build_change_mode_payload(
    mode: OperatingMode, request_id: int | None = None
) -> dict[str, Any]:
    """Build the JSON-RPC body of a mode change command."""
    if request_id is None:
        request_id = random.randint(0, 999_999)  # noqa: S311
    return {
        "method": "changeMode",
        "params": [mode.value],
        "id": request_id,
        "jsonrpc": "2.0",
    }


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for Aldes API.

    The transport retries idempotent requests once on throttling or
    transient transport errors; command and token requests are not retried
    at this level.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=HTTP_TIMEOUT_SEC)
    retry = Retry(total=1, backoff_factor=0.5)
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


async def async_request_token(
    session: httpx.AsyncClient,
    username: str,
    password: str,
) -> Credential:
    """Exchange username and password for a bearer credential.

    Args:
        session: HTTP client session.
        username: Aldes account username.
        password: Aldes account password.

    Returns:
        The issued Credential.

    Raises:
        AldesApiAuthError: If the account is rejected.
        AldesApiClientError: If the token endpoint fails.

    """
    payload = {
        "grant_type": "password",
        "username": username,
        "password": password,
    }

    _LOGGER.debug("Requesting access token from Aldes API")
    response = await session.post(
        TOKEN_URL,
        headers={"accept": "application/json"},
        data=payload,
    )
    # The token endpoint answers a bad grant with 400 rather than 401
    if response.status_code == HTTP_BAD_REQUEST:
        auth_error = "Invalid username or password"
        raise AldesApiAuthError(auth_error)
    data = validate_response(response)
    return extract_access_token(data)


class RateLimiter:
    """Soft rate limit: keeps a minimum spacing between outgoing calls.

    One instance may be shared by several clients talking to the same account.
    """

    def __init__(self, cooldown: float = API_CALL_COOLDOWN_SEC) -> None:
        self._cooldown = cooldown
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def async_wait(self) -> None:
        """Delay the caller until the cooldown since the last call elapsed."""
        async with self._lock:
            if self._last_call is not None:
                remaining = self._cooldown - (time.monotonic() - self._last_call)
                if remaining > 0:
                    _LOGGER.debug("Rate limiting Aldes API call for %.2fs", remaining)
                    await asyncio.sleep(remaining)
            self._last_call = time.monotonic()


class AldesClient:
    """Typed operations over the Aldes API for one account.

    Every attempt resolves a credential through the session manager, so a
    credential invalidated by a 401 is replaced on the next attempt. The
    client also keeps the health counters used by the control surfaces.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        session_manager: AldesSessionManager,
        *,
        rate_limiter: RateLimiter | None = None,
        retry_attempts: int = API_RETRY_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SEC,
    ) -> None:
        """Initialize the client.

        Args:
            session: HTTP client session for API calls.
            session_manager: Provider of the bearer credential.
            rate_limiter: Shared rate limiter; a private one is created if
                omitted.
            retry_attempts: Attempts for status and command calls.
            retry_delay: Fixed delay between attempts, in seconds.

        """
        self._session = session
        self._session_manager = session_manager
        self._rate_limiter = rate_limiter or RateLimiter()
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._overridden = False
        self.consecutive_failures = 0
        self.last_success: float | None = None
        self.last_error: str | None = None

    @property
    def healthy(self) -> bool:
        """Return whether calls to the API are expected to succeed.

        The client is healthy when the last operation succeeded, however long
        ago; a quiet client with no failures is not faulted. Once an operation
        failed, it stays healthy only while failures are below
        HEALTH_FAILURE_THRESHOLD and the last success is within
        HEALTH_SUCCESS_WINDOW_SEC.
        """
        if self.consecutive_failures == 0:
            return True
        if self.consecutive_failures >= HEALTH_FAILURE_THRESHOLD:
            return False
        return (
            self.last_success is not None
            and time.monotonic() - self.last_success <= HEALTH_SUCCESS_WINDOW_SEC
        )

    def reset_health(self) -> None:
        """Clear the failure counters."""
        _LOGGER.info(
            "Resetting Aldes API health after %d consecutive failures",
            self.consecutive_failures,
        )
        self.consecutive_failures = 0
        self.last_error = None

    def note_override(self, overridden: bool) -> None:
        """Record the override state of the latest decoded status."""
        self._overridden = overridden

    async def async_resolve_identity(self) -> str | None:
        """Return the modem identifier of the account's ventilation unit."""
        _LOGGER.debug("Fetching Aldes products")
        try:
            data = await self._async_request("GET", f"{BASE_URL}/users/me/products")
        except AldesApiClientError as err:
            _LOGGER.error("Failed to get Aldes device id: %s", err)  # noqa: TRY400
            self._record_failure(err)
            return None

        self._record_success()
        device_id = extract_device_id(data)
        if device_id is None:
            _LOGGER.error("Could not extract modem (device id) from product data")
            _LOGGER.debug("Received product data: %s", data)
            return None
        _LOGGER.info("Found Aldes device id (modem): %s", device_id)
        return device_id

    async def async_fetch_status(self, identity: str) -> dict[str, Any] | None:
        """Fetch the raw device-details payload.

        Returns:
            The payload, or None once every attempt failed.

        """
        url = f"{BASE_URL}/users/me/products/{identity}"

        async def request() -> Any:  # noqa: ANN401
            return await self._async_request("GET", url)

        data = await self._async_with_retries(f"fetch status of {identity}", request)
        if data is None:
            return None
        if not isinstance(data, dict):
            _LOGGER.warning("Unexpected device status payload for %s", identity)
            return None
        return data

    async def async_apply_mode(self, identity: str, mode: OperatingMode) -> bool:
        """Send a mode change command.

        Returns:
            True if the command was accepted by the API.

        """
        if self._overridden:
            _LOGGER.warning(
                "Refusing to set mode %s: device %s is externally controlled",
                mode.name,
                identity,
            )
            return False

        url = f"{BASE_URL}/users/me/products/{identity}/commands"
        payload = build_change_mode_payload(mode)

        async def request() -> Any:  # noqa: ANN401
            return await self._async_request("POST", url, json=payload)

        _LOGGER.info("Setting mode %s (%s) on device %s", mode.name, mode.value, identity)
        result = await self._async_with_retries(f"set mode {mode.value}", request)
        if result is None:
            return False
        _LOGGER.info("Set mode command for %s sent successfully", mode.name)
        return True

    async def _async_with_retries(
        self,
        action: str,
        request: Callable[[], Awaitable[Any]],
    ) -> Any:  # noqa: ANN401
        last_error: AldesApiClientError | None = None
        for attempt in range(1, self._retry_attempts + 1):
            try:
                result = await request()
            except AldesCredentialsMissingError as err:
                self._record_failure(err)
                return None
            except AldesApiClientError as err:
                last_error = err
                _LOGGER.debug(
                    "Aldes API %s failed (attempt %d/%d): %s",
                    action,
                    attempt,
                    self._retry_attempts,
                    err,
                )
                if attempt < self._retry_attempts:
                    await asyncio.sleep(self._retry_delay)
            else:
                self._record_success()
                return result

        _LOGGER.error(
            "Aldes API %s failed after %d attempts: %s",
            action,
            self._retry_attempts,
            last_error,
        )
        self._record_failure(last_error)
        return None

    async def _async_request(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
    ) -> Any:  # noqa: ANN401
        try:
            credential = await self._session_manager.async_get_credential()
        except httpx.RequestError as err:
            error_msg = f"Connection error during token exchange: {err}"
            raise AldesApiClientError(error_msg) from err

        await self._rate_limiter.async_wait()
        try:
            response = await self._session.request(
                method,
                url,
                headers=create_headers(credential.access_token),
                json=json,
            )
        except httpx.RequestError as err:
            error_msg = f"Connection error: {err}"
            raise AldesApiClientError(error_msg) from err

        try:
            return validate_response(response)
        except AldesApiAuthError:
            await self._session_manager.async_invalidate(credential)
            raise

    def _record_success(self) -> None:
        self.consecutive_failures = 0
        self.last_success = time.monotonic()
        self.last_error = None

    def _record_failure(self, err: Exception | None) -> None:
        self.consecutive_failures += 1
        self.last_error = str(err) if err is not None else None
