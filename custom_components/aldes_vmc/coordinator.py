"""Coordinator for Aldes VMC integration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.core import CALLBACK_TYPE, callback
from homeassistant.helpers.debounce import Debouncer
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import (
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    HEALTH_RESET_THRESHOLD,
    REFRESH_DEBOUNCE_SEC,
)
from .decoder import decode_status
from .models import DeviceStatus

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .api import AldesClient

_LOGGER = logging.getLogger(__name__)


class AldesPollingCoordinator(DataUpdateCoordinator[DeviceStatus]):
    """Central poller: one status fetch per tick, fanned out to subscribers.

    The device identity is resolved once in async_start; polling does not
    begin before that. Out-of-band refresh requests are debounced so a burst
    of control writes costs a single fetch.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        client: AldesClient,
        config_entry: ConfigEntry | None,
        interval: timedelta | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            hass: Home Assistant instance.
            client: Device client shared with the command dispatchers.
            config_entry: Config entry owning the coordinator.
            interval: Poll interval used by async_start when none is given.

        """
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=None,
            request_refresh_debouncer=Debouncer(
                hass,
                _LOGGER,
                cooldown=REFRESH_DEBOUNCE_SEC,
                immediate=False,
            ),
        )
        self.client = client
        self.identity: str | None = None
        self._interval = interval or timedelta(seconds=DEFAULT_POLL_INTERVAL)
        self._subscribers: dict[str, CALLBACK_TYPE] = {}
        self._failure_handlers: dict[str, Callable[[], None]] = {}

    @property
    def subscriber_ids(self) -> list[str]:
        """Return the ids of the registered subscribers."""
        return list(self._subscribers)

    async def async_start(self, interval: timedelta | None = None) -> None:
        """Resolve the device identity, start the timer and fetch once.

        Raises:
            UpdateFailed: If the device identity cannot be resolved.

        """
        if self.identity is None:
            self.identity = await self.client.async_resolve_identity()
            if self.identity is None:
                error_msg = "Could not resolve the Aldes device identity"
                raise UpdateFailed(error_msg)

        if interval is not None:
            self._interval = interval
        _LOGGER.info(
            "Starting Aldes polling for device %s every %s",
            self.identity,
            self._interval,
        )
        self.update_interval = self._interval
        await self.async_refresh()

    @callback
    def async_stop(self) -> None:
        """Stop the poll timer. async_start restarts it."""
        _LOGGER.debug("Stopping Aldes polling")
        self.update_interval = None
        self._unschedule_refresh()

    @callback
    def register(
        self,
        subscriber_id: str,
        deliver: Callable[[DeviceStatus], None],
        on_failure: Callable[[], None] | None = None,
    ) -> None:
        """Register a subscriber; it receives every successfully polled status.

        Args:
            subscriber_id: Unique id of the subscriber. Re-registering
                replaces the previous callback.
            deliver: Called with the status snapshot of each successful tick.
            on_failure: Called once for every failed tick.

        """
        self.unregister(subscriber_id)

        @callback
        def _handle_update() -> None:
            if self.last_update_success and self.data is not None:
                deliver(self.data)
            elif on_failure is not None:
                on_failure()

        self._subscribers[subscriber_id] = self.async_add_listener(_handle_update)
        if on_failure is not None:
            self._failure_handlers[subscriber_id] = on_failure
        _LOGGER.debug("Registered subscriber %s", subscriber_id)

    @callback
    def unregister(self, subscriber_id: str) -> None:
        """Remove a subscriber; unknown ids are ignored."""
        self._failure_handlers.pop(subscriber_id, None)
        if (remove := self._subscribers.pop(subscriber_id, None)) is not None:
            remove()
            _LOGGER.debug("Unregistered subscriber %s", subscriber_id)

    async def async_request_immediate_refresh(self, reason: str) -> None:
        """Request an out-of-band fetch; bursts collapse into one."""
        _LOGGER.debug("Immediate refresh requested: %s", reason)
        await self.async_request_refresh()

    async def async_shutdown(self) -> None:
        """Stop the timer and clear the subscriber registry."""
        for subscriber_id in list(self._subscribers):
            self.unregister(subscriber_id)
        await super().async_shutdown()

    async def _async_update_data(self) -> DeviceStatus:
        if self.identity is None:
            error_msg = "Aldes device identity not resolved"
            raise UpdateFailed(error_msg)

        payload = await self.client.async_fetch_status(self.identity)
        if payload is None:
            if self.client.consecutive_failures > HEALTH_RESET_THRESHOLD:
                _LOGGER.warning(
                    "Too many consecutive Aldes API failures, resetting client state"
                )
                self.client.reset_health()
            if not self.last_update_success:
                # Listeners are skipped when a failed tick follows a failed tick
                self._notify_failure()
            error_msg = f"Failed to fetch status of Aldes device {self.identity}"
            raise UpdateFailed(error_msg)

        status = decode_status(payload)
        self.client.note_override(status.overridden)
        _LOGGER.debug(
            "Polled Aldes device %s: mode=%s overridden=%s",
            self.identity,
            status.mode.name,
            status.overridden,
        )
        return status

    @callback
    def _notify_failure(self) -> None:
        for on_failure in list(self._failure_handlers.values()):
            on_failure()
