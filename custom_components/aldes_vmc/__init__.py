from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME, Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers.storage import Store
from homeassistant.helpers.update_coordinator import UpdateFailed

from .api import AldesClient, RateLimiter, create_session_client
from .auth import AldesSessionManager
from .const import (
    CONF_ENABLE_SENSORS,
    CONF_POLL_INTERVAL,
    CONF_SENSOR_POLL_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SENSOR_POLL_INTERVAL,
    DOMAIN,
    STORAGE_KEY,
    STORAGE_VERSION,
)
from .coordinator import AldesPollingCoordinator

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.FAN, Platform.BINARY_SENSOR, Platform.SENSOR]


def get_poll_interval(options: dict[str, Any]) -> timedelta:
    """Return the poll interval: the shorter interval when sensors are enabled."""
    seconds = options.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)
    if options.get(CONF_ENABLE_SENSORS, True):
        seconds = min(
            seconds,
            options.get(CONF_SENSOR_POLL_INTERVAL, DEFAULT_SENSOR_POLL_INTERVAL),
        )
    return timedelta(seconds=seconds)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Aldes VMC integration for entry %s", entry.entry_id)

    username = entry.data.get(CONF_USERNAME)
    password = entry.data.get(CONF_PASSWORD)
    if not username or not password:
        _LOGGER.error(
            "Missing username or password in configuration for entry %s",
            entry.entry_id,
        )
        return False

    session = create_session_client(hass)
    store: Store[dict[str, Any]] = Store(
        hass, STORAGE_VERSION, STORAGE_KEY, private=True
    )
    session_manager = AldesSessionManager(session, store, username, password)
    client = AldesClient(session, session_manager, rate_limiter=RateLimiter())
    coordinator = AldesPollingCoordinator(hass, client, entry)

    try:
        await coordinator.async_start(get_poll_interval(entry.options))
    except UpdateFailed as err:
        await coordinator.async_shutdown()
        raise ConfigEntryNotReady(str(err)) from err

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "session_manager": session_manager,
        "client": client,
        "coordinator": coordinator,
    }
    _LOGGER.debug(
        "Stored data for entry %s: device %s", entry.entry_id, coordinator.identity
    )

    entry.async_on_unload(entry.add_update_listener(async_reload_entry))

    try:
        await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
        _LOGGER.info(
            "Successfully setup Aldes VMC integration for entry %s", entry.entry_id
        )
        return True
    except Exception as err:
        _LOGGER.error("Failed to setup platforms for entry %s: %s", entry.entry_id, err)
        await coordinator.async_shutdown()
        hass.data[DOMAIN].pop(entry.entry_id, None)
        return False


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    _LOGGER.debug("Options changed, reloading entry %s", entry.entry_id)
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Aldes VMC integration for entry %s", entry.entry_id)

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        if DOMAIN in hass.data and entry.entry_id in hass.data[DOMAIN]:
            entry_data = hass.data[DOMAIN].pop(entry.entry_id)
            await entry_data["coordinator"].async_shutdown()
            _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
        _LOGGER.info(
            "Successfully unloaded Aldes VMC integration for entry %s",
            entry.entry_id,
        )
    else:
        _LOGGER.warning("Failed to unload some platforms for entry %s", entry.entry_id)

    return unload_ok
