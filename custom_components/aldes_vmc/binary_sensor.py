"""Binary sensors for the Aldes VMC integration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.components.binary_sensor import (
    BinarySensorDeviceClass,
    BinarySensorEntity,
)
from homeassistant.const import EntityCategory

from .const import DOMAIN
from .entity import AldesEntity
from .models import AccessoryKind

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .api import AldesClient
    from .coordinator import AldesPollingCoordinator
    from .models import DeviceStatus


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the override and API problem indicators."""
    entry_data = hass.data[DOMAIN][entry.entry_id]
    coordinator = entry_data["coordinator"]
    async_add_entities(
        [
            AldesOverrideBinarySensor(coordinator),
            AldesProblemBinarySensor(coordinator, entry_data["client"]),
        ]
    )


class AldesOverrideBinarySensor(AldesEntity, BinarySensorEntity):
    """On while a wall switch or the vendor app forces the unit's mode."""

    kind = AccessoryKind.OVERRIDE

    _attr_translation_key = "override"
    _attr_is_on = False

    def _apply_status(self, status: DeviceStatus) -> None:
        self._attr_is_on = status.overridden


class AldesProblemBinarySensor(AldesEntity, BinarySensorEntity):
    """On while the Aldes API is failing."""

    kind = AccessoryKind.FAULT

    _attr_translation_key = "api_problem"
    _attr_device_class = BinarySensorDeviceClass.PROBLEM
    _attr_entity_category = EntityCategory.DIAGNOSTIC

    def __init__(
        self,
        coordinator: AldesPollingCoordinator,
        client: AldesClient,
    ) -> None:
        super().__init__(coordinator)
        self._client = client

    @property
    def available(self) -> bool:
        return True

    @property
    def is_on(self) -> bool:
        return not self._client.healthy

    @property
    def extra_state_attributes(self) -> dict[str, int | str | None]:
        return {
            "consecutive_failures": self._client.consecutive_failures,
            "last_error": self._client.last_error,
        }

    def _apply_status(self, status: DeviceStatus) -> None:
        """State is read from the client on every write."""
