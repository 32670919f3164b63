"""Shared entity base for the Aldes VMC integration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity import Entity

from .const import DOMAIN, MANUFACTURER

if TYPE_CHECKING:
    from .coordinator import AldesPollingCoordinator
    from .models import AccessoryKind, DeviceStatus

_LOGGER = logging.getLogger(__name__)


class AldesEntity(Entity):
    """Control surface fed by the central poller.

    Subclasses set ``kind`` and implement ``_apply_status``. They never poll;
    every status reaches them through ``deliver``.
    """

    kind: AccessoryKind

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(
        self,
        coordinator: AldesPollingCoordinator,
        suffix: str | None = None,
    ) -> None:
        """Initialize the entity.

        Args:
            coordinator: Central poller delivering device statuses.
            suffix: Distinguishes entities of the same kind, e.g. a location.

        """
        self._coordinator = coordinator
        identity = coordinator.identity
        unique_id = f"{identity}_{self.kind}"
        if suffix:
            unique_id = f"{unique_id}_{suffix}"
        self._attr_unique_id = unique_id
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, str(identity))},
            manufacturer=MANUFACTURER,
            name="Aldes VMC",
            serial_number=identity,
        )

    @property
    def available(self) -> bool:
        """Return True once a status was delivered and the last poll succeeded."""
        return self._coordinator.last_update_success and (
            self._coordinator.data is not None
        )

    async def async_added_to_hass(self) -> None:
        """Register with the poller and apply the latest status."""
        await super().async_added_to_hass()
        self._coordinator.register(
            self._attr_unique_id, self.deliver, self._handle_failure
        )
        if self._coordinator.data is not None:
            self._apply_status(self._coordinator.data)

    async def async_will_remove_from_hass(self) -> None:
        """Unregister from the poller."""
        self._coordinator.unregister(self._attr_unique_id)
        await super().async_will_remove_from_hass()

    @callback
    def deliver(self, status: DeviceStatus) -> None:
        """Receive a polled status snapshot."""
        self._apply_status(status)
        self._write_state()

    @callback
    def _handle_failure(self) -> None:
        self._write_state()

    def _write_state(self) -> None:
        if self.hass is not None:
            self.async_write_ha_state()

    def _apply_status(self, status: DeviceStatus) -> None:
        raise NotImplementedError
