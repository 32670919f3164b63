"""Fan entity for the Aldes ventilation unit.

The unit's three modes are exposed as a fan with two speeds: off (MIN),
50% (BOOST) and 100% (MAX). Writes go through the command dispatcher.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any

from homeassistant.components.fan import FanEntity, FanEntityFeature

from . import const
from .dispatcher import AldesControlError, CommandDispatcher
from .entity import AldesEntity
from .models import AccessoryKind, ControlValues
from .state_machine import ModeStateMachine

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .api import AldesClient
    from .coordinator import AldesPollingCoordinator
    from .models import DeviceStatus

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the ventilation fan entity."""
    entry_data = hass.data[const.DOMAIN][entry.entry_id]
    async_add_entities(
        [AldesVentilationFan(entry_data["coordinator"], entry_data["client"])]
    )


class AldesVentilationFan(AldesEntity, FanEntity):
    """Ventilation control of an Aldes VMC unit."""

    kind = AccessoryKind.VENTILATION

    _attr_name = None
    _attr_translation_key = "ventilation"
    _attr_speed_count = 2
    _attr_supported_features = (
        FanEntityFeature.SET_SPEED
        | FanEntityFeature.TURN_ON
        | FanEntityFeature.TURN_OFF
    )

    def __init__(
        self,
        coordinator: AldesPollingCoordinator,
        client: AldesClient,
    ) -> None:
        """Initialize the fan entity.

        Args:
            coordinator: Central poller delivering device statuses.
            client: Device client used for mode commands.

        """
        super().__init__(coordinator)
        self._client = client
        self.machine = ModeStateMachine(self._handle_control_change)
        self.dispatcher = CommandDispatcher(
            client,
            coordinator,
            self.machine,
            verify_delays=const.VERIFY_DELAYS_SEC,
        )

    @property
    def is_on(self) -> bool:
        """Return True unless the unit runs in its minimum mode."""
        return self.machine.values.active

    @property
    def percentage(self) -> int:
        """Return the canonical speed of the current mode."""
        return self.machine.values.level

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the mode, override and API health of the unit."""
        return {
            "mode": self.machine.mode.name.lower(),
            "overridden": self.machine.overridden,
            "pending": self.machine.state.pending,
            "api_healthy": self._client.healthy,
        }

    async def async_turn_on(
        self,
        percentage: int | None = None,
        preset_mode: str | None = None,  # noqa: ARG002
        **kwargs: Any,  # noqa: ANN401, ARG002
    ) -> None:
        """Turn the ventilation on, at the given speed if any."""
        if percentage is not None:
            await self._async_control(self.dispatcher.async_set_level(percentage))
        else:
            await self._async_control(self.dispatcher.async_set_active(True))

    async def async_turn_off(self, **kwargs: Any) -> None:  # noqa: ANN401, ARG002
        """Drop the ventilation to its minimum mode."""
        await self._async_control(self.dispatcher.async_set_active(False))

    async def async_set_percentage(self, percentage: int) -> None:
        """Set the speed; it snaps to 0, 50 or 100."""
        await self._async_control(self.dispatcher.async_set_level(percentage))

    async def async_will_remove_from_hass(self) -> None:
        """Cancel any command still being verified."""
        await self.dispatcher.async_shutdown()
        await super().async_will_remove_from_hass()

    async def _async_control(self, request: Awaitable[None]) -> None:
        try:
            await request
        except AldesControlError as err:
            _LOGGER.warning("Ventilation command rejected: %s", err)
            self.machine.reassert()
            raise

    def _apply_status(self, status: DeviceStatus) -> None:
        self.machine.apply_status(status)

    def _handle_control_change(self, values: ControlValues) -> None:
        _LOGGER.debug(
            "Ventilation control values: active=%s level=%s",
            values.active,
            values.level,
        )
        self._write_state()
