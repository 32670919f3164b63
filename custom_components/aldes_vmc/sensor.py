"""Sensors for the Aldes VMC integration.

Air quality, CO2 and the temperature/humidity probes of the enabled
locations. A reading missing from a status keeps the previous value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.const import (
    CONCENTRATION_PARTS_PER_MILLION,
    PERCENTAGE,
    UnitOfTemperature,
)

from .const import (
    AIR_QUALITY_LEVELS,
    AIR_QUALITY_POOR,
    CO2_ABNORMAL_PPM,
    CONF_ENABLE_SENSORS,
    DEFAULT_ENABLED_LOCATIONS,
    DOMAIN,
    LOCATION_NAMES,
    LOCATIONS,
    conf_enable_location,
)
from .entity import AldesEntity
from .models import AccessoryKind, DeviceStatus

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .coordinator import AldesPollingCoordinator

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class AldesSensorEntityDescription(SensorEntityDescription):
    """Describes an Aldes sensor and how to read it from a status."""

    kind: AccessoryKind
    value_fn: Callable[[DeviceStatus], float | None]
    attributes_fn: Callable[[float], dict[str, Any]] | None = None
    location: str | None = None


def air_quality_level(value: float) -> str:
    """Return the quality level of an air quality index value."""
    for upper, level in AIR_QUALITY_LEVELS:
        if value <= upper:
            return level
    return AIR_QUALITY_POOR


AIR_QUALITY_DESCRIPTION = AldesSensorEntityDescription(
    key="air_quality",
    translation_key="air_quality",
    kind=AccessoryKind.AIR_QUALITY,
    device_class=SensorDeviceClass.AQI,
    state_class=SensorStateClass.MEASUREMENT,
    value_fn=lambda status: status.air_quality,
    attributes_fn=lambda value: {"level": air_quality_level(value)},
)

CO2_DESCRIPTION = AldesSensorEntityDescription(
    key="co2",
    kind=AccessoryKind.CO2,
    device_class=SensorDeviceClass.CO2,
    state_class=SensorStateClass.MEASUREMENT,
    native_unit_of_measurement=CONCENTRATION_PARTS_PER_MILLION,
    value_fn=lambda status: status.co2,
    attributes_fn=lambda value: {"abnormal": value > CO2_ABNORMAL_PPM},
)


def temperature_description(location: str) -> AldesSensorEntityDescription:
    """Describe the temperature probe of a location."""
    return AldesSensorEntityDescription(
        key=f"temperature_{location}",
        name=f"{LOCATION_NAMES[location]} temperature",
        kind=AccessoryKind.TEMPERATURE,
        location=location,
        device_class=SensorDeviceClass.TEMPERATURE,
        state_class=SensorStateClass.MEASUREMENT,
        native_unit_of_measurement=UnitOfTemperature.CELSIUS,
        value_fn=lambda status: status.temperatures.get(location),
    )


def humidity_description(location: str) -> AldesSensorEntityDescription:
    """Describe the humidity probe of a location."""
    return AldesSensorEntityDescription(
        key=f"humidity_{location}",
        name=f"{LOCATION_NAMES[location]} humidity",
        kind=AccessoryKind.HUMIDITY,
        location=location,
        device_class=SensorDeviceClass.HUMIDITY,
        state_class=SensorStateClass.MEASUREMENT,
        native_unit_of_measurement=PERCENTAGE,
        value_fn=lambda status: status.humidities.get(location),
    )


def build_descriptions(options: dict[str, Any]) -> list[AldesSensorEntityDescription]:
    """Return the sensors enabled by the entry options."""
    if not options.get(CONF_ENABLE_SENSORS, True):
        return []

    descriptions = [AIR_QUALITY_DESCRIPTION, CO2_DESCRIPTION]
    for location in LOCATIONS:
        enabled = options.get(
            conf_enable_location(location), location in DEFAULT_ENABLED_LOCATIONS
        )
        if enabled:
            descriptions.append(temperature_description(location))
            descriptions.append(humidity_description(location))
    return descriptions


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the sensors enabled in the entry options."""
    coordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]
    descriptions = build_descriptions(dict(entry.options))
    _LOGGER.debug("Adding %d Aldes sensors", len(descriptions))
    async_add_entities(
        AldesSensor(coordinator, description) for description in descriptions
    )


class AldesSensor(AldesEntity, SensorEntity):
    """A reading of the Aldes unit."""

    entity_description: AldesSensorEntityDescription

    def __init__(
        self,
        coordinator: AldesPollingCoordinator,
        description: AldesSensorEntityDescription,
    ) -> None:
        self.kind = description.kind
        self.entity_description = description
        super().__init__(coordinator, description.location)

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        attributes_fn = self.entity_description.attributes_fn
        if attributes_fn is None or self._attr_native_value is None:
            return None
        return attributes_fn(self._attr_native_value)

    def _apply_status(self, status: DeviceStatus) -> None:
        value = self.entity_description.value_fn(status)
        if value is not None:
            self._attr_native_value = value
