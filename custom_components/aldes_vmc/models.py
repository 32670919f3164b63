"""Data models for Aldes VMC integration."""

from dataclasses import dataclass, field
from enum import StrEnum


class OperatingMode(StrEnum):
    """The three discrete modes of the ventilation unit, as sent on the wire."""

    MIN = "V"
    BOOST = "Y"
    MAX = "X"


class AccessoryKind(StrEnum):
    """Kinds of control surfaces fed by the central poller."""

    VENTILATION = "ventilation"
    OVERRIDE = "override"
    FAULT = "fault"
    AIR_QUALITY = "air_quality"
    CO2 = "co2"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"


@dataclass(frozen=True)
class Credential:
    """Represents the bearer credential issued by the token endpoint."""

    access_token: str


@dataclass(slots=True)
class DeviceStatus:
    """Normalized device status decoded from one details payload.

    ``None`` (or a missing location key) means the field was not reported.
    """

    mode: OperatingMode
    overridden: bool = False
    air_quality: float | None = None
    co2: float | None = None
    temperatures: dict[str, float] = field(default_factory=dict)
    humidities: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ControlValues:
    """Canonical control-surface values: active flag and speed level."""

    active: bool
    level: int


@dataclass(slots=True)
class ControlState:
    """Local cache owned by one state machine instance."""

    mode: OperatingMode = OperatingMode.MIN
    overridden: bool = False
    values: ControlValues | None = None
    pending: bool = False
    last_command_at: float | None = None
