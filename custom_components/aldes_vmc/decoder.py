"""Decoder for the Aldes device-details payload.

The details endpoint reports the same readings twice: a flat ``indicators``
list of ``{"type": ..., "value": ...}`` entries and a nested ``indicator``
object keyed by short codes. Either may be partial. Values from the nested
object win when both carry a field.
"""

from __future__ import annotations

import logging
from typing import Any

from .const import (
    HUMIDITY_INDICATORS,
    INDICATOR_AIR_QUALITY,
    INDICATOR_CO2,
    INDICATOR_MODE,
    INDICATOR_OVERRIDE,
    TEMPERATURE_INDICATORS,
    TEMPERATURE_SCALE,
)
from .models import DeviceStatus, OperatingMode

_LOGGER = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on", "self_controlled"}


def decode_status(payload: dict[str, Any]) -> DeviceStatus:
    """Decode a device-details payload into a DeviceStatus.

    Args:
        payload: Parsed JSON body of the device-details endpoint.

    Returns:
        DeviceStatus. The mode defaults to MIN when no valid mode is reported.

    """
    flat = _flatten_indicators(payload.get("indicators"))
    nested = payload.get("indicator")
    if not isinstance(nested, dict):
        nested = {}

    def lookup(codes: tuple[str, str]) -> Any:
        flat_type, nested_code = codes
        value = nested.get(nested_code)
        if value is None:
            value = flat.get(flat_type)
        return value

    status = DeviceStatus(
        mode=_decode_mode(lookup(INDICATOR_MODE)),
        overridden=_decode_flag(lookup(INDICATOR_OVERRIDE)),
        air_quality=_decode_number(lookup(INDICATOR_AIR_QUALITY)),
        co2=_decode_number(lookup(INDICATOR_CO2)),
    )

    for location, codes in TEMPERATURE_INDICATORS.items():
        raw = _decode_number(lookup(codes))
        if raw is not None:
            status.temperatures[location] = round(raw / TEMPERATURE_SCALE, 1)

    for location, codes in HUMIDITY_INDICATORS.items():
        value = _decode_number(lookup(codes))
        if value is not None:
            status.humidities[location] = value

    _LOGGER.debug("Decoded device status: %s", status)
    return status


def _flatten_indicators(indicators: Any) -> dict[str, Any]:
    if not isinstance(indicators, list):
        return {}
    flat: dict[str, Any] = {}
    for indicator in indicators:
        if not isinstance(indicator, dict):
            continue
        indicator_type = indicator.get("type")
        if isinstance(indicator_type, str):
            flat[indicator_type] = indicator.get("value")
    return flat


def _decode_mode(value: Any) -> OperatingMode:
    """Decode the mode indicator, defaulting to MIN.

    Args:
        value: Raw mode value ("V", "Y" or "X").

    Returns:
        The decoded OperatingMode.

    """
    if value is None:
        _LOGGER.warning(
            "No mode indicator in device status, defaulting to %s",
            OperatingMode.MIN.name,
        )
        return OperatingMode.MIN
    try:
        return OperatingMode(str(value).upper())
    except ValueError:
        _LOGGER.warning(
            "Unknown mode indicator %r in device status, defaulting to %s",
            value,
            OperatingMode.MIN.name,
        )
        return OperatingMode.MIN


def _decode_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _decode_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        _LOGGER.debug("Ignoring non-numeric indicator value %r", value)
        return None
