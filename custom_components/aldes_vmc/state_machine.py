"""Mode/control state machine for the Aldes ventilation control.

The unit only knows three discrete modes while the control surface expects
an on/off flag plus a speed. The mapping between the two is fixed:

    MIN   <-> inactive, 0
    BOOST <-> active, 50
    MAX   <-> active, 100

Polled statuses are authoritative. Dispatcher writes are optimistic and may
be corrected by the next status or by the verification passes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from homeassistant.util.percentage import (
    ordered_list_item_to_percentage,
    percentage_to_ordered_list_item,
)

from .const import LEVEL_OFF
from .models import ControlState, ControlValues, DeviceStatus, OperatingMode

_LOGGER = logging.getLogger(__name__)

ACTIVE_MODES = [OperatingMode.BOOST, OperatingMode.MAX]
DEFAULT_ACTIVE_MODE = OperatingMode.BOOST


def mode_to_control(mode: OperatingMode) -> ControlValues:
    """Return the canonical control values of a mode."""
    if mode is OperatingMode.MIN:
        return ControlValues(active=False, level=LEVEL_OFF)
    return ControlValues(
        active=True,
        level=ordered_list_item_to_percentage(ACTIVE_MODES, mode),
    )


def level_to_mode(level: int) -> OperatingMode:
    """Snap a speed level (0-100) to the nearest mode.

    0 selects MIN, 1-50 BOOST and 51-100 MAX.
    """
    level = max(0, min(100, int(level)))
    if level == LEVEL_OFF:
        return OperatingMode.MIN
    return percentage_to_ordered_list_item(ACTIVE_MODES, level)


def control_to_mode(values: ControlValues) -> OperatingMode:
    """Return the mode selected by a pair of control values."""
    if not values.active:
        return OperatingMode.MIN
    if values.level == LEVEL_OFF:
        return DEFAULT_ACTIVE_MODE
    return level_to_mode(values.level)


class ModeStateMachine:
    """Owns the control state of one ventilation control surface.

    The on_change listener receives the canonical control values every time
    they change, and on explicit re-assertion.
    """

    def __init__(
        self,
        on_change: Callable[[ControlValues], None] | None = None,
    ) -> None:
        self.state = ControlState()
        self._on_change = on_change

    @property
    def mode(self) -> OperatingMode:
        """Return the last applied mode."""
        return self.state.mode

    @property
    def overridden(self) -> bool:
        """Return True while an external controller holds the unit."""
        return self.state.overridden

    @property
    def values(self) -> ControlValues:
        """Return the canonical control values of the cached mode."""
        return mode_to_control(self.state.mode)

    def set_listener(self, on_change: Callable[[ControlValues], None] | None) -> None:
        """Replace the on-change listener."""
        self._on_change = on_change

    def target_for_active(self, active: bool) -> OperatingMode:
        """Translate an on/off request into a target mode."""
        if not active:
            return OperatingMode.MIN
        if self.state.mode is OperatingMode.MIN:
            return DEFAULT_ACTIVE_MODE
        return self.state.mode

    def target_for_level(self, level: int) -> OperatingMode:
        """Translate a speed request into a target mode."""
        return level_to_mode(level)

    def apply_status(self, status: DeviceStatus) -> None:
        """Apply a polled status. Always wins over the cached state."""
        if status.overridden != self.state.overridden:
            _LOGGER.info(
                "Ventilation override %s",
                "engaged" if status.overridden else "released",
            )
        self.state.overridden = status.overridden
        self._transition(status.mode)

    def apply_optimistic(self, mode: OperatingMode) -> None:
        """Apply a dispatcher write before the device confirmed it."""
        _LOGGER.debug("Optimistic transition %s -> %s", self.state.mode.name, mode.name)
        self.state.pending = True
        self.state.last_command_at = time.monotonic()
        self._transition(mode)

    def confirm(self) -> None:
        """Mark the pending write as confirmed by the device."""
        self.state.pending = False

    def correct(self, mode: OperatingMode) -> None:
        """Replace the cached mode with the mode actually observed."""
        self.state.pending = False
        self._transition(mode, force=True)

    def reassert(self) -> None:
        """Push the canonical values of the cached mode again."""
        self._publish(self.values)

    def _transition(self, mode: OperatingMode, *, force: bool = False) -> None:
        self.state.mode = mode
        values = mode_to_control(mode)
        if force or values != self.state.values:
            self._publish(values)

    def _publish(self, values: ControlValues) -> None:
        self.state.values = values
        if self._on_change is not None:
            self._on_change(values)
