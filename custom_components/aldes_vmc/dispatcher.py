"""Command dispatcher for the Aldes ventilation control.

Serializes writes from one control surface: a single command in flight,
a minimum spacing between accepted commands, an optimistic update of the
control surface, a background apply and a bounded verification against the
device that corrects the control surface when the device did not follow.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from homeassistant.exceptions import HomeAssistantError

from .const import (
    COMMAND_MIN_SPACING_SEC,
    COMMAND_MUTEX_TIMEOUT_SEC,
    VERIFY_DELAYS_SEC,
)
from .decoder import decode_status

if TYPE_CHECKING:
    from .api import AldesClient
    from .coordinator import AldesPollingCoordinator
    from .models import DeviceStatus, OperatingMode
    from .state_machine import ModeStateMachine

_LOGGER = logging.getLogger(__name__)


class AldesControlError(HomeAssistantError):
    """Base exception for rejected control requests."""


class AldesNotAllowedError(AldesControlError):
    """Raised while an external controller overrides the unit."""


class AldesBusyError(AldesControlError):
    """Raised when a command is in flight or was sent too recently."""


class AldesCommunicationError(AldesControlError):
    """Raised when the device cannot currently be reached."""


class CommandDispatcher:
    """Applies control requests for one control surface."""

    def __init__(
        self,
        client: AldesClient,
        poller: AldesPollingCoordinator,
        machine: ModeStateMachine,
        *,
        min_spacing: float = COMMAND_MIN_SPACING_SEC,
        mutex_timeout: float = COMMAND_MUTEX_TIMEOUT_SEC,
        verify_delays: Sequence[float] = VERIFY_DELAYS_SEC,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            client: Device client shared with the poller.
            poller: Central poller, asked for a refresh after each command.
            machine: State machine of the control surface.
            min_spacing: Minimum time between two accepted commands.
            mutex_timeout: Age after which a held command lock is released.
            verify_delays: Delays before each verification pass.

        """
        self._client = client
        self._poller = poller
        self._machine = machine
        self._min_spacing = min_spacing
        self._mutex_timeout = mutex_timeout
        self._verify_delays = tuple(verify_delays)
        self._busy_since: float | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def busy(self) -> bool:
        """Return True while a command is in flight."""
        return self._busy_since is not None

    @property
    def task(self) -> asyncio.Task[None] | None:
        """Return the background apply/verify task, if one is running."""
        return self._task

    async def async_set_active(self, active: bool) -> None:
        """Switch the ventilation on or off.

        Raises:
            AldesNotAllowedError: While the unit is overridden.
            AldesBusyError: If a command is in flight or too recent.
            AldesCommunicationError: If the device is unreachable.

        """
        self._check_ready()
        await self._async_dispatch(self._machine.target_for_active(active))

    async def async_set_level(self, level: int) -> None:
        """Set the ventilation speed (0, 50 or 100); other levels are snapped.

        Raises:
            AldesNotAllowedError: While the unit is overridden.
            AldesBusyError: If a command is in flight or too recent.
            AldesCommunicationError: If the device is unreachable.

        """
        self._check_ready()
        await self._async_dispatch(self._machine.target_for_level(level))

    async def async_shutdown(self) -> None:
        """Cancel the background task, if any."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _check_ready(self) -> None:
        if self._machine.overridden:
            error_msg = "Not allowed in current state: ventilation is overridden"
            raise AldesNotAllowedError(error_msg)

        now = time.monotonic()
        if self._busy_since is not None:
            held = now - self._busy_since
            if held <= self._mutex_timeout:
                error_msg = "Resource busy: a command is already in flight"
                raise AldesBusyError(error_msg)
            _LOGGER.warning("Force releasing command lock held for %.0fs", held)
            self._force_release()

        last_command_at = self._machine.state.last_command_at
        if last_command_at is not None and now - last_command_at < self._min_spacing:
            error_msg = "Resource busy: commands sent too quickly"
            raise AldesBusyError(error_msg)

        if self._poller.identity is None or not self._client.healthy:
            error_msg = "Service communication failure: Aldes API unavailable"
            raise AldesCommunicationError(error_msg)

    async def _async_dispatch(self, target: OperatingMode) -> None:
        if target is self._machine.mode:
            _LOGGER.debug("Ventilation already in mode %s", target.name)
            self._machine.reassert()
            return

        self._busy_since = time.monotonic()
        self._machine.apply_optimistic(target)
        self._task = asyncio.create_task(self._async_apply_and_verify(target))

    def _force_release(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._busy_since = None

    async def _async_apply_and_verify(self, target: OperatingMode) -> None:
        identity = self._poller.identity
        try:
            if not await self._client.async_apply_mode(identity, target):
                # The unit sometimes applies a command despite a failed call
                _LOGGER.warning(
                    "Mode %s not acknowledged, verifying device state", target.name
                )
            await self._poller.async_request_immediate_refresh(
                f"mode set to {target.name}"
            )
            await self._async_verify(identity, target)
        except Exception:
            _LOGGER.exception("Unexpected error while applying mode %s", target.name)
        finally:
            if self._task is asyncio.current_task():
                self._task = None
                self._busy_since = None

    async def _async_verify(self, identity: str, target: OperatingMode) -> None:
        observed: DeviceStatus | None = None
        passes = len(self._verify_delays)
        for attempt, delay in enumerate(self._verify_delays, start=1):
            await asyncio.sleep(delay)
            payload = await self._client.async_fetch_status(identity)
            if payload is None:
                _LOGGER.debug("Verification pass %d/%d got no status", attempt, passes)
                continue
            observed = decode_status(payload)
            self._client.note_override(observed.overridden)
            if observed.mode is target:
                _LOGGER.debug(
                    "Mode %s confirmed on verification pass %d/%d",
                    target.name,
                    attempt,
                    passes,
                )
                self._machine.apply_status(observed)
                self._machine.confirm()
                return
            _LOGGER.debug(
                "Verification pass %d/%d: device in %s, expected %s",
                attempt,
                passes,
                observed.mode.name,
                target.name,
            )

        if observed is None:
            observed = self._poller.data
        if observed is None:
            _LOGGER.warning("Could not verify mode %s: no device status", target.name)
            self._machine.confirm()
            return

        _LOGGER.warning(
            "Device settled on mode %s instead of %s, correcting",
            observed.mode.name,
            target.name,
        )
        self._machine.apply_status(observed)
        self._machine.correct(observed.mode)
