"""Tests for the Aldes command dispatcher."""

import asyncio
import time
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest
from homeassistant.exceptions import HomeAssistantError

from custom_components.aldes_vmc.dispatcher import (
    AldesBusyError,
    AldesCommunicationError,
    AldesControlError,
    AldesNotAllowedError,
    CommandDispatcher,
)
from custom_components.aldes_vmc.models import (
    ControlValues,
    DeviceStatus,
    OperatingMode,
)
from custom_components.aldes_vmc.state_machine import ModeStateMachine

DEVICE_ID = "AABBCCDDEEFF"


@pytest.fixture
def mock_client() -> Mock:
    """Create a healthy device client that accepts every command."""
    client = Mock()
    client.healthy = True
    client.async_apply_mode = AsyncMock(return_value=True)
    client.async_fetch_status = AsyncMock(return_value=None)
    return client


@pytest.fixture
def mock_poller() -> Mock:
    """Create a central poller with a resolved identity."""
    poller = Mock()
    poller.identity = DEVICE_ID
    poller.data = None
    poller.async_request_immediate_refresh = AsyncMock()
    return poller


@pytest.fixture
def listener() -> Mock:
    """Create a control surface listener."""
    return Mock()


@pytest.fixture
def machine(listener: Mock) -> ModeStateMachine:
    """Create a state machine that starts in MIN."""
    state_machine = ModeStateMachine(listener)
    state_machine.apply_status(DeviceStatus(mode=OperatingMode.MIN))
    listener.reset_mock()
    return state_machine


@pytest.fixture
def dispatcher(
    mock_client: Mock,
    mock_poller: Mock,
    machine: ModeStateMachine,
) -> CommandDispatcher:
    """Create a dispatcher without verification delays."""
    return CommandDispatcher(
        mock_client,
        mock_poller,
        machine,
        min_spacing=1.0,
        verify_delays=(0, 0, 0),
    )


async def run_to_completion(dispatcher: CommandDispatcher) -> None:
    """Wait for the background apply/verify task of a dispatcher."""
    task = dispatcher.task
    assert task is not None
    await task


class TestControlErrors:
    """Tests for the control error hierarchy."""

    def test_control_errors_are_home_assistant_errors(self) -> None:
        """Test that every control error is shown to the user by the host."""
        for error in (
            AldesNotAllowedError,
            AldesBusyError,
            AldesCommunicationError,
        ):
            assert issubclass(error, AldesControlError)
            assert issubclass(error, HomeAssistantError)


class TestRejections:
    """Tests for requests rejected before any command is sent."""

    @pytest.mark.asyncio
    async def test_overridden_rejects_every_request(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
    ) -> None:
        """Test that an overridden unit rejects writes without calling apply."""
        machine.apply_status(DeviceStatus(mode=OperatingMode.MAX, overridden=True))

        with pytest.raises(AldesNotAllowedError):
            await dispatcher.async_set_active(False)
        with pytest.raises(AldesNotAllowedError):
            await dispatcher.async_set_active(True)
        for level in (0, 50, 100):
            with pytest.raises(AldesNotAllowedError):
                await dispatcher.async_set_level(level)

        mock_client.async_apply_mode.assert_not_called()
        assert dispatcher.task is None

    @pytest.mark.asyncio
    async def test_second_command_within_spacing_is_busy(
        self,
        dispatcher: CommandDispatcher,
        mock_client: Mock,
    ) -> None:
        """Test that the first command proceeds and the second is rejected."""
        await dispatcher.async_set_level(100)
        with pytest.raises(AldesBusyError):
            await dispatcher.async_set_level(50)
        await run_to_completion(dispatcher)

        with pytest.raises(AldesBusyError):
            await dispatcher.async_set_active(False)

        mock_client.async_apply_mode.assert_awaited_once_with(
            DEVICE_ID, OperatingMode.MAX
        )

    @pytest.mark.asyncio
    async def test_spacing_follows_last_command_timestamp(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
    ) -> None:
        """Test that spacing is measured from the state's last command time."""
        machine.state.last_command_at = time.monotonic()
        with pytest.raises(AldesBusyError):
            await dispatcher.async_set_level(100)
        mock_client.async_apply_mode.assert_not_called()

        machine.state.last_command_at = time.monotonic() - 5
        await dispatcher.async_set_level(100)
        await run_to_completion(dispatcher)
        mock_client.async_apply_mode.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unhealthy_client_is_communication_failure(
        self,
        dispatcher: CommandDispatcher,
        mock_client: Mock,
    ) -> None:
        """Test that an unhealthy client short-circuits the request."""
        mock_client.healthy = False
        with pytest.raises(AldesCommunicationError):
            await dispatcher.async_set_active(True)
        mock_client.async_apply_mode.assert_not_called()

    @pytest.mark.asyncio
    async def test_unresolved_identity_is_communication_failure(
        self,
        dispatcher: CommandDispatcher,
        mock_poller: Mock,
    ) -> None:
        """Test that a request before identity resolution is rejected."""
        mock_poller.identity = None
        with pytest.raises(AldesCommunicationError):
            await dispatcher.async_set_level(50)


class TestDispatch:
    """Tests for accepted commands."""

    @pytest.mark.asyncio
    async def test_set_active_true_from_min_applies_boost(
        self,
        dispatcher: CommandDispatcher,
        mock_client: Mock,
        mock_poller: Mock,
        listener: Mock,
        status_payload_factory: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that switching on from MIN sends BOOST, optimistically."""
        mock_client.async_fetch_status.return_value = status_payload_factory("Y")

        await dispatcher.async_set_active(True)
        listener.assert_called_once_with(ControlValues(True, 50))
        assert dispatcher.busy is True
        await run_to_completion(dispatcher)

        mock_client.async_apply_mode.assert_awaited_once_with(
            DEVICE_ID, OperatingMode.BOOST
        )
        mock_poller.async_request_immediate_refresh.assert_awaited_once()
        assert dispatcher.busy is False
        assert dispatcher.task is None

    @pytest.mark.asyncio
    async def test_set_active_false_applies_min(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
        status_payload_factory: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that switching off sends MIN."""
        machine.apply_status(DeviceStatus(mode=OperatingMode.MAX))
        mock_client.async_fetch_status.return_value = status_payload_factory("V")

        await dispatcher.async_set_active(False)
        await run_to_completion(dispatcher)

        mock_client.async_apply_mode.assert_awaited_once_with(
            DEVICE_ID, OperatingMode.MIN
        )
        assert machine.mode is OperatingMode.MIN

    @pytest.mark.asyncio
    async def test_same_mode_reasserts_without_command(
        self,
        dispatcher: CommandDispatcher,
        mock_client: Mock,
        listener: Mock,
    ) -> None:
        """Test that a request for the cached mode only re-asserts values."""
        await dispatcher.async_set_level(0)

        listener.assert_called_once_with(ControlValues(False, 0))
        mock_client.async_apply_mode.assert_not_called()
        assert dispatcher.task is None

    @pytest.mark.asyncio
    async def test_confirmation_stops_verification(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
        status_payload_factory: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that the first confirming pass ends the verification."""
        mock_client.async_fetch_status.return_value = status_payload_factory("X")

        await dispatcher.async_set_level(100)
        await run_to_completion(dispatcher)

        mock_client.async_fetch_status.assert_awaited_once_with(DEVICE_ID)
        assert machine.mode is OperatingMode.MAX
        assert machine.state.pending is False

    @pytest.mark.asyncio
    async def test_verification_reports_override_to_client(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
        status_payload_factory: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that an override seen while verifying reaches the client."""
        mock_client.async_fetch_status.return_value = status_payload_factory(
            "V", overridden=True
        )

        await dispatcher.async_set_level(100)
        await run_to_completion(dispatcher)

        mock_client.note_override.assert_called_with(True)
        assert mock_client.note_override.call_count == 3
        assert machine.overridden is True
        assert machine.mode is OperatingMode.MIN

    @pytest.mark.asyncio
    async def test_mismatch_corrects_to_observed_mode(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
        listener: Mock,
        status_payload_factory: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that a device staying in its prior mode reverts the surface."""
        mock_client.async_fetch_status.return_value = status_payload_factory("V")

        await dispatcher.async_set_level(100)
        assert listener.call_args.args[0] == ControlValues(True, 100)
        await run_to_completion(dispatcher)

        assert mock_client.async_fetch_status.await_count == 3
        assert machine.mode is OperatingMode.MIN
        assert machine.state.pending is False
        assert listener.call_args.args[0] == ControlValues(False, 0)

    @pytest.mark.asyncio
    async def test_failed_apply_is_not_reverted_when_device_followed(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_client: Mock,
        listener: Mock,
        status_payload_factory: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that verification, not the apply result, decides the outcome."""
        mock_client.async_apply_mode.return_value = False
        mock_client.async_fetch_status.return_value = status_payload_factory("Y")

        await dispatcher.async_set_level(50)
        await run_to_completion(dispatcher)

        assert machine.mode is OperatingMode.BOOST
        assert listener.call_args.args[0] == ControlValues(True, 50)

    @pytest.mark.asyncio
    async def test_unverifiable_command_falls_back_to_last_poll(
        self,
        dispatcher: CommandDispatcher,
        machine: ModeStateMachine,
        mock_poller: Mock,
    ) -> None:
        """Test that failed verification fetches use the last polled status."""
        mock_poller.data = DeviceStatus(mode=OperatingMode.MIN)

        await dispatcher.async_set_level(100)
        await run_to_completion(dispatcher)

        assert machine.mode is OperatingMode.MIN

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_mutex(
        self,
        mock_client: Mock,
        mock_poller: Mock,
        machine: ModeStateMachine,
    ) -> None:
        """Test that an error inside the task still releases the mutex."""
        mock_client.async_apply_mode.side_effect = RuntimeError("boom")
        dispatcher = CommandDispatcher(
            mock_client, mock_poller, machine, min_spacing=0, verify_delays=()
        )

        await dispatcher.async_set_level(100)
        await run_to_completion(dispatcher)

        assert dispatcher.busy is False
        await dispatcher.async_set_level(50)
        await run_to_completion(dispatcher)
        assert mock_client.async_apply_mode.await_count == 2


class TestMutexTimeout:
    """Tests for the force release of a stuck command."""

    @pytest.mark.asyncio
    async def test_stale_mutex_is_force_released(
        self,
        mock_client: Mock,
        mock_poller: Mock,
        machine: ModeStateMachine,
    ) -> None:
        """Test that a command lock older than the ceiling is released."""
        hang = asyncio.Event()
        calls: list[OperatingMode] = []

        async def apply_mode(identity: str, mode: OperatingMode) -> bool:
            calls.append(mode)
            if len(calls) == 1:
                await hang.wait()
            return True

        mock_client.async_apply_mode.side_effect = apply_mode
        dispatcher = CommandDispatcher(
            mock_client,
            mock_poller,
            machine,
            min_spacing=0,
            mutex_timeout=0,
            verify_delays=(),
        )

        await dispatcher.async_set_level(100)
        stuck = dispatcher.task
        await asyncio.sleep(0.01)

        await dispatcher.async_set_level(50)
        await run_to_completion(dispatcher)

        assert stuck is not None
        assert stuck.cancelled()
        assert calls == [OperatingMode.MAX, OperatingMode.BOOST]
        assert dispatcher.busy is False

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_task(
        self,
        dispatcher: CommandDispatcher,
        mock_client: Mock,
    ) -> None:
        """Test that async_shutdown cancels the verification in progress."""
        never_set = asyncio.Event()

        async def apply_mode(identity: str, mode: OperatingMode) -> bool:
            await never_set.wait()
            return True

        mock_client.async_apply_mode.side_effect = apply_mode

        await dispatcher.async_set_level(100)
        task = dispatcher.task
        await asyncio.sleep(0)
        await dispatcher.async_shutdown()

        assert task is not None
        assert task.cancelled()
        assert dispatcher.busy is False
