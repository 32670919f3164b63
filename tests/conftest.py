"""Pytest configuration and fixtures for Aldes VMC tests."""

import pathlib
import sys
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

# Ensure project root is on sys.path for direct module imports in tests
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ACCESS_TOKEN = "test_access_token"
DEVICE_ID = "AABBCCDDEEFF"


def create_status_payload(
    mode: str | None = "V",
    *,
    overridden: bool = False,
    co2: int | None = 450,
    temperature_main: int | None = 213,
) -> dict[str, Any]:
    """Create a device-details payload using the flat indicator list.

    Args:
        mode: Mode indicator value, or None to omit it.
        overridden: Value of the override indicator.
        co2: CO2 level in ppm, or None to omit it.
        temperature_main: Raw main temperature (tenths of a degree), or None.

    Returns:
        A dictionary shaped like the device-details response.

    """
    indicators: list[dict[str, Any]] = [
        {"type": "SELF_CONTROLLED", "value": overridden},
        {"type": "QAI", "value": 72},
        {"type": "HR_MAIN", "value": 48},
    ]
    if mode is not None:
        indicators.append({"type": "MODE", "value": mode})
    if co2 is not None:
        indicators.append({"type": "CO2", "value": co2})
    if temperature_main is not None:
        indicators.append({"type": "TMP_MAIN", "value": temperature_main})
    return {"modem": DEVICE_ID, "isConnected": True, "indicators": indicators}


@pytest.fixture
def status_payload_factory() -> Callable[..., dict[str, Any]]:
    """Fixture providing create_status_payload to tests."""
    return create_status_payload


@pytest.fixture
def sample_status_payload() -> dict[str, Any]:
    """Fixture providing a device-details payload in mode V (MIN)."""
    return create_status_payload()


@pytest.fixture
def sample_products_response() -> list[dict[str, Any]]:
    """Fixture providing a product listing with one ventilation unit."""
    return [
        {
            "modem": DEVICE_ID,
            "reference": "TONE_AIR",
            "type": "TONE",
            "isConnected": True,
        }
    ]


@pytest.fixture
def sample_token_response() -> dict[str, Any]:
    """Fixture providing a token endpoint response."""
    return {
        "access_token": ACCESS_TOKEN,
        "token_type": "bearer",
        "expires_in": 86399,
    }


@pytest.fixture
def mock_session() -> Mock:
    """Create a mock HTTP session."""
    return Mock(spec=httpx.AsyncClient)


@pytest.fixture
def mock_store() -> Mock:
    """Create a mock credential store with nothing persisted."""
    store = Mock()
    store.async_load = AsyncMock(return_value=None)
    store.async_save = AsyncMock()
    store.async_remove = AsyncMock()
    return store
