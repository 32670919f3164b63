"""
Configuration flow for Aldes VMC integration.

This module handles the setup and configuration of the Aldes VMC
integration through Home Assistant's config flow system, including the
options controlling polling and the exposed sensors.
"""

import logging
from typing import Any

import httpx
import voluptuous as vol
from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import callback
from homeassistant.helpers.httpx_client import get_async_client

from . import api
from .const import (
    CONF_ENABLE_SENSORS,
    CONF_POLL_INTERVAL,
    CONF_SENSOR_POLL_INTERVAL,
    DEFAULT_ENABLED_LOCATIONS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SENSOR_POLL_INTERVAL,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
    LOCATIONS,
    conf_enable_location,
)

_LOGGER = logging.getLogger(__name__)

MIN_POLL_INTERVAL = 10
MAX_POLL_INTERVAL = 3600


class AldesVmcConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Aldes VMC integration."""

    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:  # noqa: ARG004
        """Return the options flow handler."""
        return AldesVmcOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        The credentials are validated with a token exchange before the
        entry is created.

        Args:
            user_input: User input data containing username and password.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            username = user_input[CONF_USERNAME]
            password = user_input[CONF_PASSWORD]

            try:
                session = get_async_client(self.hass)
                await api.async_request_token(session, username, password)
                _LOGGER.info("Successfully authenticated with Aldes API")

            except api.AldesApiAuthError as err:
                _LOGGER.warning(
                    "Authentication failed (%s): %s", ERROR_INVALID_AUTH, err
                )
                errors["base"] = ERROR_INVALID_AUTH
            except httpx.ConnectError:
                _LOGGER.exception("Connection error (%s)", ERROR_CANNOT_CONNECT)
                errors["base"] = ERROR_CANNOT_CONNECT
            except httpx.TimeoutException:
                _LOGGER.exception("Timeout error (%s)", ERROR_TIMEOUT)
                errors["base"] = ERROR_TIMEOUT
            except api.AldesApiClientError:
                _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
                errors["base"] = ERROR_API_ERROR
            except Exception:
                _LOGGER.exception(
                    "Unexpected error during authentication (%s)",
                    ERROR_UNKNOWN,
                )
                errors["base"] = ERROR_UNKNOWN

            else:
                await self.async_set_unique_id(username.lower())
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Aldes VMC ({username})",
                    data={
                        CONF_USERNAME: username,
                        CONF_PASSWORD: password,
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_USERNAME): str,
                    vol.Required(CONF_PASSWORD): str,
                }
            ),
            errors=errors,
        )


class AldesVmcOptionsFlow(OptionsFlow):
    """Handle the polling and sensor options."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Show and store the integration options."""
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        return self.async_show_form(
            step_id="init",
            data_schema=build_options_schema(self.config_entry.options),
        )


def build_options_schema(options: dict[str, Any]) -> vol.Schema:
    """Build the options schema, defaulting to the current options."""
    interval = vol.All(
        vol.Coerce(int), vol.Range(min=MIN_POLL_INTERVAL, max=MAX_POLL_INTERVAL)
    )
    schema: dict[Any, Any] = {
        vol.Optional(
            CONF_POLL_INTERVAL,
            default=options.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
        ): interval,
        vol.Optional(
            CONF_SENSOR_POLL_INTERVAL,
            default=options.get(
                CONF_SENSOR_POLL_INTERVAL, DEFAULT_SENSOR_POLL_INTERVAL
            ),
        ): interval,
        vol.Optional(
            CONF_ENABLE_SENSORS,
            default=options.get(CONF_ENABLE_SENSORS, True),
        ): bool,
    }
    for location in LOCATIONS:
        key = conf_enable_location(location)
        schema[
            vol.Optional(
                key,
                default=options.get(key, location in DEFAULT_ENABLED_LOCATIONS),
            )
        ] = bool
    return vol.Schema(schema)
