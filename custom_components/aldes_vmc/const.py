"""Constants for Aldes VMC integration.

This module contains all the constants used throughout the integration,
including API endpoints, configuration keys, timing values and the
indicator catalogue of the device-details payload.
"""

DOMAIN = "aldes_vmc"
MANUFACTURER = "Aldes"

TOKEN_URL = "https://aldesiotsuite-aldeswebapi.azurewebsites.net/oauth2/token/"
BASE_URL = "https://aldesiotsuite-aldeswebapi.azurewebsites.net/aldesoc/v4"

STORAGE_VERSION = 1
STORAGE_KEY = "aldes_vmc_access_token"

HTTP_TIMEOUT_SEC = 10.0

# Device client retry and soft rate limit
API_RETRY_ATTEMPTS = 3
RETRY_DELAY_SEC = 2.0
API_CALL_COOLDOWN_SEC = 1.0

# Health bookkeeping
HEALTH_FAILURE_THRESHOLD = 3
HEALTH_SUCCESS_WINDOW_SEC = 60.0
HEALTH_RESET_THRESHOLD = 5

# Poller
DEFAULT_POLL_INTERVAL = 60
DEFAULT_SENSOR_POLL_INTERVAL = 60
REFRESH_DEBOUNCE_SEC = 0.5

# Command dispatcher
COMMAND_MIN_SPACING_SEC = 1.0
COMMAND_MUTEX_TIMEOUT_SEC = 30.0
VERIFY_DELAYS_SEC = (5.0, 4.0, 4.0)

# Control surface levels
LEVEL_OFF = 0
LEVEL_BOOST = 50
LEVEL_MAX = 100

CO2_ABNORMAL_PPM = 1000

# Upper bounds of the air quality index (lower is better); above the last is poor
AIR_QUALITY_LEVELS = (
    (10, "excellent"),
    (20, "good"),
    (35, "fair"),
    (50, "inferior"),
)
AIR_QUALITY_POOR = "poor"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"

CONF_POLL_INTERVAL = "poll_interval"
CONF_SENSOR_POLL_INTERVAL = "sensor_poll_interval"
CONF_ENABLE_SENSORS = "enable_sensors"

LOCATION_MAIN = "main"
LOCATIONS = ("main", "ba1", "ba2", "ba3", "ba4")
LOCATION_NAMES = {
    "main": "Kitchen",
    "ba1": "Bathroom 1",
    "ba2": "Bathroom 2",
    "ba3": "Bathroom 3",
    "ba4": "Bathroom 4",
}
DEFAULT_ENABLED_LOCATIONS = ("main", "ba1", "ba2")


def conf_enable_location(location: str) -> str:
    """Return the option key enabling the probes of a location."""
    return f"enable_location_{location}"


# Indicator catalogue: field -> (flat indicator type, nested indicator code)
INDICATOR_MODE = ("MODE", "mode")
INDICATOR_OVERRIDE = ("SELF_CONTROLLED", "force")
INDICATOR_AIR_QUALITY = ("QAI", "qai")
INDICATOR_CO2 = ("CO2", "co2")
TEMPERATURE_INDICATORS = {
    location: (f"TMP_{location.upper()}", f"tmp_{location}") for location in LOCATIONS
}
HUMIDITY_INDICATORS = {
    location: (f"HR_{location.upper()}", f"hr_{location}") for location in LOCATIONS
}
TEMPERATURE_SCALE = 10.0

