"""Constants and defaults for the solar charger."""

# Limits
DEFAULT_MIN_AMPERE = 3  # Below this -> stop charging
DEFAULT_MAX_AMPERE = 32  # Hard ceiling
DEFAULT_VOLTAGE = 230
DEFAULT_BUFFER_POWER = 1000  # Watts kept back to avoid flickering into import
DEFAULT_MULTIPLE_OF = 3  # Ampere rounding
DEFAULT_COST_PER_KWH = 0.0

# Timing (seconds)
DEFAULT_SYNC_INTERVAL = 5.0
DEFAULT_VEHICLE_AWAKENING_TIME = 10.0
DEFAULT_INACTIVITY_TIME = 15 * 60
DEFAULT_WAIT_PER_AMPERE = 2.0
DEFAULT_EXTRA_WAIT_ON_CHARGE_START = 10.0
DEFAULT_EXTRA_WAIT_ON_CHARGE_STOP = 10.0
DEFAULT_WATCHDOG_POLL_INTERVAL = 3.0
DEFAULT_TOKEN_REFRESH_INTERVAL = 2 * 60 * 60

# Retry bounds
DEFAULT_MAX_WAKEUP_ATTEMPTS = 3
DEFAULT_MAX_PRODUCTION_DROP_RETRIES = 10
DEFAULT_STOP_CHARGING_ATTEMPTS = 3

# Telemetry transport retry
TELEMETRY_MAX_RETRIES = 5
TELEMETRY_BACKOFF_INITIAL = 2.0  # seconds
TELEMETRY_BACKOFF_FACTOR = 2.0
HTTP_TIMEOUT = 10  # seconds

# Conservative strategy
CONSERVATIVE_WINDOW_MINUTES = 30
CONSERVATIVE_BUFFER_POWER = 100

# Smoothing
DEFAULT_REQUIRED_CONSISTENT_READS = 3

# Battery state
BATTERY_STATE_REFRESH_COOLDOWN = 10 * 60  # seconds

# Weather-aware buffer
DEFAULT_BUFFER_MULTIPLIER_MAX = 3.0
DEFAULT_CAR_BATTERY_CAPACITY_KWH = 75.0
DEFAULT_PEAK_SOLAR_CAPACITY_KW = 9.0
DEFAULT_SOLAR_CUTOFF_HOUR = 18
FULL_CONFIDENCE_RATIO = 0.7  # actual/expected needed for full confidence
MIN_CHARGING_THRESHOLD_W = 690  # ~3A * 230V
FORECAST_PERIOD_HOURS = 0.5
COMPLETION_TOLERANCE_KWH = 0.3
URGENCY_BUFFER_REDUCTION = 0.5

# Solcast
SOLCAST_API_URL = "https://api.solcast.com.au/rooftop_sites/{}/forecasts"
FORECAST_CACHE_TTL = 60 * 60  # seconds

# Home Assistant
HA_SUPERVISOR_API_URL = "http://supervisor/core/api"

# MQTT
MQTT_RECONNECT_DELAY = 5  # seconds
PENDING_EVENT_LIMIT = 100  # events held back while disconnected
DEFAULT_MQTT_TOPIC_PREFIX = "solar_charger"
TOPIC_AMPERE = "ampere"
TOPIC_STATUS = "status"
TOPIC_SESSION = "session"
TOPIC_EVENT = "event"
TOPIC_AVAILABILITY = "availability"

# HA Discovery
DEFAULT_HA_DISCOVERY_PREFIX = "homeassistant"
DEVICE_IDENTIFIER = "solar_charger"
DEVICE_NAME = "Solar EV Charger"
DEVICE_MANUFACTURER = "Custom"
DEVICE_MODEL = "Solar Charger v1.0"

# Add-on options
OPTIONS_PATH = "/data/options.json"
