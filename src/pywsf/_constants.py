"""Internal constants shared across the library."""

BASE_URL = "https://www.wsdot.wa.gov/ferries/api"
USER_AGENT = "pywsf/0.1 (+aiohttp)"

#: Query parameter the ferries API reads the access token from.
ACCESS_CODE_PARAM = "apiaccesscode"

#: Query parameter the upstream wraps its response in for script bridging.
CALLBACK_PARAM = "callback"

BRIDGE_TIMEOUT_SECONDS: float = 30.0
REQUEST_TIMEOUT_SECONDS: float = 30.0

# ------------------------------------------------------------------
# Durations in seconds
# ------------------------------------------------------------------

SECOND = 1.0
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY
MONTH = 30 * DAY

#: Upper bound for a single retry back-off step.
MAX_RETRY_DELAY_SECONDS: float = 30 * SECOND

# Wording the upstream uses in ``{"Message": ...}`` error envelopes.
API_ERROR_MARKERS: tuple[str, ...] = (
    "failed",
    "invalid",
    "not valid",
    "cannot be used",
    "error",
)
