"""pywsf - Async Python client for the Washington State Ferries data API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pywsf")
except PackageNotFoundError:
    __version__ = "0+local"
from pywsf._api.endpoints import ENDPOINTS, FLUSH_ENDPOINTS, Endpoint, endpoints_for, get_endpoint
from pywsf._transport import RuntimeEnvironment, TransportStrategy, detect_environment, select_strategy
from pywsf.client import WsfClient
from pywsf.config import WsfConfig
from pywsf.exceptions import (
    WsfApiError,
    WsfConfigError,
    WsfError,
    WsfHttpError,
    WsfScriptLoadError,
    WsfTimeoutError,
    WsfTransportError,
)
from pywsf.ingestion import FetchResult, Ingestor, ingest, normalize_payload
from pywsf.state.coherency import CoherencyMonitor, CoherencyPoller
from pywsf.state.events import DataDomain, InvalidationEvent
from pywsf.state.policy import COHERENCY_CHECK, FREQUENT, INFREQUENT, CachePolicy, CacheStrategy, policy_for
from pywsf.state.store import QueryCache, Subscription

__all__ = [
    "__version__",
    "COHERENCY_CHECK",
    "CachePolicy",
    "CacheStrategy",
    "CoherencyMonitor",
    "CoherencyPoller",
    "DataDomain",
    "ENDPOINTS",
    "Endpoint",
    "FLUSH_ENDPOINTS",
    "FREQUENT",
    "FetchResult",
    "INFREQUENT",
    "Ingestor",
    "InvalidationEvent",
    "QueryCache",
    "RuntimeEnvironment",
    "Subscription",
    "TransportStrategy",
    "WsfApiError",
    "WsfClient",
    "WsfConfig",
    "WsfConfigError",
    "WsfError",
    "WsfHttpError",
    "WsfScriptLoadError",
    "WsfTimeoutError",
    "WsfTransportError",
    "detect_environment",
    "endpoints_for",
    "get_endpoint",
    "ingest",
    "normalize_payload",
    "policy_for",
    "select_strategy",
]
