"""Transport strategies for reaching the ferries API.

Two runtime contexts need very different plumbing:

- A normal Python process can issue HTTP requests directly (aiohttp).
- Python running inside a browser page (Pyodide) is bound by CORS, and
  the upstream never sends CORS headers. There the only way in is the
  script bridge implemented in :mod:`pywsf._bridge`.

The strategy is chosen once, when the transport is created, never per
request.
"""

from __future__ import annotations

import importlib.util
import json
import logging
import sys
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from pywsf._constants import API_ERROR_MARKERS, USER_AGENT
from pywsf._redact import redact_url
from pywsf.config import WsfConfig
from pywsf.exceptions import WsfApiError, WsfHttpError, WsfTimeoutError, WsfTransportError

if TYPE_CHECKING:
    from pywsf._bridge import ScriptHost

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the ingestion layer.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementations concrete.
    """

    async def get_json(self, url: str) -> Any: ...


class RuntimeEnvironment(StrEnum):
    SERVER = "server"
    BROWSER = "browser"
    UNKNOWN = "unknown"


class TransportStrategy(StrEnum):
    DIRECT = "direct"
    BRIDGE = "bridge"
    # Neither a browser nor a recognised networking stack; try direct anyway.
    FALLBACK = "fallback"


def detect_environment() -> RuntimeEnvironment:
    """Work out which runtime context this process is in."""
    if sys.platform == "emscripten":
        if importlib.util.find_spec("js") is not None:
            import js  # type: ignore[import-not-found]

            if getattr(js, "document", None) is not None:
                return RuntimeEnvironment.BROWSER
        return RuntimeEnvironment.UNKNOWN
    if sys.platform != "wasi" and importlib.util.find_spec("_socket") is not None:
        return RuntimeEnvironment.SERVER
    return RuntimeEnvironment.UNKNOWN


def select_strategy(environment: RuntimeEnvironment, *, force_bridge: bool = False) -> TransportStrategy:
    if force_bridge or environment == RuntimeEnvironment.BROWSER:
        return TransportStrategy.BRIDGE
    if environment == RuntimeEnvironment.SERVER:
        return TransportStrategy.DIRECT
    return TransportStrategy.FALLBACK


def raise_for_api_message(data: Any, url: str) -> None:
    """Raise :class:`WsfApiError` when *data* is an upstream error envelope."""
    if not isinstance(data, dict):
        return
    message = data.get("Message")
    if not isinstance(message, str):
        return
    lowered = message.lower()
    if any(marker in lowered for marker in API_ERROR_MARKERS):
        raise WsfApiError(message, url=redact_url(url))


def with_query_param(url: str, name: str, value: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{name}={value}"


class DirectTransport:
    """Plain HTTP GET via aiohttp."""

    def __init__(self, config: WsfConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def get_json(self, url: str) -> Any:
        safe_url = redact_url(url)
        headers = {"accept": "application/json", "user-agent": USER_AGENT}

        _logger.debug("GET %s", safe_url)

        try:
            async with self._http.get(url, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    raise WsfHttpError(
                        f"HTTP {resp.status} from {safe_url}: {text[:200]}",
                        status_code=resp.status,
                        url=safe_url,
                    )
        except WsfTransportError:
            raise
        except TimeoutError as exc:
            raise WsfTimeoutError(
                f"Request to {safe_url} timed out after {self._config.request_timeout}s",
                url=safe_url,
            ) from exc
        except aiohttp.ClientError as exc:
            raise WsfTransportError(f"Request to {safe_url} failed: {exc}", url=safe_url) from exc

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise WsfTransportError(f"Invalid JSON from {safe_url}: {text[:200]}", url=safe_url) from exc

        raise_for_api_message(data, url)
        return data


def create_transport(
    config: WsfConfig,
    http_session: aiohttp.ClientSession | None,
    *,
    environment: RuntimeEnvironment | None = None,
    script_host: ScriptHost | None = None,
) -> Transport:
    """Build the transport for this runtime context."""
    if environment is None:
        environment = detect_environment()
    strategy = select_strategy(environment, force_bridge=config.force_bridge)
    _logger.debug("Transport strategy %s selected for %s environment", strategy, environment)

    if strategy != TransportStrategy.BRIDGE:
        if http_session is None:
            raise WsfTransportError(f"{strategy} transport requires an aiohttp session")
        return DirectTransport(config, http_session)

    # Import lazily; the bridge is only needed in browsers or when forced.
    from pywsf._bridge import BridgeTransport, PaddedScriptHost, PyodideScriptHost

    if script_host is None:
        if environment == RuntimeEnvironment.BROWSER:
            script_host = PyodideScriptHost()
        elif http_session is not None:
            script_host = PaddedScriptHost(config, http_session)
        else:
            raise WsfTransportError("bridge transport outside a browser requires an aiohttp session")
    return BridgeTransport(config, script_host)
