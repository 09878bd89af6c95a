"""Client configuration for pywsf."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from pywsf._constants import BASE_URL, BRIDGE_TIMEOUT_SECONDS, REQUEST_TIMEOUT_SECONDS
from pywsf.exceptions import WsfConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise WsfConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class WsfConfig:
    """Client configuration.

    Parameters
    ----------
    access_token : str
        WSDOT traveler API access code. Sent as the ``apiaccesscode``
        query parameter on every request.
    base_url : str
        Root of the ferries API. Each data domain lives under
        ``{base_url}/{domain}/rest``.
    force_bridge : bool
        Use the script bridge even when direct networking is available.
        Outside a browser this loads the padded script over HTTP.
    bridge_timeout : float
        Seconds to wait for a bridged callback before giving up.
    request_timeout : float
        Total timeout in seconds for a direct HTTP request.
    empty_as_none : bool
        Replace empty strings with ``None`` during normalization.
    api_trace_enabled : bool
        Log failed ingestions at WARNING instead of DEBUG.
    """

    access_token: str = ""
    base_url: str = BASE_URL
    force_bridge: bool = False
    bridge_timeout: float = BRIDGE_TIMEOUT_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    empty_as_none: bool = True
    api_trace_enabled: bool = False

    def __post_init__(self) -> None:
        if self.bridge_timeout <= 0:
            raise WsfConfigError(f"bridge_timeout must be positive, got {self.bridge_timeout}")
        if self.request_timeout <= 0:
            raise WsfConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    def domain_base_url(self, domain: str) -> str:
        """Return the REST root for a data domain."""
        return f"{self.base_url.rstrip('/')}/{domain}/rest"

    @classmethod
    def from_env(cls, **overrides: Any) -> WsfConfig:
        """Create configuration from environment variables.

        Reads ``WSDOT_ACCESS_TOKEN`` (or the Expo-style
        ``EXPO_PUBLIC_WSDOT_ACCESS_TOKEN``) plus optional ``WSF_*``
        variables. Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        token = env.get("WSDOT_ACCESS_TOKEN") or env.get("EXPO_PUBLIC_WSDOT_ACCESS_TOKEN")
        if token is not None:
            config_kwargs["access_token"] = token.strip()

        base_url = env.get("WSF_BASE_URL")
        if base_url:
            config_kwargs["base_url"] = base_url

        if "force_bridge" not in overrides:
            config_kwargs["force_bridge"] = _env_bool(env.get("WSF_FORCE_BRIDGE"), False)

        if "empty_as_none" not in overrides:
            config_kwargs["empty_as_none"] = _env_bool(env.get("WSF_EMPTY_AS_NONE"), True)

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(env.get("WSF_API_TRACE_ENABLED"), False)

        bridge_timeout = _env_float(env, "WSF_BRIDGE_TIMEOUT")
        if bridge_timeout is not None and "bridge_timeout" not in overrides:
            config_kwargs["bridge_timeout"] = bridge_timeout

        request_timeout = _env_float(env, "WSF_REQUEST_TIMEOUT")
        if request_timeout is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = request_timeout

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
