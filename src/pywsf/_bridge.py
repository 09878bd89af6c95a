"""Script-injection bridge for CORS-restricted runtimes.

The ferries API does not send CORS headers, but it honours a ``callback``
query parameter and wraps its JSON in a call to that function. Loading the
URL as a ``<script>`` therefore hands the payload to a global function of
our choosing.

The moving parts:

- :class:`CallbackRegistry` owns the pending calls, keyed by a generated
  callback name. Names are claimed and released in a ``with`` block so
  every exit path (payload, script error, timeout, cancellation) frees
  them.
- A :class:`ScriptHost` exposes the global function and injects/removes
  the script. :class:`PyodideScriptHost` does this in a real page;
  :class:`PaddedScriptHost` emulates it over HTTP for server processes
  that force the bridge.
- :class:`BridgeTransport` ties them together under a timeout.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import secrets
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from pywsf._constants import CALLBACK_PARAM, USER_AGENT
from pywsf._redact import redact_url
from pywsf._transport import raise_for_api_message, with_query_param
from pywsf.config import WsfConfig
from pywsf.exceptions import WsfScriptLoadError, WsfTimeoutError

_logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_SUFFIX_LENGTH = 7

# name( ... ) with an optional trailing semicolon and the /**/ guard some
# servers prepend.
_PADDING_RE = re.compile(r"^\s*(?:/\*\*/\s*)?([A-Za-z_$][\w$]*)\s*\((.*)\)\s*;?\s*$", re.DOTALL)


def generate_callback_name() -> str:
    """Return a callback name built from the current time and a random suffix."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_SUFFIX_LENGTH))
    return f"jsonp_{int(time.time() * 1000)}_{suffix}"


@dataclass(slots=True)
class PendingCall:
    """A bridged request waiting for its callback."""

    name: str
    future: asyncio.Future[Any]
    created_at: float = field(default_factory=time.monotonic)


class CallbackRegistry:
    """Pending bridged calls keyed by callback name.

    The registry replaces the page-global namespace as the source of truth:
    a script host only forwards calls into :meth:`dispatch` / :meth:`fail`,
    and a name that is no longer registered is silently ignored.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingCall] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def _new_name(self) -> str:
        name = generate_callback_name()
        while name in self._pending:
            name = generate_callback_name()
        return name

    @contextlib.contextmanager
    def claim(self) -> Iterator[PendingCall]:
        """Reserve a unique callback name for the duration of the block."""
        loop = asyncio.get_running_loop()
        call = PendingCall(name=self._new_name(), future=loop.create_future())
        self._pending[call.name] = call
        try:
            yield call
        finally:
            self._pending.pop(call.name, None)
            if not call.future.done():
                call.future.cancel()

    def dispatch(self, name: str, payload: Any) -> bool:
        """Deliver *payload* to the call registered under *name*.

        Returns ``False`` for unknown or already-settled names (late callbacks).
        """
        call = self._pending.get(name)
        if call is None or call.future.done():
            _logger.debug("Ignoring late bridge callback %s", name)
            return False
        call.future.set_result(payload)
        return True

    def fail(self, name: str, error: BaseException) -> bool:
        call = self._pending.get(name)
        if call is None or call.future.done():
            return False
        call.future.set_exception(error)
        return True


class ScriptHost(Protocol):
    """Something that can expose a global callback and load a script."""

    def attach(self, name: str, src: str, registry: CallbackRegistry) -> None:
        """Install global *name* forwarding to *registry*, then load *src*.

        Load failures must be reported through ``registry.fail(name, ...)``.
        """
        ...

    def detach(self, name: str) -> None:
        """Remove the script and the global function. Must be idempotent."""
        ...


class PyodideScriptHost:
    """Script host backed by the page DOM when running under Pyodide."""

    def __init__(self) -> None:
        import js  # type: ignore[import-not-found]
        from pyodide.ffi import create_proxy  # type: ignore[import-not-found]

        self._js = js
        self._create_proxy = create_proxy
        self._attached: dict[str, tuple[Any, list[Any]]] = {}

    def attach(self, name: str, src: str, registry: CallbackRegistry) -> None:
        def _on_payload(data: Any) -> None:
            to_py = getattr(data, "to_py", None)
            registry.dispatch(name, to_py() if callable(to_py) else data)

        def _on_error(_event: Any) -> None:
            registry.fail(name, WsfScriptLoadError("Bridge script load failed", url=redact_url(src)))

        payload_proxy = self._create_proxy(_on_payload)
        error_proxy = self._create_proxy(_on_error)
        proxies = [payload_proxy, error_proxy]
        # Recorded before touching the page so detach can undo a partial attach.
        self._attached[name] = (None, proxies)
        setattr(self._js.window, name, payload_proxy)

        script = self._js.document.createElement("script")
        self._attached[name] = (script, proxies)
        script.onerror = error_proxy
        script.src = src
        self._js.document.head.appendChild(script)

    def detach(self, name: str) -> None:
        entry = self._attached.pop(name, None)
        if entry is None:
            return
        script, proxies = entry
        parent = None if script is None else script.parentNode
        if parent is not None:
            parent.removeChild(script)
        self._js.Reflect.deleteProperty(self._js.window, name)
        for proxy in proxies:
            proxy.destroy()

    def is_attached(self, name: str) -> bool:
        return name in self._attached


def _is_empty_payload(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, str):
        return not payload.strip()
    return isinstance(payload, dict) and not payload


def unwrap_padding(text: str, name: str) -> Any:
    """Extract the JSON argument from ``name(<json>);``."""
    match = _PADDING_RE.match(text)
    if match is None or match.group(1) != name:
        raise ValueError(f"response is not wrapped in {name}(...)")
    return json.loads(match.group(2))


class PaddedScriptHost:
    """Script host that loads the padded script over HTTP.

    Stands in for a browser when the bridge is forced in a server process:
    the "script" is fetched with aiohttp, its padding stripped, and the
    payload dispatched exactly as the page would call the global function.
    Detaching cancels an in-flight load.
    """

    def __init__(self, config: WsfConfig, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        self._loads: dict[str, asyncio.Task[None]] = {}

    def attach(self, name: str, src: str, registry: CallbackRegistry) -> None:
        self._loads[name] = asyncio.get_running_loop().create_task(self._load(name, src, registry))

    def detach(self, name: str) -> None:
        task = self._loads.pop(name, None)
        if task is not None and not task.done():
            task.cancel()

    def is_attached(self, name: str) -> bool:
        return name in self._loads

    async def _load(self, name: str, src: str, registry: CallbackRegistry) -> None:
        safe_src = redact_url(src)
        try:
            async with self._http.get(
                src,
                headers={"accept": "application/javascript", "user-agent": USER_AGENT},
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise WsfScriptLoadError(
                        f"Bridge script load failed: HTTP {resp.status}",
                        status_code=resp.status,
                        url=safe_src,
                    )
            payload = unwrap_padding(text, name)
        except WsfScriptLoadError as exc:
            registry.fail(name, exc)
            return
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            _logger.debug("Bridge script %s failed to load", safe_src, exc_info=True)
            registry.fail(name, WsfScriptLoadError(f"Bridge script load failed: {exc}", url=safe_src))
            return
        registry.dispatch(name, payload)


class BridgeTransport:
    """Transport that retrieves JSON through an injected script.

    A null, blank-string or empty-object payload comes back as ``None``.
    """

    def __init__(
        self,
        config: WsfConfig,
        host: ScriptHost,
        *,
        registry: CallbackRegistry | None = None,
    ) -> None:
        self._timeout = config.bridge_timeout
        self._host = host
        self._registry = registry if registry is not None else CallbackRegistry()

    @property
    def registry(self) -> CallbackRegistry:
        return self._registry

    async def get_json(self, url: str) -> Any:
        safe_url = redact_url(url)
        with self._registry.claim() as call:
            src = with_query_param(url, CALLBACK_PARAM, call.name)
            _logger.debug("BRIDGE %s via %s", safe_url, call.name)
            try:
                self._host.attach(call.name, src, self._registry)
                try:
                    payload = await asyncio.wait_for(call.future, timeout=self._timeout)
                except TimeoutError as exc:
                    raise WsfTimeoutError(
                        f"Bridge request to {safe_url} timed out after {self._timeout}s",
                        url=safe_url,
                    ) from exc
            finally:
                self._host.detach(call.name)

        raise_for_api_message(payload, url)
        if _is_empty_payload(payload):
            return None
        return payload
