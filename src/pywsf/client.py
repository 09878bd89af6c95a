"""High-level async client for the WSF ferry data feeds."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

import aiohttp

from pywsf._api.endpoints import FLUSH_ENDPOINTS, Endpoint, get_endpoint
from pywsf._transport import RuntimeEnvironment, Transport, create_transport
from pywsf.config import WsfConfig
from pywsf.exceptions import WsfError
from pywsf.ingestion.ingest import FetchResult, Ingestor
from pywsf.state.coherency import CoherencyMonitor, CoherencyPoller, flush_key
from pywsf.state.events import DataDomain, InvalidationEvent
from pywsf.state.policy import CachePolicy, policy_for
from pywsf.state.store import DataListener, Fetcher, QueryCache, Subscription

if TYPE_CHECKING:
    from pywsf._bridge import ScriptHost

_logger = logging.getLogger(__name__)


class WsfClient:
    """Async client for the WSF vessels/terminals/schedule/fares APIs.

    Usage::

        async with WsfClient(WsfConfig.from_env()) as client:
            client.watch_domain("vessels")
            locations = await client.query("vessels:vesselLocations")

    Reads go through a policy-driven :class:`QueryCache`. Watched domains
    poll their flush marker and invalidate every cached query of that
    domain when it moves.
    """

    def __init__(
        self,
        config: WsfConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        script_host: ScriptHost | None = None,
        environment: RuntimeEnvironment | None = None,
        cache: QueryCache | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._external_transport = transport is not None
        self._transport = transport
        self._script_host = script_host
        self._environment = environment
        self._ingestor: Ingestor | None = None
        self._cache = cache if cache is not None else QueryCache()
        self._monitor = CoherencyMonitor()
        self._poller = CoherencyPoller(self._monitor, self._cache, self._marker_fetcher)
        self._monitor_unsubscribers: dict[DataDomain, Callable[[], None]] = {}

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> WsfClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = create_transport(
                self._config,
                self._http_session,
                environment=self._environment,
                script_host=self._script_host,
            )
        self._ingestor = Ingestor(
            self._transport,
            empty_as_none=self._config.empty_as_none,
            trace=self._config.api_trace_enabled,
        )
        self._cache.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._poller.close()
        for remove in self._monitor_unsubscribers.values():
            remove()
        self._monitor_unsubscribers.clear()
        await self._cache.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None
        self._ingestor = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> WsfConfig:
        return self._config

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def monitor(self) -> CoherencyMonitor:
        return self._monitor

    def _require_ingestor(self) -> Ingestor:
        if self._ingestor is None:
            raise WsfError("Client not initialized. Use 'async with WsfClient(...) as client:'")
        return self._ingestor

    @staticmethod
    def _resolve(endpoint: Endpoint | str) -> Endpoint:
        return endpoint if isinstance(endpoint, Endpoint) else get_endpoint(endpoint)

    # ------------------------------------------------------------------
    # Uncached reads
    # ------------------------------------------------------------------

    async def ingest(self, url: str) -> Any | None:
        """Fetch and normalize an arbitrary upstream URL; ``None`` on failure."""
        return await self._require_ingestor().ingest(url)

    async def fetch_result(self, endpoint: Endpoint | str, params: Mapping[str, Any] | None = None) -> FetchResult:
        ep = self._resolve(endpoint)
        return await self._require_ingestor().fetch_result(ep.url(self._config, params))

    async def fetch(self, endpoint: Endpoint | str, params: Mapping[str, Any] | None = None) -> Any | None:
        """Fetch one endpoint, bypassing the cache."""
        return (await self.fetch_result(endpoint, params)).unwrap_or_none()

    async def get_cache_flush_date(self, domain: DataDomain | str) -> datetime | None:
        marker = await self.fetch(FLUSH_ENDPOINTS[DataDomain(domain)])
        return marker if isinstance(marker, datetime) else None

    # ------------------------------------------------------------------
    # Cached reads
    # ------------------------------------------------------------------

    def _fetcher(self, ep: Endpoint, params: Mapping[str, Any] | None) -> Fetcher:
        url = ep.url(self._config, params)
        ingestor = self._require_ingestor()

        async def _fetch() -> Any:
            result = await ingestor.fetch_result(url)
            if result.error is not None:
                raise result.error
            return result.value

        return _fetch

    def _marker_fetcher(self, domain: DataDomain) -> Fetcher:
        return self._fetcher(FLUSH_ENDPOINTS[domain], None)

    async def query(
        self,
        endpoint: Endpoint | str,
        params: Mapping[str, Any] | None = None,
        *,
        policy: CachePolicy | None = None,
    ) -> Any | None:
        """Read through the cache under the endpoint's cache policy.

        Returns the last good value (or ``None``) when the fetch fails.
        """
        ep = self._resolve(endpoint)
        key = ep.query_key(params)
        fetcher = self._fetcher(ep, params)
        try:
            return await self._cache.fetch(key, fetcher, policy or policy_for(ep.strategy))
        except Exception:  # noqa: BLE001
            _logger.debug("Query %s failed; serving cached data", ep.id, exc_info=True)
            return self._cache.get_data(key)

    def subscribe(
        self,
        endpoint: Endpoint | str,
        params: Mapping[str, Any] | None = None,
        *,
        policy: CachePolicy | None = None,
        listener: DataListener | None = None,
    ) -> Subscription:
        """Keep an endpoint cached and refreshed until the subscription closes."""
        ep = self._resolve(endpoint)
        return self._cache.subscribe(
            ep.query_key(params),
            self._fetcher(ep, params),
            policy or policy_for(ep.strategy),
            listener=listener,
        )

    def set_focused(self, focused: bool) -> None:
        self._cache.set_focused(focused)

    # ------------------------------------------------------------------
    # Coherency
    # ------------------------------------------------------------------

    def _invalidate_domain(self, event: InvalidationEvent) -> None:
        # The marker query is what just reported the change; leave it fresh.
        count = self._cache.invalidate((event.domain,), skip=(flush_key(event.domain),))
        _logger.info("%s data flushed upstream at %s; invalidated %d queries", event.domain, event.current, count)

    def _ensure_monitor_listener(self, domain: DataDomain) -> None:
        if domain not in self._monitor_unsubscribers:
            self._monitor_unsubscribers[domain] = self._monitor.add_listener(domain, self._invalidate_domain)

    def on_domain_flush_observed(self, domain: DataDomain | str, marker: datetime | str | None) -> bool:
        """Feed a flush marker obtained elsewhere; may invalidate the domain."""
        key = DataDomain(domain)
        self._ensure_monitor_listener(key)
        return self._monitor.observe(key, marker)

    def watch_domain(self, domain: DataDomain | str) -> None:
        """Poll *domain*'s flush marker and invalidate its queries on change."""
        self._require_ingestor()
        key = DataDomain(domain)
        self._ensure_monitor_listener(key)
        self._poller.watch(key)

    def unwatch_domain(self, domain: DataDomain | str) -> None:
        self._poller.unwatch(domain)

    def last_flush_date(self, domain: DataDomain | str) -> datetime | None:
        """Most recent marker observed for *domain*, polled or fed in."""
        return self._monitor.last_observed(domain)

    def flush_query_key(self, domain: DataDomain | str) -> tuple[Any, ...]:
        return flush_key(domain)
