"""Endpoint catalogue.

Only a representative slice of the ferries API is declared here: enough
to exercise each domain and each cache strategy. Every endpoint is a path
template under its domain's REST root plus the cache strategy its data
volatility calls for.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pywsf._api._common import build_url, interpolate_path
from pywsf.config import WsfConfig
from pywsf.state.coherency import FLUSH_OPERATION
from pywsf.state.events import DataDomain
from pywsf.state.policy import CacheStrategy
from pywsf.state.store import QueryKey


@dataclass(frozen=True, slots=True)
class Endpoint:
    """One upstream operation."""

    domain: DataDomain
    name: str
    template: str
    strategy: CacheStrategy = CacheStrategy.INFREQUENT

    @property
    def id(self) -> str:
        return f"{self.domain}:{self.name}"

    def url(self, config: WsfConfig, params: Mapping[str, Any] | None = None) -> str:
        return build_url(config, self.domain, self.template, params)

    def query_key(self, params: Mapping[str, Any] | None = None) -> QueryKey:
        """Canonical request identity: domain, operation, then the resolved path."""
        return (self.domain, self.name, interpolate_path(self.template, params))


def _ep(domain: DataDomain, name: str, template: str, strategy: CacheStrategy = CacheStrategy.INFREQUENT) -> Endpoint:
    return Endpoint(domain=domain, name=name, template=template, strategy=strategy)


_V, _T, _S, _F = DataDomain.VESSELS, DataDomain.TERMINALS, DataDomain.SCHEDULE, DataDomain.FARES
_FREQ = CacheStrategy.FREQUENT

ENDPOINTS: tuple[Endpoint, ...] = (
    # vessels
    _ep(_V, "vesselLocations", "/vessellocations", _FREQ),
    _ep(_V, "vesselLocationsById", "/vessellocations/{vesselId}", _FREQ),
    _ep(_V, "vesselBasics", "/vesselbasics"),
    _ep(_V, "vesselBasicsById", "/vesselbasics/{vesselId}"),
    _ep(_V, "vesselVerbose", "/vesselverbose"),
    _ep(_V, "vesselVerboseById", "/vesselverbose/{vesselId}"),
    # terminals
    _ep(_T, "terminalSailingSpace", "/terminalsailingspace", _FREQ),
    _ep(_T, "terminalSailingSpaceById", "/terminalsailingspace/{terminalId}", _FREQ),
    _ep(_T, "terminalBasics", "/terminalbasics"),
    _ep(_T, "terminalVerbose", "/terminalverbose"),
    _ep(_T, "terminalVerboseById", "/terminalverbose/{terminalId}"),
    # schedule
    _ep(_S, "validDateRange", "/validdaterange"),
    _ep(_S, "activeSeasons", "/activeseasons"),
    _ep(_S, "routes", "/routes/{tripDate}"),
    _ep(_S, "routeDetails", "/routedetails/{tripDate}"),
    _ep(_S, "scheduleByRoute", "/schedule/{tripDate}/{routeId}"),
    _ep(_S, "scheduleTodayByRoute", "/scheduletoday/{routeId}/{onlyRemainingTimes}"),
    _ep(_S, "alerts", "/alerts", _FREQ),
    # fares
    _ep(_F, "faresValidDateRange", "/validdaterange"),
    _ep(_F, "faresTerminals", "/terminals/{tripDate}"),
    _ep(_F, "fareLineItemsBasic", "/farelineitemsbasic/{tripDate}/{departingTerminalId}/{arrivingTerminalId}/{roundTrip}"),
)

#: ``cacheflushdate`` endpoint per domain.
FLUSH_ENDPOINTS: dict[DataDomain, Endpoint] = {
    domain: Endpoint(
        domain=domain,
        name=FLUSH_OPERATION,
        template="/cacheflushdate",
        strategy=CacheStrategy.COHERENCY_CHECK,
    )
    for domain in DataDomain
}

_BY_ID: dict[str, Endpoint] = {ep.id: ep for ep in (*ENDPOINTS, *FLUSH_ENDPOINTS.values())}


def get_endpoint(endpoint_id: str) -> Endpoint:
    """Look up an endpoint by ``"<domain>:<name>"``."""
    try:
        return _BY_ID[endpoint_id]
    except KeyError:
        raise KeyError(f"unknown endpoint {endpoint_id!r}") from None


def endpoints_for(domain: DataDomain | str) -> list[Endpoint]:
    key = DataDomain(domain)
    return [ep for ep in ENDPOINTS if ep.domain == key]
