"""Fetch-then-normalize facade.

Callers ask for a URL and get back a normalized payload or ``None``.
Transport failures and normalization errors never propagate out of
:meth:`Ingestor.ingest`; callers treat ``None`` as "temporarily
unavailable". Code that needs to tell failure from absence uses
:meth:`Ingestor.fetch_result` instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pywsf._redact import redact_for_log, redact_url
from pywsf._transport import Transport
from pywsf.ingestion.normalize import normalize_payload

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of one ingestion: a value on success, the error otherwise."""

    value: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> FetchResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> FetchResult:
        return cls(error=error)

    def unwrap_or_none(self) -> Any:
        return self.value if self.error is None else None


class Ingestor:
    """Drive a transport and normalize what it returns."""

    def __init__(
        self,
        transport: Transport,
        *,
        empty_as_none: bool = True,
        trace: bool = False,
    ) -> None:
        self._transport = transport
        self._empty_as_none = empty_as_none
        self._failure_level = logging.WARNING if trace else logging.DEBUG

    async def fetch_result(self, url: str) -> FetchResult:
        """Fetch and normalize *url*, capturing any failure in the result."""
        try:
            raw = await self._transport.get_json(url)
            value = normalize_payload(raw, empty_as_none=self._empty_as_none)
        except Exception as exc:  # noqa: BLE001
            _logger.log(
                self._failure_level,
                "Ingestion of %s failed: %s",
                redact_url(url),
                exc,
                exc_info=self._failure_level == logging.DEBUG,
            )
            return FetchResult.failure(exc)

        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Ingested %s: %s", redact_url(url), redact_for_log(value, max_string=120))
        return FetchResult.success(value)

    async def ingest(self, url: str) -> Any | None:
        """Return the normalized payload at *url*, or ``None`` on any failure."""
        result = await self.fetch_result(url)
        return result.unwrap_or_none()


async def ingest(url: str, transport: Transport, *, empty_as_none: bool = True) -> Any | None:
    """One-shot convenience wrapper around :meth:`Ingestor.ingest`."""
    return await Ingestor(transport, empty_as_none=empty_as_none).ingest(url)
