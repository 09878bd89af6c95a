from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import pytest

from pywsf.exceptions import WsfHttpError
from pywsf.ingestion import FetchResult, Ingestor, ingest


class _FakeTransport:
    def __init__(self, payload: Any = None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.urls: list[str] = []

    async def get_json(self, url: str) -> Any:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.mark.asyncio
async def test_ingest_normalizes_payload() -> None:
    transport = _FakeTransport({"TerminalName": "Anacortes", "Updated": "2024-05-01", "Note": ""})

    result = await ingest("https://example.test/terminals", transport)

    assert result == {"terminalName": "Anacortes", "updated": datetime(2024, 5, 1), "note": None}
    assert transport.urls == ["https://example.test/terminals"]


@pytest.mark.asyncio
async def test_ingest_respects_empty_string_setting() -> None:
    result = await ingest("https://example.test/x", _FakeTransport({"Note": ""}), empty_as_none=False)
    assert result == {"note": ""}


@pytest.mark.asyncio
async def test_ingest_returns_none_on_failure(caplog: pytest.LogCaptureFixture) -> None:
    transport = _FakeTransport(error=WsfHttpError("HTTP 500", status_code=500))

    with caplog.at_level(logging.DEBUG, logger="pywsf.ingestion.ingest"):
        result = await ingest("https://example.test/x?apiaccesscode=secret", transport)

    assert result is None
    assert "secret" not in caplog.text


@pytest.mark.asyncio
async def test_fetch_result_keeps_error() -> None:
    error = RuntimeError("boom")
    ingestor = Ingestor(_FakeTransport(error=error))

    result = await ingestor.fetch_result("https://example.test/x")

    assert not result.ok
    assert result.error is error
    assert result.unwrap_or_none() is None


@pytest.mark.asyncio
async def test_fetch_result_distinguishes_null_payload_from_failure() -> None:
    result = await Ingestor(_FakeTransport(None)).fetch_result("https://example.test/x")
    assert result.ok
    assert result.value is None


@pytest.mark.asyncio
async def test_trace_mode_logs_failures_at_warning(caplog: pytest.LogCaptureFixture) -> None:
    ingestor = Ingestor(_FakeTransport(error=RuntimeError("boom")), trace=True)

    with caplog.at_level(logging.WARNING, logger="pywsf.ingestion.ingest"):
        await ingestor.ingest("https://example.test/x")

    assert any(record.levelno == logging.WARNING for record in caplog.records)


def test_fetch_result_constructors() -> None:
    assert FetchResult.success([1]).unwrap_or_none() == [1]
    failed = FetchResult.failure(ValueError("x"))
    assert not failed.ok
