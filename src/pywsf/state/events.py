"""Data domains and coherency events."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class DataDomain(StrEnum):
    """Upstream data category with its own flush marker and base path."""

    VESSELS = "vessels"
    TERMINALS = "terminals"
    SCHEDULE = "schedule"
    FARES = "fares"


class InvalidationEvent(BaseModel):
    """Emitted when a domain's flush marker moved."""

    model_config = ConfigDict(frozen=True)

    domain: DataDomain
    previous: datetime
    current: datetime
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
