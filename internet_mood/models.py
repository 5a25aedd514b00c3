"""
Shared data models for the Internet Mood service.

This module defines the core domain models used across multiple layers
of the application (normalization, aggregation, storage, CLI, API).
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

StoreSource = Literal["primary-store", "fallback-file"]


class MoodSubmission(BaseModel):
    """Raw mood payload as sent by a client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    emoji: str = Field(..., description="The selected mood emoji")
    label: str | None = Field(None, description="Human readable mood label")
    timestamp: str | None = Field(None, description="ISO-8601 submission time")
    country: str | None = Field(None, description="ISO-3166 alpha-2 country code")
    region: str | None = Field(None, description="Region or city name")
    latitude: float | None = Field(None, description="Approximate latitude")
    longitude: float | None = Field(None, description="Approximate longitude")
    reason: str | None = Field(None, description="Free-text reason, max 30 chars")
    device_id: str = Field(
        "unknown", alias="deviceId", description="Client device identifier"
    )


class MoodRecord(BaseModel):
    """A normalized, stored mood submission."""

    model_config = ConfigDict(frozen=True)

    emoji: str = Field(..., description="The selected mood emoji")
    label: str | None = Field(None, description="Human readable mood label")
    timestamp: str = Field(..., description="ISO-8601 submission time")
    country: str | None = Field(None, description="Upper-case alpha-2 code")
    region: str | None = Field(None, description="Region or city name")
    latitude: float | None = Field(None, description="Approximate latitude")
    longitude: float | None = Field(None, description="Approximate longitude")
    reason: str | None = Field(None, description="Sanitized reason")


class PhraseCount(BaseModel):
    """A phrase extracted from reasons and how often it occurred."""

    phrase: str
    count: int = Field(..., ge=1)


class RateLimitEntry(BaseModel):
    """Daily submission counter for one client."""

    key: str = Field(..., description="Client address and device identifier")
    date: str = Field(..., description="UTC calendar day, YYYY-MM-DD")
    count: int = Field(0, ge=0)


class WriteResult(BaseModel):
    """Outcome of a single persistence attempt."""

    ok: bool
    source: StoreSource | None = None
    error: str | None = None
    record: MoodRecord | None = None


class TrendingMood(BaseModel):
    """24 hour movement of a single mood."""

    mood: str
    current: int
    previous: int
    delta: int
    pct: float | None = Field(
        None, description="Percent change, null when there is no previous count"
    )
