"""
Schemas for scrape session endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class StartScrapeRequest(BaseModel):
    towns: list[str] = Field(default_factory=list)
    industries: list[str] = Field(default_factory=list)
    config: dict[str, Any] | None = Field(
        default=None,
        description="Optional concurrency and retry overrides",
    )


class StartScrapeResponse(BaseModel):
    session_id: str
    status: str = "started"


class ProcessScrapeRequest(BaseModel):
    session_id: str


class SessionProgressResponse(BaseModel):
    completed_towns: int
    total_towns: int
    total_businesses: int
    completed_industries: int
    total_industries: int
    percentage: int
    towns_remaining: int
    estimated_seconds_remaining: float | None = None


class ProcessScrapeResponse(BaseModel):
    status: str
    progress: SessionProgressResponse
    has_more: bool


class StopScrapeResponse(BaseModel):
    status: str
    businesses_collected: int


class BusinessResponse(BaseModel):
    name: str
    phone: str
    provider: str
    town: str
    industry: str
    address: str = ""
    map_reference: str = ""


class LogEntryResponse(BaseModel):
    timestamp: datetime
    message: str
    level: str


class SessionSnapshotResponse(BaseModel):
    session_id: str
    status: str
    towns: list[str]
    industries: list[str]
    progress: SessionProgressResponse
    businesses: list[BusinessResponse] = Field(default_factory=list)
    logs: list[LogEntryResponse] = Field(default_factory=list)
    created_at: datetime
    completed_at: datetime | None = None


class SessionSummaryResponse(BaseModel):
    session_id: str
    status: str
    progress: SessionProgressResponse
    created_at: datetime
    completed_at: datetime | None = None


class SessionListResponse(BaseModel):
    sessions: list[SessionSummaryResponse] = Field(default_factory=list)


class ProviderLookupRequest(BaseModel):
    phone_number: str = Field(min_length=1)


class ProviderLookupResponse(BaseModel):
    phone_number: str
    provider: str
