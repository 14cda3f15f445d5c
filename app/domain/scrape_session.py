"""
app/domain/scrape_session.py

Domain models for resumable scrape sessions.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

UNKNOWN_PROVIDER = "Unknown"


class SessionStatus:
    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"

    ALL = frozenset({PENDING, RUNNING, STOPPED, COMPLETED})
    ACTIVE = frozenset({PENDING, RUNNING})
    TERMINAL = frozenset({STOPPED, COMPLETED})


class LogLevel:
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    ALL = frozenset({INFO, SUCCESS, WARNING, ERROR})


_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.RUNNING, SessionStatus.STOPPED}),
    SessionStatus.RUNNING: frozenset({SessionStatus.STOPPED, SessionStatus.COMPLETED}),
    SessionStatus.STOPPED: frozenset(),
    SessionStatus.COMPLETED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """
    Return True when a session may move from `current` to `target`.

    Re-applying the current status counts as allowed and is treated by stores
    as a no-op.
    """

    if current == target:
        return True
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionConfig:
    """
    Per-session concurrency and retry settings.
    """

    simultaneous_towns: int = 1
    simultaneous_industries: int = 2
    simultaneous_lookups: int = 3
    retry_attempts: int = 3
    retry_delay_ms: int = 2000
    lookup_batch_size: int = 5

    def to_dict(self) -> dict[str, int]:
        return {
            "simultaneous_towns": self.simultaneous_towns,
            "simultaneous_industries": self.simultaneous_industries,
            "simultaneous_lookups": self.simultaneous_lookups,
            "retry_attempts": self.retry_attempts,
            "retry_delay_ms": self.retry_delay_ms,
            "lookup_batch_size": self.lookup_batch_size,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> SessionConfig:
        payload = payload or {}
        defaults = cls()
        return cls(
            simultaneous_towns=int(payload.get("simultaneous_towns", defaults.simultaneous_towns)),
            simultaneous_industries=int(
                payload.get("simultaneous_industries", defaults.simultaneous_industries)
            ),
            simultaneous_lookups=int(payload.get("simultaneous_lookups", defaults.simultaneous_lookups)),
            retry_attempts=int(payload.get("retry_attempts", defaults.retry_attempts)),
            retry_delay_ms=int(payload.get("retry_delay_ms", defaults.retry_delay_ms)),
            lookup_batch_size=int(payload.get("lookup_batch_size", defaults.lookup_batch_size)),
        )


@dataclass(frozen=True)
class ProgressDelta:
    """
    Increments applied to session progress after a step.

    When `expected_completed_towns` is set the increments apply only if the
    stored completed_towns still equals it.
    """

    completed_towns: int = 0
    total_businesses: int = 0
    completed_industries: int = 0
    processing_seconds: float = 0.0
    expected_completed_towns: int | None = None


@dataclass(frozen=True)
class SessionProgress:
    """
    Counters tracking how far a session has advanced.
    """

    completed_towns: int = 0
    total_towns: int = 0
    total_businesses: int = 0
    completed_industries: int = 0
    total_industries: int = 0
    processing_seconds: float = 0.0

    @property
    def towns_remaining(self) -> int:
        return max(0, self.total_towns - self.completed_towns)

    @property
    def percentage(self) -> int:
        if self.total_towns <= 0:
            return 0
        return round(self.completed_towns / self.total_towns * 100)

    @property
    def estimated_seconds_remaining(self) -> float | None:
        """
        Average seconds per completed town multiplied by the towns left.
        """

        if self.completed_towns <= 0:
            return None
        average = self.processing_seconds / self.completed_towns
        return round(average * self.towns_remaining, 1)

    def apply(self, delta: ProgressDelta) -> SessionProgress:
        completed_towns = min(self.total_towns, self.completed_towns + max(0, delta.completed_towns))
        return replace(
            self,
            completed_towns=completed_towns,
            total_businesses=self.total_businesses + max(0, delta.total_businesses),
            completed_industries=self.completed_industries + max(0, delta.completed_industries),
            processing_seconds=self.processing_seconds + max(0.0, delta.processing_seconds),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed_towns": self.completed_towns,
            "total_towns": self.total_towns,
            "total_businesses": self.total_businesses,
            "completed_industries": self.completed_industries,
            "total_industries": self.total_industries,
            "percentage": self.percentage,
            "towns_remaining": self.towns_remaining,
            "estimated_seconds_remaining": self.estimated_seconds_remaining,
        }


@dataclass(frozen=True)
class Business:
    """
    One business discovered for a (town, industry) unit.
    """

    name: str
    phone: str
    town: str
    industry: str
    address: str = ""
    map_reference: str = ""
    provider: str = UNKNOWN_PROVIDER

    def with_provider(self, provider: str | None) -> Business:
        return replace(self, provider=provider or UNKNOWN_PROVIDER)

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "phone": self.phone,
            "provider": self.provider,
            "town": self.town,
            "industry": self.industry,
            "address": self.address,
            "map_reference": self.map_reference,
        }


@dataclass(frozen=True)
class LogEntry:
    """
    Audit log line attached to a session.
    """

    timestamp: datetime
    message: str
    level: str = LogLevel.INFO

    @classmethod
    def create(cls, message: str, level: str = LogLevel.INFO) -> LogEntry:
        return cls(timestamp=utc_now(), message=message, level=level)

    def to_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "level": self.level,
        }


@dataclass(frozen=True)
class ScrapeSession:
    """
    Snapshot of a persisted scrape session.
    """

    id: str
    owner_id: str
    towns: tuple[str, ...]
    industries: tuple[str, ...]
    config: SessionConfig
    status: str
    progress: SessionProgress
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    logs: tuple[LogEntry, ...] = field(default_factory=tuple)
    results: tuple[Business, ...] = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.status in SessionStatus.TERMINAL

    @property
    def current_town(self) -> str | None:
        if self.progress.completed_towns >= len(self.towns):
            return None
        return self.towns[self.progress.completed_towns]


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of one orchestrator step.
    """

    status: str
    progress: SessionProgress
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "progress": self.progress.to_dict(),
            "has_more": self.has_more,
        }
