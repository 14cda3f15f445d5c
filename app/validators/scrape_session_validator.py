"""
app/validators/scrape_session_validator.py

Validation for scrape session start requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from app.domain.scrape_session import SessionConfig

# field -> (minimum, maximum)
CONFIG_LIMITS: dict[str, tuple[int, int]] = {
    "simultaneous_towns": (1, 5),
    "simultaneous_industries": (1, 10),
    "simultaneous_lookups": (1, 20),
    "retry_attempts": (1, 10),
    "retry_delay_ms": (0, 60000),
    "lookup_batch_size": (1, 50),
}


@dataclass(frozen=True)
class ScrapeRequestErrorDetail:
    """
    Structured start-request error detail.
    """

    code: str
    message: str
    field: str | None = None
    value: Any = None


class ScrapeRequestValidationError(ValueError):
    """
    Raised when a session start request is rejected.
    """

    def __init__(self, *, message: str, errors: Sequence[ScrapeRequestErrorDetail]) -> None:
        super().__init__(message)
        self.message = message
        self.errors = tuple(errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "errors": [
                {
                    "code": error.code,
                    "message": error.message,
                    "field": error.field,
                    "value": error.value,
                }
                for error in self.errors
            ],
        }


@dataclass(frozen=True)
class ValidatedStartRequest:
    towns: tuple[str, ...]
    industries: tuple[str, ...]
    config: SessionConfig


class ScrapeSessionValidator:
    """
    Normalizes and validates towns, industries and session config.
    """

    def __init__(self, *, defaults: SessionConfig | None = None) -> None:
        self._defaults = defaults or SessionConfig()

    def validate(
        self,
        *,
        towns: Sequence[str] | None,
        industries: Sequence[str] | None,
        config: Mapping[str, Any] | None = None,
    ) -> ValidatedStartRequest:
        """
        Return the cleaned request or raise ScrapeRequestValidationError.
        """

        errors: list[ScrapeRequestErrorDetail] = []

        cleaned_towns = tuple(town.strip() for town in towns or () if town and town.strip())
        if not cleaned_towns:
            errors.append(
                ScrapeRequestErrorDetail(
                    code="towns_required",
                    message="At least one non-empty town is required.",
                    field="towns",
                )
            )

        # Industries form a set; first occurrence keeps its position.
        cleaned_industries = tuple(
            dict.fromkeys(industry.strip() for industry in industries or () if industry and industry.strip())
        )
        if not cleaned_industries:
            errors.append(
                ScrapeRequestErrorDetail(
                    code="industries_required",
                    message="At least one non-empty industry is required.",
                    field="industries",
                )
            )

        resolved = self._defaults.to_dict()
        for name, raw_value in (config or {}).items():
            if name not in CONFIG_LIMITS:
                errors.append(
                    ScrapeRequestErrorDetail(
                        code="unknown_config_field",
                        message=f"Unknown config field '{name}'.",
                        field=f"config.{name}",
                        value=raw_value,
                    )
                )
                continue
            if raw_value is None:
                continue
            if isinstance(raw_value, bool) or not isinstance(raw_value, int):
                errors.append(
                    ScrapeRequestErrorDetail(
                        code="config_not_integer",
                        message=f"'{name}' must be an integer.",
                        field=f"config.{name}",
                        value=raw_value,
                    )
                )
                continue
            resolved[name] = raw_value

        for name, (minimum, maximum) in CONFIG_LIMITS.items():
            value = resolved[name]
            if not minimum <= value <= maximum:
                errors.append(
                    ScrapeRequestErrorDetail(
                        code="config_out_of_range",
                        message=f"'{name}' must be between {minimum} and {maximum}.",
                        field=f"config.{name}",
                        value=value,
                    )
                )

        if errors:
            raise ScrapeRequestValidationError(
                message="Scrape session request is invalid.",
                errors=errors,
            )

        return ValidatedStartRequest(
            towns=cleaned_towns,
            industries=cleaned_industries,
            config=SessionConfig.from_dict(resolved),
        )
