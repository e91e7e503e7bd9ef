"""Observation record model.

Every loader (native JSON dumps, HAR archives) converts its input into
these records for the analyzer and synthesizer.
"""

from collections.abc import Mapping
from datetime import datetime
from urllib.parse import SplitResult, parse_qsl, urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


class ObservationLoadError(ValueError):
    """Raised when an observation file cannot be read or decoded."""


def split_url(url: str) -> SplitResult | None:
    """Split an absolute URL, returning None when it is malformed."""
    try:
        parts = urlsplit(url)
        # Accessing .port validates the netloc.
        parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    return parts


class Observation(BaseModel):
    """One captured request/response summary."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    method: str = "GET"
    status: int | None = None
    content_type: str = Field(
        default="unknown",
        validation_alias=AliasChoices("content_type", "contentType"),
    )
    timestamp: datetime | None = None
    response_size: int = Field(
        default=0,
        validation_alias=AliasChoices("response_size", "responseSize"),
    )
    headers: dict[str, str] = {}
    query_params: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("query_params", "queryParams", "searchParams"),
    )

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value):
        if not value:
            return "GET"
        return str(value).strip().upper()

    @field_validator("status", mode="before")
    @classmethod
    def _status_or_none(cls, value):
        # Chrome reports 0 for requests that never completed.
        if value in (None, "", 0, "0"):
            return None
        return value

    @field_validator("status")
    @classmethod
    def _status_in_range(cls, value):
        if value is not None and not 100 <= value <= 599:
            return None
        return value

    @field_validator("content_type", mode="before")
    @classmethod
    def _strip_charset(cls, value):
        if not value:
            return "unknown"
        return str(value).split(";")[0].strip().lower() or "unknown"

    @field_validator("timestamp", mode="wrap")
    @classmethod
    def _lenient_timestamp(cls, value, handler):
        try:
            return handler(value)
        except ValidationError:
            return None

    @field_validator("response_size", mode="before")
    @classmethod
    def _size_or_zero(cls, value):
        if value is None or (isinstance(value, (int, float)) and value < 0):
            return 0
        return value

    @field_validator("headers", "query_params", mode="before")
    @classmethod
    def _stringify_values(cls, value):
        if not value:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError("expected a mapping of names to values")
        return {str(k): "" if v is None else str(v) for k, v in value.items()}

    @model_validator(mode="before")
    @classmethod
    def _query_from_url(cls, data):
        if not isinstance(data, dict):
            return data
        if any(data.get(key) for key in ("query_params", "queryParams", "searchParams")):
            return data
        parts = split_url(str(data.get("url", "")))
        if parts is None or not parts.query:
            return data
        # Later duplicates win, like URLSearchParams copied into an object.
        return {**data, "query_params": dict(parse_qsl(parts.query, keep_blank_values=True))}

    @property
    def parsed_url(self) -> SplitResult | None:
        return split_url(self.url)

    @property
    def path(self) -> str | None:
        parts = self.parsed_url
        if parts is None:
            return None
        return parts.path or "/"

    @property
    def hostname(self) -> str | None:
        parts = self.parsed_url
        return parts.hostname if parts is not None else None

    @property
    def origin(self) -> str | None:
        parts = self.parsed_url
        if parts is None:
            return None
        return f"{parts.scheme}://{parts.netloc.rsplit('@', 1)[-1]}"
