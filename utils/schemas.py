"""
Pydantic Schemas - Pipeline Data Models

Defines the value objects passed between pipeline stages:
- Time windows used to bound extraction queries
- Run summaries returned by backup and cleanup jobs

Usage:
    from utils.schemas import TimeWindow

    window = TimeWindow(sequence=1, start=start, end=end)
    query = window.range_query("@timestamp")
"""

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def format_instant(value: datetime) -> str:
    """Format an instant as ISO-8601 UTC with millisecond precision."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class TimeWindow(BaseModel):
    """Closed [start, end] interval of one extraction query."""

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(..., ge=1, description="1-based position within the day")
    start: datetime = Field(..., description="First included instant (UTC)")
    end: datetime = Field(..., description="Last included instant (UTC)")

    @model_validator(mode="after")
    def validate_bounds(self) -> "TimeWindow":
        if self.end < self.start:
            raise ValueError("window end must not precede its start")
        return self

    def range_query(self, field: str) -> dict[str, Any]:
        """Range predicate on the timestamp field, inclusive at both ends."""
        return {
            "range": {
                field: {
                    "gte": format_instant(self.start),
                    "lte": format_instant(self.end),
                }
            }
        }

    def __str__(self) -> str:
        return f"#{self.sequence} {format_instant(self.start)} - {format_instant(self.end)}"


class BackupResult(BaseModel):
    """Summary of a completed backup run."""

    index_name: str
    day: date
    windows_planned: int
    windows_with_data: int
    windows_failed: int
    documents: int = Field(default=0, description="Documents counted by the merger")
    object_key: str | None = Field(default=None, description="None when nothing was uploaded")


class CleanupResult(BaseModel):
    """Summary of a completed cleanup run."""

    index_name: str
    retention_days: int
    deleted: int
