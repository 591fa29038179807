"""Data models for reading-session telemetry."""

from pydantic import BaseModel, ConfigDict, Field


class ReadingSession(BaseModel):
    """One reading interval. Timestamps are epoch milliseconds."""

    model_config = ConfigDict(frozen=True)

    book_id: int
    start: int
    end: int
    pages: int | None = Field(default=None, ge=0)

    @property
    def duration(self) -> int:
        return max(0, self.end - self.start)


class SessionFilter(BaseModel):
    """Optional bounds for session queries."""

    book_id: int | None = None
    since: int | None = None
    until: int | None = None


class ReadingSummary(BaseModel):
    """Aggregated sessions for a single book."""

    book_id: int
    session_count: int = 0
    total_duration: int = 0  # milliseconds
    total_pages: int = 0
    first_start: int | None = None
    last_end: int | None = None


class DayStats(BaseModel):
    """Reading totals for one UTC day."""

    date: str  # YYYY-MM-DD
    minutes: int = 0
    pages: int = 0


class ReadingStats(BaseModel):
    """Overall reading statistics over a filtered set of sessions."""

    session_count: int = 0
    total_minutes: int = 0
    total_pages: int = 0
    days: list[DayStats] = Field(default_factory=list)
    best_day: DayStats | None = None
    average_minutes_per_day: int = 0
