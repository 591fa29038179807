"""Record reading sessions and fold them into summaries."""

from collections import defaultdict
from datetime import datetime, timezone

from bookshelf.errors import InvalidInterval
from bookshelf.models.session import (
    DayStats,
    ReadingSession,
    ReadingStats,
    ReadingSummary,
    SessionFilter,
)
from bookshelf.storage.store import LibraryStore

MS_PER_MINUTE = 60_000


def utc_day(timestamp_ms: int) -> str:
    """UTC calendar date of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def filter_sessions(sessions: list[ReadingSession], session_filter: SessionFilter) -> list[ReadingSession]:
    """Sessions overlapping the filter bounds, ordered by start.

    Sorting is stable, so sessions with the same start keep their input order.
    """
    selected = [
        s
        for s in sessions
        if (session_filter.book_id is None or s.book_id == session_filter.book_id)
        and (session_filter.since is None or s.end >= session_filter.since)
        and (session_filter.until is None or s.start <= session_filter.until)
    ]
    return sorted(selected, key=lambda s: s.start)


def summarize_by_book(sessions: list[ReadingSession]) -> list[ReadingSummary]:
    summaries: dict[int, ReadingSummary] = {}
    for session in sessions:
        summary = summaries.setdefault(session.book_id, ReadingSummary(book_id=session.book_id))
        summary.session_count += 1
        summary.total_duration += session.duration
        summary.total_pages += session.pages or 0
        if summary.first_start is None or session.start < summary.first_start:
            summary.first_start = session.start
        if summary.last_end is None or session.end > summary.last_end:
            summary.last_end = session.end
    return [summaries[book_id] for book_id in sorted(summaries)]


def daily(sessions: list[ReadingSession]) -> list[DayStats]:
    """Per-day totals keyed by the UTC day each session starts on."""
    durations: dict[str, int] = defaultdict(int)
    pages: dict[str, int] = defaultdict(int)
    for session in sessions:
        day = utc_day(session.start)
        durations[day] += session.duration
        pages[day] += session.pages or 0
    return [
        DayStats(date=day, minutes=round(durations[day] / MS_PER_MINUTE), pages=pages[day])
        for day in sorted(durations)
    ]


def stats(sessions: list[ReadingSession]) -> ReadingStats:
    days = daily(sessions)
    total_minutes = round(sum(s.duration for s in sessions) / MS_PER_MINUTE)
    best_day = max(days, key=lambda d: d.minutes) if days else None
    return ReadingStats(
        session_count=len(sessions),
        total_minutes=total_minutes,
        total_pages=sum(s.pages or 0 for s in sessions),
        days=days,
        best_day=best_day,
        average_minutes_per_day=round(total_minutes / len(days)) if days else 0,
    )


class ReadingSessionAggregator:
    """Append-only reading telemetry backed by the library store."""

    def __init__(self, store: LibraryStore):
        self.store = store

    def record(self, session: ReadingSession) -> None:
        if session.end < session.start:
            raise InvalidInterval(
                f"session ends at {session.end} before it starts at {session.start}"
            )
        self.store.append_session(session)

    def query(self, session_filter: SessionFilter | None = None) -> list[ReadingSession]:
        session_filter = session_filter or SessionFilter()
        return filter_sessions(self.store.list_sessions(session_filter.book_id), session_filter)

    def summarize_by_book(self, session_filter: SessionFilter | None = None) -> list[ReadingSummary]:
        return summarize_by_book(self.query(session_filter))

    def daily(self, session_filter: SessionFilter | None = None) -> list[DayStats]:
        return daily(self.query(session_filter))

    def stats(self, session_filter: SessionFilter | None = None) -> ReadingStats:
        return stats(self.query(session_filter))
