"""Capital history domain service."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from exledger.database.base import Database
from exledger.domain.entities import CapitalEvolution, CapitalHistoryEntry, DateWindow

When = Union[date, datetime]


def _start_of(value: When) -> datetime:
    if isinstance(value, datetime):
        return value
    return DateWindow.from_dates(value, value).start


def _end_of(value: When) -> datetime:
    if isinstance(value, datetime):
        return value
    return DateWindow.from_dates(value, value).end


class CapitalHistoryService:
    """Append-only store of capital closings.

    Entries are never edited; each closing adds one. Date arguments cover
    whole days, so ``end=date(2024, 1, 31)`` includes closings made on
    January 31st.
    """

    def __init__(self, db: Database):
        """Initialize capital history service.

        Args:
            db: Database instance
        """
        self.db = db

    def append(self, entry: CapitalHistoryEntry) -> CapitalHistoryEntry:
        """Store an entry and return it with its assigned id."""
        entry_id = self.db.add_capital_history_entry(entry)
        return CapitalHistoryEntry(
            id=entry_id,
            timestamp=entry.timestamp,
            total=entry.total,
            capital_breakdown=entry.capital_breakdown,
            rates=entry.rates,
            detailed_breakdown=entry.detailed_breakdown,
        )

    def query(
        self, start: Optional[When] = None, end: Optional[When] = None
    ) -> list[CapitalHistoryEntry]:
        """List entries in the inclusive range, oldest first."""
        return self.db.list_capital_history(
            start=_start_of(start) if start is not None else None,
            end=_end_of(end) if end is not None else None,
        )

    def latest(self) -> Optional[CapitalHistoryEntry]:
        """Get the most recent entry."""
        return self.db.latest_capital_history()

    def latest_before_or_at(self, timestamp: When) -> Optional[CapitalHistoryEntry]:
        """Get the newest entry at or before the timestamp (end of day for dates)."""
        return self.db.latest_capital_history(at=_end_of(timestamp), inclusive=True)

    def latest_before(self, timestamp: When) -> Optional[CapitalHistoryEntry]:
        """Get the newest entry strictly before the timestamp (start of day for dates)."""
        return self.db.latest_capital_history(at=_start_of(timestamp), inclusive=False)

    def evolution(self, start: When, end: When) -> Optional[CapitalEvolution]:
        """Compare the capital closed before a period with the capital closed by its end.

        The percentage is a ratio (0.25 for a 25% increase) and is 0 when the
        starting total is exactly zero.

        Returns:
            CapitalEvolution, or None when either side has no closing
        """
        start_entry = self.latest_before(start)
        end_entry = self.latest_before_or_at(end)
        if start_entry is None or end_entry is None:
            return None

        change = end_entry.total - start_entry.total
        if start_entry.total == 0:
            percentage = Decimal("0")
        else:
            percentage = change / abs(start_entry.total)

        return CapitalEvolution(
            start_total=start_entry.total,
            end_total=end_entry.total,
            change=change,
            percentage=percentage,
            start_at=start_entry.timestamp,
            end_at=end_entry.timestamp,
        )
