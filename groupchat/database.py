"""Access to the chat keyspace through a Cassandra-style session."""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Protocol, Sequence


class _Session(Protocol):
    def execute(self, query: str, parameters: Sequence[Any]) -> Iterable[Sequence[Any]]:
        ...


class Database:
    """Runs CQL statements through a session exposing ``execute(query, parameters)``."""

    def __init__(self, session: _Session) -> None:
        self._session = session

    def execute(self, query: str, *args: Any) -> None:
        """Run a statement whose result is not needed."""
        self._session.execute(query, args)

    def select(self, query: str, *args: Any) -> list[Sequence[Any]]:
        """Run a query and return all of its rows."""
        return list(self._session.execute(query, args))

    def iterate(self, query: str, *args: Any) -> list[Any]:
        """Run a single-column query and return the value of each row."""
        return [row[0] for row in self._session.execute(query, args)]


def bucket_for_time(t: date) -> str:
    """Return the ISO-week bucket (``YYYY-Www``) a moment belongs to."""
    year, week, _ = t.isocalendar()
    return f"{year}-W{week:02d}"