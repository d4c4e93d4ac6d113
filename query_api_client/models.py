"""Typed views of Query Service payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class JobStatus:
    WAITING = "waiting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED})


@dataclass
class Statement:
    """One SQL statement inside a query job."""
    id: str
    query: str
    status: str
    rows_affected: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Statement:
        return cls(
            id=str(data["id"]),
            query=data.get("query", ""),
            status=data.get("status", JobStatus.WAITING),
            rows_affected=data.get("rowsAffected"),
        )


@dataclass
class QueryJob:
    """Snapshot of a query job as returned by ``GET /api/v1/queries/{id}``."""
    query_job_id: str
    status: str
    statements: list[Statement] = field(default_factory=list)
    cancellation_reason: str | None = None
    canceled_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.COMPLETED

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryJob:
        return cls(
            query_job_id=str(data.get("queryJobId", "")),
            status=data.get("status", ""),
            statements=[Statement.from_dict(s) for s in data.get("statements", [])],
            cancellation_reason=data.get("cancellationReason"),
            canceled_at=data.get("canceledAt"),
        )


@dataclass
class Column:
    name: str
    type: str = "text"


@dataclass
class ResultSet:
    """
    Result of one statement.

    Rows are positional; use ``results.map_column_names_into_data`` to key
    them by column name.
    """
    columns: list[Column]
    data: list[list[Any]]
    status: str
    rows_affected: int = 0

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResultSet:
        return cls(
            columns=[Column(name=c["name"], type=c.get("type", "text")) for c in data.get("columns", [])],
            data=data.get("data", []),
            status=data.get("status", ""),
            rows_affected=data.get("rowsAffected", 0),
        )
