"""Presentation helpers for statement results."""

from __future__ import annotations

from typing import Any


def map_column_names_into_data(result: dict[str, Any]) -> dict[str, Any]:
    """
    Key every row of a result by column name.

    The Query Service returns rows as positional lists. Values past the last
    column are dropped; a short row simply lacks the trailing keys. Columns
    and any other keys are passed through. The input is not modified.

    Usage:
        results = client.get_job_results(job_id, statement_id)
        for row in map_column_names_into_data(results)["data"]:
            print(row["id"], row["name"])

    Args:
        result: Mapping with ``columns`` ([{name, type}, ...]) and ``data`` (rows)

    Returns:
        Copy of ``result`` whose ``data`` rows are dicts
    """
    column_names = [column["name"] for column in result.get("columns", [])]

    mapped = dict(result)
    mapped["data"] = [
        dict(zip(column_names, row))
        for row in result.get("data", [])
    ]
    return mapped
