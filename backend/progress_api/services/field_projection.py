"""Output row assembly for the course-progress API.

``REPORT_FIELDS`` is the one place that fixes which fields exist and in
which order they appear in a response row. A company setting
``field_<name> = 0`` removes the key from every row; disabled fields are
absent, never null.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

DATETIME_FORMAT = '%Y-%m-%d %H:%M:%S'

Extractor = Callable[[Mapping[str, Any]], Any]


def format_timestamp(value: Any) -> str:
    """Server local time; empty string for 0/None."""
    ts = int(value or 0)
    if ts <= 0:
        return ''
    return datetime.fromtimestamp(ts).strftime(DATETIME_FORMAT)


def _int(name: str) -> Extractor:
    return lambda row: int(row.get(name) or 0)


def _str(name: str) -> Extractor:
    return lambda row: str(row.get(name) or '')


REPORT_FIELDS: tuple[tuple[str, Extractor], ...] = (
    ('userid', _int('userid')),
    ('firstname', _str('firstname')),
    ('lastname', _str('lastname')),
    ('email', _str('email')),
    ('courseid', _int('courseid')),
    ('coursename', _str('coursename')),
    ('timecompleted', lambda row: format_timestamp(row.get('timecompleted'))),
    ('timecompleted_unix', _int('timecompleted')),
    ('timestarted', lambda row: format_timestamp(row.get('timestarted'))),
    ('timestarted_unix', _int('timestarted')),
    ('percentage', lambda row: round(float(row.get('percentage') or 0.0), 2)),
    ('status', _str('status')),
)

FIELD_NAMES: tuple[str, ...] = tuple(name for name, _ in REPORT_FIELDS)


def project_row(row: Mapping[str, Any], enabled_fields: Iterable[str]) -> dict[str, Any]:
    enabled = set(enabled_fields)
    return {name: extract(row) for name, extract in REPORT_FIELDS if name in enabled}


def project_rows(rows: Iterable[Mapping[str, Any]], enabled_fields: Iterable[str]) -> list[dict[str, Any]]:
    enabled = frozenset(enabled_fields)
    return [project_row(row, enabled) for row in rows]
