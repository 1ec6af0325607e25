"""CSV statement parsing with per-row error tolerance."""
from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from app.core.config import settings
from app.domain.imports.amounts import normalize_amount
from app.domain.imports.parsers.base import ParseResult, StatementEntry, StatementFormatError, decode_bytes
from app.domain.imports.schemas import CsvConfiguration


def _normalize_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _non_empty_rows(reader: Iterable[List[str]]) -> Iterator[List[str]]:
    try:
        for row in reader:
            if any(cell.strip() for cell in row):
                yield row
    except csv.Error as exc:
        raise StatementFormatError(f"Unable to read CSV file: {exc}") from exc


def _resolve_column(desired: str, lookup: Dict[str, int], label: str) -> int:
    position = lookup.get(_normalize_key(desired))
    if position is None:
        raise StatementFormatError(f'Required {label} "{desired}" not found in CSV header')
    return position


def _resolve_optional_column(desired: Optional[str], lookup: Dict[str, int]) -> Optional[int]:
    if not desired or not desired.strip():
        return None
    return lookup.get(_normalize_key(desired))


def _parse_date(raw: str, formats: Sequence[str]) -> datetime:
    if not raw:
        raise ValueError("Date value is missing")
    for pattern in formats:
        try:
            return datetime.strptime(raw, pattern)
        except ValueError:
            continue
    raise ValueError(f'Unable to parse date "{raw}" using configured patterns')


def _cell(row: Sequence[str], position: Optional[int]) -> Optional[str]:
    if position is None or position >= len(row):
        return None
    value = row[position].strip()
    return value or None


# StatementEntry attribute -> CsvConfiguration option naming its header.
LABEL_COLUMNS = {
    "external_id": "external_id_column",
    "category_label": "category_column",
    "type_label": "type_column",
    "subtype_label": "subtype_column",
    "source_label": "source_column",
    "source_entity_label": "source_entity_column",
}


class _Layout(NamedTuple):
    required: Tuple[int, int, int]
    labels: Dict[str, Optional[int]]
    width: Optional[int]


def _layout(rows: Iterator[List[str]], config: CsvConfiguration) -> Optional[_Layout]:
    """Work out column positions, consuming the header row when there is one.

    Returns ``None`` for a file without any rows. Label columns are only
    available by header name.
    """
    if not config.contains_header:
        required = (config.date_index, config.description_index, config.amount_index)
        return _Layout(required, {}, None)

    header = next(rows, None)
    if header is None:
        return None

    lookup: Dict[str, int] = {}
    for position, name in enumerate(header):
        lookup.setdefault(_normalize_key(name), position)

    required = (
        _resolve_column(config.date_column, lookup, "date column"),
        _resolve_column(config.description_column, lookup, "description column"),
        _resolve_column(config.amount_column, lookup, "amount column"),
    )
    labels = {
        attribute: _resolve_optional_column(getattr(config, option), lookup)
        for attribute, option in LABEL_COLUMNS.items()
    }
    return _Layout(required, labels, len(header))


def parse_csv(data: bytes, config: CsvConfiguration) -> ParseResult:
    """Parse a CSV statement.

    A missing required header column fails the whole file with
    ``StatementFormatError``; every other problem rejects only its row.
    """
    # A single cell may legitimately be as large as the whole upload.
    if csv.field_size_limit() < settings.import_max_file_bytes:
        csv.field_size_limit(settings.import_max_file_bytes)
    text = decode_bytes(data, config.encoding)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=config.delimiter)
    rows = _non_empty_rows(reader)

    result = ParseResult()
    layout = _layout(rows, config)
    if layout is None:
        return result

    date_pos, description_pos, amount_pos = layout.required
    width = layout.width
    min_width = max(layout.required) + 1

    for line_number, row in enumerate(rows, start=1):
        external_id = _cell(row, layout.labels.get("external_id"))
        try:
            if width is not None and len(row) != width:
                raise ValueError(f"Expected {width} columns but found {len(row)}")
            if len(row) < min_width:
                raise ValueError(f"Expected at least {min_width} columns but found {len(row)}")

            date = _parse_date(_cell(row, date_pos) or "", config.date_formats)
            amount = normalize_amount(
                _cell(row, amount_pos),
                config.locale,
                decimal_separator=config.decimal_separator,
                grouping_separator=config.grouping_separator,
            )
        except ValueError as exc:
            result.reject(line_number, str(exc), external_id)
            continue

        result.entries.append(
            StatementEntry(
                line_number=line_number,
                date=date,
                description=_cell(row, description_pos) or "",
                amount=amount,
                **{attribute: _cell(row, position) for attribute, position in layout.labels.items()},
            )
        )

    return result


__all__ = ["parse_csv"]
