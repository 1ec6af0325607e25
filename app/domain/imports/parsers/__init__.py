"""Statement parsers and format detection."""
from __future__ import annotations

import re
from typing import Optional
from zoneinfo import ZoneInfo

from app.domain.imports.parsers.base import ParseResult, StatementEntry, StatementFormatError, decode_bytes
from app.domain.imports.parsers.csv_parser import parse_csv
from app.domain.imports.parsers.ofx_parser import parse_ofx
from app.domain.imports.schemas import CsvConfiguration, StatementFormat

EXTENSION_FORMATS = {
    ".csv": StatementFormat.CSV,
    ".ofx": StatementFormat.OFX,
    ".qfx": StatementFormat.OFX,
}

_OFX_SIGNATURE = re.compile(rb"OFXHEADER|<OFX>", re.IGNORECASE)


def resolve_format(
    filename: Optional[str],
    content_type: Optional[str],
    requested: StatementFormat = StatementFormat.AUTO,
    sample: bytes = b"",
) -> StatementFormat:
    """Pick the parser for an upload: explicit choice, extension, content type, then content."""
    if requested != StatementFormat.AUTO:
        return requested

    match = re.search(r"(\.[^.]+)$", filename or "")
    extension = match.group(1).lower() if match else ""
    if extension in EXTENSION_FORMATS:
        return EXTENSION_FORMATS[extension]

    media_type = (content_type or "").lower()
    if "ofx" in media_type:
        return StatementFormat.OFX
    if "csv" in media_type:
        return StatementFormat.CSV

    if _OFX_SIGNATURE.search(sample[:4096]):
        return StatementFormat.OFX
    if media_type.startswith("text/plain"):
        return StatementFormat.CSV

    raise StatementFormatError("Unable to detect file format from filename or content type")


def parse_statement(
    data: bytes,
    statement_format: StatementFormat,
    csv_config: Optional[CsvConfiguration],
    zone: Optional[ZoneInfo] = None,
) -> ParseResult:
    if statement_format == StatementFormat.OFX:
        return parse_ofx(data, zone)
    if statement_format == StatementFormat.CSV:
        if csv_config is None:
            raise StatementFormatError("CSV configuration is required to import CSV statements")
        return parse_csv(data, csv_config)
    raise StatementFormatError(f"Unsupported import format: {statement_format.value}")


__all__ = [
    "ParseResult",
    "StatementEntry",
    "StatementFormatError",
    "decode_bytes",
    "parse_csv",
    "parse_ofx",
    "parse_statement",
    "resolve_format",
]
