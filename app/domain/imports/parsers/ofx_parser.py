"""OFX (1.x SGML and 2.x XML) statement parsing.

OFX is rigid enough that any structural problem fails the whole file.
"""
from __future__ import annotations

import html
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from app.domain.imports.parsers.base import ParseResult, StatementEntry, StatementFormatError, decode_bytes
from app.domain.transactions.models import TransactionSource

_ROOT_PATTERN = re.compile(r"<OFX>", re.IGNORECASE)
_TRANSACTION_OPEN_PATTERN = re.compile(r"<STMTTRN>", re.IGNORECASE)
_TRANSACTION_PATTERN = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)
_CREDIT_CARD_PATTERN = re.compile(r"<CCSTMTRS>.*?(?:</CCSTMTRS>|$)", re.IGNORECASE | re.DOTALL)
# YYYYMMDD[HHMM[SS]][.XXX][[offset:TZ]]
_DATE_PATTERN = re.compile(
    r"^(\d{4})(\d{2})(\d{2})(?:(\d{2})(\d{2})(\d{2})?)?(?:\.\d+)?(?:\[([+-]?\d+(?:\.\d+)?)?(?::[^\]]*)?\])?$"
)
_XML_ENCODING_PATTERN = re.compile(rb"<\?xml[^>]*encoding=[\"']([A-Za-z0-9._-]+)[\"']", re.IGNORECASE)
_SGML_HEADER_PATTERN = re.compile(rb"^\s*(ENCODING|CHARSET)\s*:\s*(\S+)", re.IGNORECASE | re.MULTILINE)


def _declared_encoding(data: bytes) -> str:
    """Charset named by the XML prolog or the SGML header block."""
    match = _XML_ENCODING_PATTERN.search(data[:1024])
    if match:
        return match.group(1).decode("ascii")

    header = data.split(b"<", 1)[0]
    values = {
        key.decode("ascii").upper(): value.decode("ascii", "replace").upper()
        for key, value in _SGML_HEADER_PATTERN.findall(header)
    }
    if values.get("ENCODING") in ("UTF-8", "UTF8"):
        return "utf-8"
    charset = values.get("CHARSET", "NONE")
    if charset.isdigit():
        return f"cp{charset}"
    if charset != "NONE":
        return charset.lower()
    return "utf-8"


def _extract_tag(block: str, tag: str) -> Optional[str]:
    pattern = re.compile(rf"<{tag}>([^<\r\n]*)", re.IGNORECASE)
    match = pattern.search(block)
    if match:
        value = html.unescape(match.group(1)).strip()
        return value or None
    return None


def _parse_posted(raw: str, ordinal: int, zone: Optional[ZoneInfo]) -> datetime:
    """Read DTPOSTED.

    Without ``zone`` the bank's local wall-clock time is kept and the offset
    suffix is dropped. With it, the instant (GMT when no offset is given) is
    converted to that zone's wall-clock time.
    """
    match = _DATE_PATTERN.match(raw)
    if not match:
        raise StatementFormatError(f"Transaction {ordinal} has an invalid DTPOSTED '{raw}'")
    year, month, day, hour, minute, second, offset = match.groups()
    try:
        posted = datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0), int(second or 0))
        if zone is None:
            return posted
        utc_offset = timezone(timedelta(hours=float(offset or 0)))
    except ValueError as exc:
        raise StatementFormatError(f"Transaction {ordinal} has an invalid DTPOSTED '{raw}'") from exc
    return posted.replace(tzinfo=utc_offset).astimezone(zone).replace(tzinfo=None)


def _parse_trnamt(raw: str, ordinal: int) -> Decimal:
    cleaned = raw.replace(" ", "")
    # Some Brazilian banks write TRNAMT with a comma decimal.
    if "," in cleaned and "." not in cleaned:
        cleaned = cleaned.replace(",", ".")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise StatementFormatError(f"Transaction {ordinal} has an invalid TRNAMT '{raw}'") from None
    if not amount.is_finite():
        raise StatementFormatError(f"Transaction {ordinal} has an invalid TRNAMT '{raw}'")
    return amount


def _source_at(position: int, credit_card_spans: List[Tuple[int, int]]) -> TransactionSource:
    for start, end in credit_card_spans:
        if start <= position < end:
            return TransactionSource.CREDIT_CARD
    return TransactionSource.BANK_TRANSACTION


def parse_ofx(data: bytes, zone: Optional[ZoneInfo] = None) -> ParseResult:
    """Extract every ``STMTTRN`` block, in file order.

    Entries inside a credit-card statement (``CCSTMTRS``) are tagged as
    ``CREDIT_CARD``; everything else is a bank transaction.
    """
    text = decode_bytes(data, _declared_encoding(data))
    root = _ROOT_PATTERN.search(text)
    if not root:
        raise StatementFormatError("Missing <OFX> root element")

    body = text[root.start():]
    blocks = list(_TRANSACTION_PATTERN.finditer(body))
    if len(blocks) != len(_TRANSACTION_OPEN_PATTERN.findall(body)):
        raise StatementFormatError("Unclosed <STMTTRN> block")
    credit_card_spans = [match.span() for match in _CREDIT_CARD_PATTERN.finditer(body)]

    result = ParseResult()
    for ordinal, match in enumerate(blocks, start=1):
        block = match.group(1)
        posted = _extract_tag(block, "DTPOSTED")
        amount = _extract_tag(block, "TRNAMT")
        if not posted or not amount:
            raise StatementFormatError(f"Transaction {ordinal} is missing DTPOSTED or TRNAMT")

        name = _extract_tag(block, "NAME")
        memo = _extract_tag(block, "MEMO")

        result.entries.append(
            StatementEntry(
                line_number=ordinal,
                date=_parse_posted(posted, ordinal, zone),
                description=name or memo or "",
                amount=_parse_trnamt(amount, ordinal),
                external_id=_extract_tag(block, "FITID"),
                source=_source_at(match.start(), credit_card_spans),
            )
        )

    return result


__all__ = ["parse_ofx"]
