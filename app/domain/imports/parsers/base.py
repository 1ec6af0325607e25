"""Shared types for statement parsers."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from app.domain.imports.schemas import ImportIssue, ImportIssueType
from app.domain.transactions.models import TransactionSource


class StatementFormatError(ValueError):
    """The file as a whole cannot be read in the expected format."""


@dataclass
class StatementEntry:
    """One normalized statement line, before it becomes a transaction."""

    line_number: int
    date: datetime
    description: str
    amount: Decimal
    external_id: Optional[str] = None
    # Raw labels read from optional CSV columns.
    category_label: Optional[str] = None
    type_label: Optional[str] = None
    subtype_label: Optional[str] = None
    source_label: Optional[str] = None
    source_entity_label: Optional[str] = None
    # Set by parsers that know the source from the file itself.
    source: Optional[TransactionSource] = None


@dataclass
class ParseResult:
    entries: List[StatementEntry] = field(default_factory=list)
    issues: List[ImportIssue] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        """Entries seen in the file, including rows rejected while parsing."""
        return len(self.entries) + len(self.issues)

    def reject(self, line_number: int, message: str, external_reference: Optional[str] = None) -> None:
        self.issues.append(
            ImportIssue(
                type=ImportIssueType.PARSE_ERROR,
                line_number=line_number,
                external_reference=external_reference,
                message=message or "Failed to process entry",
            )
        )


def decode_bytes(data: bytes, encoding: str = "utf-8") -> str:
    """Decode with the requested charset, falling back to latin-1."""
    try:
        text = data.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        text = data.decode("latin-1")
    return text.lstrip("\ufeff")
