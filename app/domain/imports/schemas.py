"""Pydantic schemas for statement import workflows."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings
from app.domain.transactions.models import TransactionSource, TransactionSubtype, TransactionType

DEFAULT_DATE_FORMATS = [
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
]


class StatementFormat(str, Enum):
    """File formats understood by the importer."""

    AUTO = "AUTO"
    CSV = "CSV"
    OFX = "OFX"


class DuplicateStrategy(str, Enum):
    """What to do with an entry whose fingerprint was already seen."""

    SKIP = "SKIP"
    IMPORT_ANYWAY = "IMPORT_ANYWAY"
    FLAG = "FLAG"


class ImportIssueType(str, Enum):
    PARSE_ERROR = "PARSE_ERROR"
    FORMAT_ERROR = "FORMAT_ERROR"
    DUPLICATE_SKIPPED = "DUPLICATE_SKIPPED"
    DUPLICATE_FLAGGED = "DUPLICATE_FLAGGED"
    INVALID_ALLOCATION = "INVALID_ALLOCATION"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    IGNORED_DESCRIPTION = "IGNORED_DESCRIPTION"
    INVALID_REFERENCE = "INVALID_REFERENCE"


class CsvConfiguration(BaseModel):
    """Parsing options for CSV statements."""

    delimiter: str = Field(default=";", min_length=1, max_length=1)
    contains_header: bool = True
    date_column: str = "date"
    description_column: str = "description"
    amount_column: str = "amount"
    category_column: Optional[str] = None
    type_column: Optional[str] = None
    subtype_column: Optional[str] = None
    source_column: Optional[str] = None
    source_entity_column: Optional[str] = None
    external_id_column: Optional[str] = None
    date_index: int = Field(default=0, ge=0)
    description_index: int = Field(default=1, ge=0)
    amount_index: int = Field(default=2, ge=0)
    date_formats: List[str] = Field(default_factory=lambda: DEFAULT_DATE_FORMATS.copy(), min_length=1)
    locale: str = Field(default_factory=lambda: settings.IMPORT_DEFAULT_LOCALE)
    decimal_separator: Optional[str] = Field(default=None, min_length=1, max_length=1)
    grouping_separator: Optional[str] = Field(default=None, min_length=1, max_length=1)
    encoding: str = "utf-8"

    model_config = ConfigDict(extra="forbid", frozen=True)


class ResponsibilityAllocation(BaseModel):
    """Responsible share reused for every imported transaction."""

    responsible_id: int
    percentage: Decimal
    notes: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(extra="forbid", frozen=True)


class ImportRequest(BaseModel):
    """Configuration for one import run."""

    user_id: Optional[int] = None
    default_category_id: int
    default_subtype: TransactionSubtype
    default_source: TransactionSource
    default_source_entity_id: Optional[int] = None
    responsibilities: List[ResponsibilityAllocation] = Field(default_factory=list)
    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    format: StatementFormat = StatementFormat.AUTO
    dry_run: bool = False
    csv: Optional[CsvConfiguration] = None
    # Timezone OFX timestamps are converted into; None keeps the bank's wall-clock time.
    timezone: Optional[str] = None
    category_mappings: Dict[str, int] = Field(default_factory=dict)
    type_mappings: Dict[str, TransactionType] = Field(default_factory=dict)
    subtype_mappings: Dict[str, TransactionSubtype] = Field(default_factory=dict)
    source_mappings: Dict[str, TransactionSource] = Field(default_factory=dict)
    source_entity_mappings: Dict[str, int] = Field(default_factory=dict)
    ignore_descriptions: List[str] = Field(default_factory=list, max_length=100)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("ignore_descriptions")
    @classmethod
    def drop_blank_descriptions(cls, value: List[str]) -> List[str]:
        return [item for item in value if item and item.strip()]

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        try:
            ZoneInfo(value.strip())
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value.strip()

    @property
    def zone(self) -> Optional[ZoneInfo]:
        return ZoneInfo(self.timezone) if self.timezone else None


class ImportIssue(BaseModel):
    """A problem (or notice) attached to one statement entry."""

    type: ImportIssueType
    line_number: Optional[int] = None
    external_reference: Optional[str] = None
    description: Optional[str] = None
    message: str


class ImportResponse(BaseModel):
    """Outcome of an import run."""

    total_entries: int = 0
    processed_entries: int = 0
    created_transactions: int = 0
    duplicate_entries: int = 0
    failed_entries: int = 0
    dry_run: bool = False
    created_transaction_ids: List[int] = Field(default_factory=list)
    issues: List[ImportIssue] = Field(default_factory=list)
