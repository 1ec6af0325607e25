"""Bank statement importing: parsing, duplicate detection and persistence."""

from .schemas import (
    CsvConfiguration,
    DuplicateStrategy,
    ImportIssue,
    ImportIssueType,
    ImportRequest,
    ImportResponse,
    ResponsibilityAllocation,
    StatementFormat,
)

__all__ = [
    "CsvConfiguration",
    "DuplicateStrategy",
    "ImportIssue",
    "ImportIssueType",
    "ImportRequest",
    "ImportResponse",
    "ResponsibilityAllocation",
    "StatementFormat",
]
