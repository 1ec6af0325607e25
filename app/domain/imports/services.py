"""Service helpers that drive statement imports end to end."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Type, TypeVar

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.domain.imports.allocations import AllocationError, AllocationShare, split_amount, validate_allocations
from app.domain.imports.duplicates import DuplicateDetector, DuplicateOutcome, compute_fingerprint, normalize_description
from app.domain.imports.gateway import SqlAlchemyImportGateway, TransactionFields
from app.domain.imports.parsers import ParseResult, StatementEntry, StatementFormatError, parse_statement, resolve_format
from app.domain.imports.schemas import (
    ImportIssue,
    ImportIssueType,
    ImportRequest,
    ImportResponse,
    ResponsibilityAllocation,
)
from app.domain.transactions.models import TransactionSource, TransactionSubtype, TransactionType
from app.domain.users.models import User

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


class ImportGateway(Protocol):
    async def exists_fingerprint(self, user_id: int, fingerprint: str) -> bool: ...

    async def create_transaction(self, fields: TransactionFields, shares: Sequence[AllocationShare]) -> int: ...

    async def category_exists(self, category_id: int, user_id: int) -> bool: ...

    async def responsible_exists(self, responsible_id: int, user_id: int) -> bool: ...

    async def source_exists(self, source_entity_id: int, user_id: int) -> bool: ...


class ImportFailure(HTTPException):
    """Request-level import failure; nothing has been persisted."""

    def __init__(
        self,
        issue_type: ImportIssueType,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ) -> None:
        super().__init__(status_code=status_code, detail={"type": issue_type.value, "message": message})
        self.issue_type = issue_type
        self.message = message


def _normalize_key(value: str) -> str:
    return value.strip().lower()


def _normalized(mappings: Dict[str, T]) -> Dict[str, T]:
    return {_normalize_key(label): value for label, value in mappings.items()}


def _enum_value(enum_cls: Type[E], label: Optional[str]) -> Optional[E]:
    if not label:
        return None
    try:
        return enum_cls(label.strip().upper())
    except ValueError:
        return None


def _lookup(mappings: Dict[str, T], *labels: Optional[str]) -> Optional[T]:
    for label in labels:
        if label:
            value = mappings.get(_normalize_key(label))
            if value is not None:
                return value
    return None


@dataclass(frozen=True)
class LabelMappings:
    """Request mappings keyed by trimmed, lower-cased statement labels."""

    category: Dict[str, int] = field(default_factory=dict)
    type: Dict[str, TransactionType] = field(default_factory=dict)
    subtype: Dict[str, TransactionSubtype] = field(default_factory=dict)
    source: Dict[str, TransactionSource] = field(default_factory=dict)
    source_entity: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: ImportRequest) -> "LabelMappings":
        return cls(
            category=_normalized(request.category_mappings),
            type=_normalized(request.type_mappings),
            subtype=_normalized(request.subtype_mappings),
            source=_normalized(request.source_mappings),
            source_entity=_normalized(request.source_entity_mappings),
        )


def resolve_transaction_type(amount: Decimal) -> TransactionType:
    if amount > 0:
        return TransactionType.INCOME
    if amount < 0:
        return TransactionType.EXPENSE
    raise ValueError("Transaction amount cannot be zero")


def resolve_entry_type(entry: StatementEntry, mappings: LabelMappings) -> TransactionType:
    """Type from the amount sign; a declared type column or mapping may only agree with it."""
    transaction_type = resolve_transaction_type(entry.amount)
    declared = _enum_value(TransactionType, entry.type_label) or _lookup(
        mappings.type, entry.type_label, entry.category_label
    )
    if declared is not None and declared != transaction_type:
        raise ValueError(
            f"Declared type {declared.value} contradicts the amount sign ({transaction_type.value})"
        )
    return transaction_type


def build_transaction_fields(
    entry: StatementEntry,
    request: ImportRequest,
    user_id: int,
    category_id: int,
    fingerprint: str,
    mappings: Optional[LabelMappings] = None,
) -> TransactionFields:
    """Map a statement entry plus request defaults onto transaction columns.

    Subtype, source and source entity each prefer the value read from the
    file, then a label mapping, then the request default.
    """
    mappings = mappings or LabelMappings.from_request(request)
    subtype = (
        _enum_value(TransactionSubtype, entry.subtype_label)
        or _lookup(mappings.subtype, entry.subtype_label, entry.category_label)
        or request.default_subtype
    )
    source = (
        entry.source
        or _enum_value(TransactionSource, entry.source_label)
        or _lookup(mappings.source, entry.source_label, entry.source_entity_label)
        or request.default_source
    )
    source_entity_id = _lookup(mappings.source_entity, entry.source_entity_label)
    if source_entity_id is None:
        source_entity_id = request.default_source_entity_id

    return TransactionFields(
        user_id=user_id,
        type=resolve_transaction_type(entry.amount).value,
        subtype=subtype.value,
        source=source.value,
        description=entry.description,
        amount=abs(entry.amount),
        transaction_date=entry.date,
        category_id=category_id,
        source_entity_id=source_entity_id,
        external_reference=entry.external_id,
        source_hash=fingerprint,
    )


def _issue(issue_type: ImportIssueType, entry: StatementEntry, message: str) -> ImportIssue:
    return ImportIssue(
        type=issue_type,
        line_number=entry.line_number,
        external_reference=entry.external_id,
        description=entry.description,
        message=message or "Failed to process entry",
    )


class StatementImporter:
    """Run parsed statement entries through duplicate checks and persistence.

    One instance serves one import call: it owns the in-batch seen-set and
    the validated allocation set, both discarded with it.
    """

    def __init__(
        self,
        gateway: ImportGateway,
        request: ImportRequest,
        user_id: int,
        allocation_tolerance: Decimal = settings.IMPORT_ALLOCATION_TOLERANCE,
    ) -> None:
        self.gateway = gateway
        self.request = request
        self.user_id = user_id
        self.allocation_tolerance = allocation_tolerance
        self.detector = DuplicateDetector(request.duplicate_strategy)
        self._allocations: Optional[List[ResponsibilityAllocation]] = None
        self._ignored = {normalize_description(value) for value in request.ignore_descriptions}
        self.mappings = LabelMappings.from_request(request)

    async def allocations(self) -> List[ResponsibilityAllocation]:
        """Validated responsibility split, checked once per import."""
        if self._allocations is not None:
            return self._allocations

        requested_ids = {allocation.responsible_id for allocation in self.request.responsibilities}
        known_ids = {
            responsible_id
            for responsible_id in requested_ids
            if await self.gateway.responsible_exists(responsible_id, self.user_id)
        }
        try:
            self._allocations = validate_allocations(
                self.request.responsibilities, known_ids, self.allocation_tolerance
            )
        except AllocationError as exc:
            raise ImportFailure(
                ImportIssueType.INVALID_ALLOCATION,
                str(exc),
                status.HTTP_422_UNPROCESSABLE_ENTITY,
            ) from exc
        return self._allocations

    async def validate_request(self) -> None:
        """Reject the whole import when a referenced record is unusable."""
        await self.allocations()

        category_ids = {self.request.default_category_id, *self.mappings.category.values()}
        for category_id in sorted(category_ids):
            if not await self.gateway.category_exists(category_id, self.user_id):
                raise ImportFailure(
                    ImportIssueType.INVALID_REFERENCE,
                    f"Category {category_id} not found for the current user",
                    status.HTTP_404_NOT_FOUND,
                )

        source_entity_ids = set(self.mappings.source_entity.values())
        if self.request.default_source_entity_id is not None:
            source_entity_ids.add(self.request.default_source_entity_id)
        for source_entity_id in sorted(source_entity_ids):
            if not await self.gateway.source_exists(source_entity_id, self.user_id):
                raise ImportFailure(
                    ImportIssueType.INVALID_REFERENCE,
                    f"Source {source_entity_id} not found for the current user",
                    status.HTTP_404_NOT_FOUND,
                )

    def _category_for(self, entry: StatementEntry) -> int:
        mapped = _lookup(self.mappings.category, entry.category_label)
        return self.request.default_category_id if mapped is None else mapped

    async def run(self, parsed: ParseResult) -> ImportResponse:
        """Process entries strictly in file order and summarize the outcome."""
        allocations = await self.allocations()
        issues: List[ImportIssue] = list(parsed.issues)
        created_ids: List[int] = []
        processed = duplicates = 0
        failed = len(parsed.issues)

        logger.info(
            "Importing %d entries for user %s (strategy=%s, dry_run=%s)",
            parsed.total_entries,
            self.user_id,
            self.request.duplicate_strategy.value,
            self.request.dry_run,
        )

        try:
            for entry in parsed.entries:
                if self._ignored and normalize_description(entry.description) in self._ignored:
                    issues.append(
                        _issue(
                            ImportIssueType.IGNORED_DESCRIPTION,
                            entry,
                            "Ignored due to configured description filter",
                        )
                    )
                    failed += 1
                    continue

                try:
                    resolve_entry_type(entry, self.mappings)
                except ValueError as exc:
                    issues.append(_issue(ImportIssueType.PARSE_ERROR, entry, str(exc)))
                    failed += 1
                    continue

                fingerprint = compute_fingerprint(self.user_id, entry)
                persisted = not self.detector.seen_in_batch(fingerprint) and await self.gateway.exists_fingerprint(
                    self.user_id, fingerprint
                )
                outcome = self.detector.classify(fingerprint, persisted)

                if outcome == DuplicateOutcome.DUPLICATE_SKIP:
                    issues.append(_issue(ImportIssueType.DUPLICATE_SKIPPED, entry, "Skipped duplicate entry"))
                    duplicates += 1
                    continue
                if outcome == DuplicateOutcome.DUPLICATE_FLAG:
                    issues.append(
                        _issue(ImportIssueType.DUPLICATE_FLAGGED, entry, "Possible duplicate imported for review")
                    )

                processed += 1
                if self.request.dry_run:
                    continue

                fields = build_transaction_fields(
                    entry, self.request, self.user_id, self._category_for(entry), fingerprint, self.mappings
                )
                try:
                    transaction_id = await self.gateway.create_transaction(
                        fields, split_amount(fields.amount, allocations)
                    )
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "Failed to persist import entry at line %s for user %s: %s",
                        entry.line_number,
                        self.user_id,
                        exc,
                    )
                    issues.append(_issue(ImportIssueType.PERSISTENCE_ERROR, entry, str(exc)))
                    failed += 1
                    continue

                created_ids.append(transaction_id)
        except asyncio.CancelledError:
            logger.warning(
                "Import for user %s interrupted after %d created transactions",
                self.user_id,
                len(created_ids),
            )
            raise

        issues.sort(key=lambda issue: issue.line_number or 0)
        response = ImportResponse(
            total_entries=parsed.total_entries,
            processed_entries=processed,
            created_transactions=len(created_ids),
            duplicate_entries=duplicates,
            failed_entries=failed,
            dry_run=self.request.dry_run,
            created_transaction_ids=created_ids,
            issues=issues,
        )
        logger.info(
            "Import finished for user %s: total=%d created=%d duplicates=%d failed=%d",
            self.user_id,
            response.total_entries,
            response.created_transactions,
            response.duplicate_entries,
            response.failed_entries,
        )
        return response


async def process_import(
    db: AsyncSession,
    user: User,
    filename: Optional[str],
    content_type: Optional[str],
    file_bytes: bytes,
    request: ImportRequest,
) -> ImportResponse:
    """Parse an uploaded statement and import it for ``user``."""
    user_id = user.id
    if request.user_id is not None and request.user_id != user_id:
        raise ImportFailure(
            ImportIssueType.INVALID_REFERENCE,
            "Imports can only target the current user.",
            status.HTTP_403_FORBIDDEN,
        )

    if len(file_bytes) > settings.import_max_file_bytes:
        raise ImportFailure(
            ImportIssueType.FORMAT_ERROR,
            f"File exceeds the {settings.IMPORT_MAX_FILE_MB} MB limit.",
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )
    if not file_bytes.strip():
        raise ImportFailure(ImportIssueType.FORMAT_ERROR, "Uploaded file is empty")

    try:
        statement_format = resolve_format(filename, content_type, request.format, file_bytes)
        parsed = parse_statement(file_bytes, statement_format, request.csv, request.zone)
    except StatementFormatError as exc:
        logger.info("Rejected statement upload for user %s: %s", user_id, exc)
        raise ImportFailure(ImportIssueType.FORMAT_ERROR, str(exc)) from exc

    importer = StatementImporter(SqlAlchemyImportGateway(db), request, user_id)
    await importer.validate_request()
    return await importer.run(parsed)


__all__ = [
    "ImportFailure",
    "ImportGateway",
    "LabelMappings",
    "StatementImporter",
    "build_transaction_fields",
    "process_import",
    "resolve_entry_type",
    "resolve_transaction_type",
]
