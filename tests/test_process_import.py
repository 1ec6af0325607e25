"""End-to-end import tests against an in-memory SQLite database."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.domain.imports.allocations import AllocationShare
from app.domain.imports.gateway import SqlAlchemyImportGateway, TransactionFields
from app.domain.imports.schemas import ImportIssueType
from app.domain.imports.services import ImportFailure, process_import
from app.domain.transactions.models import Transaction, TransactionResponsibility


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _transactions(db, user_id: int):
    result = await db.execute(
        select(Transaction).where(Transaction.user_id == user_id).order_by(Transaction.id)
    )
    return result.scalars().all()


class TestCsvImport:
    """Importing the pt-BR sample statement."""

    async def test_creates_typed_transactions(self, db, owner, make_request, pt_br_csv):
        response = await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())

        assert response.total_entries == 2
        assert response.created_transactions == 2
        assert response.issues == []

        supermarket, freelance = await _transactions(db, owner.user.id)
        assert (supermarket.type, supermarket.amount) == ("EXPENSE", Decimal("125.75"))
        assert (freelance.type, freelance.amount) == ("INCOME", Decimal("850.50"))
        assert supermarket.category_id == owner.groceries_id
        assert supermarket.subtype == "VARIABLE"
        assert supermarket.source == "BANK_TRANSACTION"
        assert len(supermarket.source_hash) == 64
        assert response.created_transaction_ids == [supermarket.id, freelance.id]

    async def test_every_transaction_gets_full_allocation(self, db, owner, make_request, pt_br_csv):
        request = make_request(
            responsibilities=[
                {"responsible_id": owner.ana_id, "percentage": "70"},
                {"responsible_id": owner.bruno_id, "percentage": "30", "notes": "shared"},
            ]
        )
        response = await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, request)

        for transaction_id in response.created_transaction_ids:
            result = await db.execute(
                select(TransactionResponsibility).where(TransactionResponsibility.transaction_id == transaction_id)
            )
            shares = result.scalars().all()
            assert sum(share.percentage for share in shares) == Decimal("100")

        result = await db.execute(
            select(TransactionResponsibility.calculated_amount)
            .where(TransactionResponsibility.responsible_id == owner.bruno_id)
            .order_by(TransactionResponsibility.transaction_id)
        )
        assert result.scalars().all() == [Decimal("37.73"), Decimal("255.15")]

    async def test_reimport_with_skip_creates_nothing(self, db, owner, make_request, pt_br_csv):
        await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())

        response = await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())

        assert response.created_transactions == 0
        assert response.duplicate_entries == 2
        assert [issue.type for issue in response.issues] == [ImportIssueType.DUPLICATE_SKIPPED] * 2
        assert await _count(db, Transaction) == 2

    async def test_reimport_with_import_anyway(self, db, owner, make_request, pt_br_csv):
        await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())

        response = await process_import(
            db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request(duplicate_strategy="IMPORT_ANYWAY")
        )

        assert response.created_transactions == 2
        assert await _count(db, Transaction) == 4

    async def test_reimport_with_flag(self, db, owner, make_request, pt_br_csv):
        await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())

        response = await process_import(
            db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request(duplicate_strategy="FLAG")
        )

        assert response.created_transactions == 2
        assert [issue.type for issue in response.issues] == [ImportIssueType.DUPLICATE_FLAGGED] * 2

    async def test_duplicates_are_scoped_to_user(self, db, owner, stranger, make_request, pt_br_csv):
        await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())
        request = make_request(
            default_category_id=stranger.groceries_id,
            responsibilities=[{"responsible_id": stranger.ana_id, "percentage": "100"}],
        )

        response = await process_import(db, stranger.user, "extrato.csv", "text/csv", pt_br_csv, request)

        assert response.created_transactions == 2

    async def test_malformed_row_is_isolated(self, db, owner, make_request, pt_br_csv):
        data = pt_br_csv + b"2024-01-07;Broken;abc\n2024-01-08;Pharmacy;-30,00\n"

        response = await process_import(db, owner.user, "extrato.csv", "text/csv", data, make_request())

        assert response.total_entries == 4
        assert response.created_transactions == 3
        assert response.failed_entries == 1
        assert response.issues[0].type == ImportIssueType.PARSE_ERROR
        assert response.issues[0].line_number == 3

    async def test_dry_run_writes_nothing(self, db, owner, make_request, pt_br_csv):
        response = await process_import(
            db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request(dry_run=True)
        )

        assert response.dry_run is True
        assert response.processed_entries == 2
        assert response.created_transactions == 0
        assert await _count(db, Transaction) == 0

    async def test_category_mapping_from_csv_column(self, db, owner, make_request):
        data = (
            "date;description;amount;category\n"
            "2024-01-05;Supermarket;-125,75;Mercado\n"
            "2024-01-06;Freelance Payment;850.50;Renda\n"
        ).encode("utf-8")
        request = make_request(
            csv={"delimiter": ";", "locale": "pt-BR", "category_column": "category"},
            category_mappings={"renda": owner.salary_id},
        )

        await process_import(db, owner.user, "extrato.csv", "text/csv", data, request)

        supermarket, freelance = await _transactions(db, owner.user.id)
        assert supermarket.category_id == owner.groceries_id
        assert freelance.category_id == owner.salary_id

    async def test_source_entity_is_attached(self, db, owner, make_request, pt_br_csv):
        request = make_request(default_source_entity_id=owner.account_id)

        await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, request)

        assert {t.source_entity_id for t in await _transactions(db, owner.user.id)} == {owner.account_id}


class TestOfxImport:
    async def test_fitid_makes_reimport_idempotent(self, db, owner, make_request, sample_ofx):
        request = make_request(csv=None)

        first = await process_import(db, owner.user, "statement.ofx", None, sample_ofx, request)
        second = await process_import(db, owner.user, "statement.ofx", None, sample_ofx, request)

        assert first.created_transactions == 2
        assert second.created_transactions == 0
        assert second.duplicate_entries == 2

        bill, salary = await _transactions(db, owner.user.id)
        assert bill.external_reference == "OFX1"
        assert (bill.type, bill.amount) == ("EXPENSE", Decimal("200.00"))
        assert salary.description == "Monthly Salary"

    async def test_timezone_and_statement_source(self, db, owner, make_request, sample_ofx):
        request = make_request(csv=None, default_source="PIX", timezone="UTC")

        await process_import(db, owner.user, "statement.ofx", None, sample_ofx, request)

        bill, salary = await _transactions(db, owner.user.id)
        assert bill.transaction_date == datetime(2024, 1, 5, 3, 0)
        assert salary.transaction_date == datetime(2024, 1, 10, 15, 0)
        assert {bill.source, salary.source} == {"BANK_TRANSACTION"}


class TestRequestFailures:
    """Request-level failures persist nothing."""

    async def test_allocation_not_totalling_100(self, db, owner, make_request, pt_br_csv):
        request = make_request(
            responsibilities=[
                {"responsible_id": owner.ana_id, "percentage": "50"},
                {"responsible_id": owner.bruno_id, "percentage": "40"},
            ]
        )

        with pytest.raises(ImportFailure) as exc_info:
            await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, request)

        assert exc_info.value.issue_type == ImportIssueType.INVALID_ALLOCATION
        assert await _count(db, Transaction) == 0

    async def test_foreign_responsible_rejected(self, db, owner, stranger, make_request, pt_br_csv):
        request = make_request(responsibilities=[{"responsible_id": stranger.ana_id, "percentage": "100"}])

        with pytest.raises(ImportFailure) as exc_info:
            await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, request)

        assert exc_info.value.issue_type == ImportIssueType.INVALID_ALLOCATION

    async def test_foreign_category_rejected(self, db, owner, stranger, make_request, pt_br_csv):
        request = make_request(default_category_id=stranger.groceries_id)

        with pytest.raises(ImportFailure) as exc_info:
            await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, request)

        assert exc_info.value.issue_type == ImportIssueType.INVALID_REFERENCE
        assert await _count(db, Transaction) == 0

    @pytest.mark.parametrize(
        "filename,content",
        [
            ("statement.ofx", b"not an ofx file"),
            ("report.pdf", b"%PDF-1.4"),
            ("extrato.csv", b"   \n"),
        ],
    )
    async def test_format_errors(self, db, owner, make_request, filename, content):
        with pytest.raises(ImportFailure) as exc_info:
            await process_import(db, owner.user, filename, "application/octet-stream", content, make_request())

        assert exc_info.value.issue_type == ImportIssueType.FORMAT_ERROR
        assert exc_info.value.status_code == 400

    async def test_csv_without_configuration(self, db, owner, make_request, pt_br_csv):
        with pytest.raises(ImportFailure) as exc_info:
            await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request(csv=None))

        assert exc_info.value.issue_type == ImportIssueType.FORMAT_ERROR

    async def test_other_user_id_forbidden(self, db, owner, stranger, make_request, pt_br_csv):
        with pytest.raises(ImportFailure) as exc_info:
            await process_import(
                db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request(user_id=stranger.user.id)
            )

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["type"] == "INVALID_REFERENCE"

    async def test_oversized_file(self, db, owner, make_request, monkeypatch):
        monkeypatch.setattr(settings, "IMPORT_MAX_FILE_MB", 1)
        data = b"x" * (settings.import_max_file_bytes + 1)

        with pytest.raises(ImportFailure) as exc_info:
            await process_import(db, owner.user, "extrato.csv", "text/csv", data, make_request())

        assert exc_info.value.status_code == 413
        assert exc_info.value.issue_type == ImportIssueType.FORMAT_ERROR


class TestGateway:
    async def test_failed_insert_rolls_back_and_session_stays_usable(self, db, owner, make_request, pt_br_csv):
        gateway = SqlAlchemyImportGateway(db)
        fields = TransactionFields(
            user_id=owner.user.id,
            type="EXPENSE",
            subtype="VARIABLE",
            source="BANK_TRANSACTION",
            description="Orphan share",
            amount=Decimal("10.00"),
            transaction_date=datetime(2024, 1, 5),
            category_id=owner.groceries_id,
        )
        bad_share = AllocationShare(responsible_id=9999, percentage=Decimal("100"), calculated_amount=Decimal("10.00"))

        with pytest.raises(IntegrityError):
            await gateway.create_transaction(fields, [bad_share])

        assert await _count(db, Transaction) == 0
        # The rollback expired every loaded instance, the user included.
        await db.refresh(owner.user)
        response = await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())
        assert response.created_transactions == 2

    async def test_fingerprint_lookup(self, db, owner, make_request, pt_br_csv):
        gateway = SqlAlchemyImportGateway(db)
        await process_import(db, owner.user, "extrato.csv", "text/csv", pt_br_csv, make_request())
        stored = (await _transactions(db, owner.user.id))[0].source_hash

        assert await gateway.exists_fingerprint(owner.user.id, stored)
        assert not await gateway.exists_fingerprint(owner.user.id + 1, stored)
