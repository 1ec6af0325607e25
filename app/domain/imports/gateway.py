"""Database access used by the statement importer."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.categories.models import Category
from app.domain.imports.allocations import AllocationShare
from app.domain.responsibles.models import TransactionResponsible
from app.domain.sources.models import TransactionSourceEntity
from app.domain.transactions.models import Transaction, TransactionResponsibility
from app.domain.users.models import User  # noqa: F401


@dataclass(frozen=True)
class TransactionFields:
    """Validated column values for one new transaction."""

    user_id: int
    type: str
    subtype: str
    source: str
    description: str
    amount: Decimal
    transaction_date: datetime
    category_id: int
    source_entity_id: Optional[int] = None
    external_reference: Optional[str] = None
    source_hash: Optional[str] = None


def _transaction_from_fields(fields: TransactionFields) -> Transaction:
    return Transaction(
        user_id=fields.user_id,
        type=fields.type,
        subtype=fields.subtype,
        source=fields.source,
        description=fields.description,
        amount=fields.amount,
        transaction_date=fields.transaction_date,
        category_id=fields.category_id,
        source_entity_id=fields.source_entity_id,
        external_reference=fields.external_reference,
        source_hash=fields.source_hash,
    )


def _responsibility_from_share(share: AllocationShare) -> TransactionResponsibility:
    return TransactionResponsibility(
        responsible_id=share.responsible_id,
        percentage=share.percentage,
        calculated_amount=share.calculated_amount,
        notes=share.notes,
    )


class SqlAlchemyImportGateway:
    """Persist imported transactions, one commit per transaction."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _owned(self, model, record_id: int, user_id: int) -> bool:
        result = await self.db.execute(
            select(model.id).where(model.id == record_id, model.user_id == user_id)
        )
        return result.scalar_one_or_none() is not None

    async def category_exists(self, category_id: int, user_id: int) -> bool:
        return await self._owned(Category, category_id, user_id)

    async def responsible_exists(self, responsible_id: int, user_id: int) -> bool:
        return await self._owned(TransactionResponsible, responsible_id, user_id)

    async def source_exists(self, source_entity_id: int, user_id: int) -> bool:
        return await self._owned(TransactionSourceEntity, source_entity_id, user_id)

    async def exists_fingerprint(self, user_id: int, fingerprint: str) -> bool:
        result = await self.db.execute(
            select(Transaction.id)
            .where(Transaction.user_id == user_id, Transaction.source_hash == fingerprint)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_transaction(self, fields: TransactionFields, shares: Sequence[AllocationShare]) -> int:
        transaction = _transaction_from_fields(fields)
        transaction.responsibilities = [_responsibility_from_share(share) for share in shares]
        self.db.add(transaction)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return transaction.id
