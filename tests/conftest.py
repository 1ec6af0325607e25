"""Pytest configuration and fixtures."""

import os
import tempfile
from dataclasses import dataclass
from typing import Any, Callable, Iterable

# Settings are read at import time, so the environment is prepared first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="statement-importer-logs-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy-123")

import pytest  # noqa: E402
from sqlalchemy.exc import IntegrityError  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.database import build_engine, init_db  # noqa: E402
from app.domain.categories.models import Category  # noqa: E402
from app.domain.imports.schemas import ImportRequest  # noqa: E402
from app.domain.responsibles.models import TransactionResponsible  # noqa: E402
from app.domain.sources.models import TransactionSourceEntity  # noqa: E402
from app.domain.users.models import User  # noqa: E402

PT_BR_CSV = (
    "date;description;amount\n"
    "2024-01-05;Supermarket;-125,75\n"
    "2024-01-06;Freelance Payment;850.50\n"
)

SAMPLE_OFX = """OFXHEADER:100
DATA:OFXSGML
VERSION:102
SECURITY:NONE
ENCODING:USASCII
CHARSET:1252
COMPRESSION:NONE
OLDFILEUID:NONE
NEWFILEUID:NONE

<OFX>
  <BANKMSGSRSV1>
    <STMTTRNRS>
      <TRNUID>1
      <STATUS>
        <CODE>0
        <SEVERITY>INFO
      </STATUS>
      <STMTRS>
        <CURDEF>BRL
        <BANKACCTFROM>
          <BANKID>111
          <ACCTID>999
          <ACCTTYPE>CHECKING
        </BANKACCTFROM>
        <BANKTRANLIST>
          <DTSTART>20240101000000[-3:BRT]
          <DTEND>20240131000000[-3:BRT]
          <STMTTRN>
            <TRNTYPE>DEBIT
            <DTPOSTED>20240105000000[-3:BRT]
            <TRNAMT>-200.00
            <FITID>OFX1
            <NAME>Utility Bill
            <MEMO>Electric company
          </STMTTRN>
          <STMTTRN>
            <TRNTYPE>CREDIT
            <DTPOSTED>20240110120000[-3:BRT]
            <TRNAMT>1500.00
            <FITID>OFX2
            <NAME>
            <MEMO>Monthly Salary
          </STMTTRN>
        </BANKTRANLIST>
      </STMTRS>
    </STMTTRNRS>
  </BANKMSGSRSV1>
</OFX>
"""


@dataclass
class Owner:
    """Seeded user plus the records an import request can reference."""

    user: User
    groceries_id: int
    salary_id: int
    ana_id: int
    bruno_id: int
    account_id: int


@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _seed_user(db: AsyncSession, email: str, name: str) -> Owner:
    user = User(email=email, name=name)
    db.add(user)
    await db.flush()

    groceries = Category(user_id=user.id, name="Groceries", type="EXPENSE")
    salary = Category(user_id=user.id, name="Salary", type="INCOME")
    ana = TransactionResponsible(user_id=user.id, name="Ana")
    bruno = TransactionResponsible(user_id=user.id, name="Bruno")
    account = TransactionSourceEntity(user_id=user.id, name="Checking", source_type="BANK_TRANSACTION")
    db.add_all([groceries, salary, ana, bruno, account])
    await db.commit()

    return Owner(
        user=user,
        groceries_id=groceries.id,
        salary_id=salary.id,
        ana_id=ana.id,
        bruno_id=bruno.id,
        account_id=account.id,
    )


@pytest.fixture
async def owner(db) -> Owner:
    return await _seed_user(db, "ana@example.com", "Ana")


@pytest.fixture
async def stranger(db, owner) -> Owner:
    """A second user whose records must never be usable by ``owner``."""
    return await _seed_user(db, "carlos@example.com", "Carlos")


@pytest.fixture
def make_request(owner: Owner) -> Callable[..., ImportRequest]:
    """Build an ImportRequest for ``owner`` with pt-BR CSV defaults."""

    def factory(**overrides: Any) -> ImportRequest:
        payload: dict[str, Any] = {
            "default_category_id": owner.groceries_id,
            "default_subtype": "VARIABLE",
            "default_source": "BANK_TRANSACTION",
            "responsibilities": [{"responsible_id": owner.ana_id, "percentage": "100"}],
            "csv": {"delimiter": ";", "contains_header": True, "locale": "pt-BR"},
        }
        payload.update(overrides)
        return ImportRequest.model_validate(payload)

    return factory


class FakeGateway:
    """In-memory stand-in for the SQLAlchemy gateway."""

    def __init__(
        self,
        categories: Iterable[int] = (1,),
        responsibles: Iterable[int] = (1,),
        sources: Iterable[int] = (),
        fail_descriptions: Iterable[str] = (),
    ) -> None:
        self.categories = set(categories)
        self.responsibles = set(responsibles)
        self.sources = set(sources)
        self.fail_descriptions = set(fail_descriptions)
        self.fingerprints: set[str] = set()
        self.created: list = []
        self.responsible_lookups = 0

    async def exists_fingerprint(self, user_id, fingerprint):
        return fingerprint in self.fingerprints

    async def create_transaction(self, fields, shares):
        if fields.description in self.fail_descriptions:
            raise IntegrityError("INSERT INTO transactions", {}, Exception("FOREIGN KEY constraint failed"))
        self.created.append((fields, list(shares)))
        self.fingerprints.add(fields.source_hash)
        return len(self.created)

    async def category_exists(self, category_id, user_id):
        return category_id in self.categories

    async def responsible_exists(self, responsible_id, user_id):
        self.responsible_lookups += 1
        return responsible_id in self.responsibles

    async def source_exists(self, source_entity_id, user_id):
        return source_entity_id in self.sources


@pytest.fixture
def fake_gateway() -> Callable[..., FakeGateway]:
    return FakeGateway


@pytest.fixture
def pt_br_csv() -> bytes:
    return PT_BR_CSV.encode("utf-8")


@pytest.fixture
def sample_ofx() -> bytes:
    return SAMPLE_OFX.encode("ascii")
