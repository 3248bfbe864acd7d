"""
Shared fixtures.

Every test gets its own in-memory SQLite database. API tests go through the
real FastAPI app with get_db pointed at that database; the override settles
sessions with the same commit/rollback rules as production.

  db_engine, db_session        the database, and a session for direct checks
  client                       anonymous client
  admin, kasir, second_kasir   users provisioned through auth_service
  *_client                     clients logged in through /auth/login
  catalog                      EXPENSE, INCOME, unknown-category and inactive products
  fund                         opening balance through the ledger
  rejecting_settlement         biller that refuses every sale
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from dataclasses import dataclass  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402

from ppob_ledger.database import Base, get_db  # noqa: E402
from ppob_ledger.exceptions import LedgerError, StorageUnavailableError  # noqa: E402
from ppob_ledger.main import app  # noqa: E402
from ppob_ledger.models import Category, CategoryType, Product, User, UserRole  # noqa: E402
from ppob_ledger.services import auth_service, balance_service  # noqa: E402
from ppob_ledger.services.settlement import SettlementResult, get_settlement_provider  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite://"

ADMIN_PASSWORD = "AdminPass123!"
KASIR_PASSWORD = "KasirPass123!"


class RejectingSettlement:
    """Settlement provider that refuses every sale."""

    def __init__(self, message: str = "Nomor pelanggan tidak valid"):
        self.message = message

    async def settle(self, transaction) -> SettlementResult:
        return SettlementResult(success=False, message=self.message)


@dataclass
class Catalog:
    pulsa: Product        # EXPENSE, base price 4,000
    voucher: Product      # EXPENSE, base price 6,000
    setor_tunai: Product  # INCOME, base price 50,000
    legacy: Product       # category never seeded, base price 1,000
    inactive: Product


def make_session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    async with make_session_factory(db_engine)() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_engine):
    factory = make_session_factory(db_engine)

    async def get_test_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except StorageUnavailableError:
                await session.rollback()
                raise
            except LedgerError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = get_test_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _provision(db_session, email: str, password: str, name: str, role: UserRole) -> User:
    user = await auth_service.create_user(db_session, email, password, name, role=role)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin(db_session) -> User:
    return await _provision(db_session, "admin@ppob.example.com", ADMIN_PASSWORD, "Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def kasir(db_session) -> User:
    return await _provision(db_session, "kasir@ppob.example.com", KASIR_PASSWORD, "Kasir Satu", UserRole.KASIR)


@pytest_asyncio.fixture
async def second_kasir(db_session) -> User:
    return await _provision(db_session, "kasir2@ppob.example.com", KASIR_PASSWORD, "Kasir Dua", UserRole.KASIR)


async def _logged_in_client(client, email: str, password: str):
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, f"Login failed: {response.text}"
    token = response.json()["token"]
    ac = AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    )
    return ac


@pytest_asyncio.fixture
async def admin_client(client, admin):
    """Test client logged in as the ADMIN user."""
    ac = await _logged_in_client(client, admin.email, ADMIN_PASSWORD)
    async with ac:
        yield ac


@pytest_asyncio.fixture
async def kasir_client(client, kasir):
    """Test client logged in as a KASIR user."""
    ac = await _logged_in_client(client, kasir.email, KASIR_PASSWORD)
    async with ac:
        yield ac


@pytest_asyncio.fixture
async def second_kasir_client(client, second_kasir):
    """A second KASIR for cross-user authorization tests."""
    ac = await _logged_in_client(client, second_kasir.email, KASIR_PASSWORD)
    async with ac:
        yield ac


@pytest_asyncio.fixture
async def catalog(db_session) -> Catalog:
    """Seed categories and products covering both polarities."""
    db_session.add_all([
        Category(name="PULSA", type=CategoryType.EXPENSE),
        Category(name="VOUCHER_GAME", type=CategoryType.EXPENSE),
        Category(name="SETOR_TUNAI", type=CategoryType.INCOME),
    ])
    products = Catalog(
        pulsa=Product(
            code="TSEL5", name="Telkomsel 5.000", category="PULSA",
            base_price=4_000, selling_price=5_500, fee=0,
        ),
        voucher=Product(
            code="ML50", name="Mobile Legends 50 Diamond", category="VOUCHER_GAME",
            base_price=6_000, selling_price=7_500, fee=0,
        ),
        setor_tunai=Product(
            code="SETOR50", name="Setor Tunai 50.000", category="SETOR_TUNAI",
            base_price=50_000, selling_price=52_500, fee=2_500,
        ),
        legacy=Product(
            code="OLD1", name="Produk Lama", category="TIDAK_ADA",
            base_price=1_000, selling_price=1_500, fee=0,
        ),
        inactive=Product(
            code="OFF1", name="Produk Nonaktif", category="PULSA",
            base_price=1_000, selling_price=1_500, fee=0, is_active=False,
        ),
    )
    db_session.add_all([
        products.pulsa, products.voucher, products.setor_tunai,
        products.legacy, products.inactive,
    ])
    await db_session.commit()
    return products


@pytest.fixture
def fund(db_session):
    """Give a user an opening balance through the ledger: `await fund(user, 10_000)`."""

    async def _fund(user: User, amount: int) -> None:
        await balance_service.top_up(db_session, user.id, amount)
        await db_session.commit()

    return _fund


@pytest.fixture
def rejecting_settlement():
    """Make the API's settlement provider refuse every sale."""
    provider = RejectingSettlement()
    app.dependency_overrides[get_settlement_provider] = lambda: provider
    yield provider
    app.dependency_overrides.pop(get_settlement_provider, None)
