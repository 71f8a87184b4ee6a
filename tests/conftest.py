"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

# --- default env before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./payledger_test.db")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("API_SECRET", "sk_test_provider")
os.environ.setdefault("PAYLEDGER_ENV", "dev")

from payledger.main import app  # noqa: E402
from payledger.config import get_settings  # noqa: E402
from payledger.db import build_engine, build_sessionmaker, get_db  # noqa: E402
from payledger.models import Base, Order, OrderState  # noqa: E402
from payledger.services.orders import SqlOrderGateway  # noqa: E402
from payledger.services.transaction_repository import TransactionRepository  # noqa: E402
from payledger.services.transactions import TransactionService  # noqa: E402

DB_PATH = Path("./payledger_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    cfg.attributes["configure_logger"] = False
    command.upgrade(cfg, "head")


# --- (1) fresh database file for the session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = build_engine(os.environ["DATABASE_URL"])
TestingSessionLocal = build_sessionmaker(engine)

# --- (2) schema comes from Alembic only
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    # services commit for real, so tables are emptied after each test
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {os.environ['ADMIN_API_KEY']}"}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def repository(db_session: Session) -> TransactionRepository:
    return TransactionRepository(db_session)


@pytest.fixture
def transactions(repository: TransactionRepository) -> TransactionService:
    return TransactionService(repository)


@pytest.fixture
def orders(db_session: Session) -> SqlOrderGateway:
    return SqlOrderGateway(db_session)


@pytest.fixture
def make_order(db_session: Session) -> Callable[..., Order]:
    """Factory creating an order awaiting payment through the provider."""

    def _factory(
        *,
        reference: str | None = None,
        state: OrderState = OrderState.PENDING_PAYMENT,
        grand_total: str = "100.00",
        total_paid: str | None = None,
        currency: str = "CLP",
        payment_method: str = "provider_payment",
        payment_info: dict | None = None,
        invoice_id: str | None = None,
    ) -> Order:
        order = Order(
            reference=reference or f"{uuid4().int % 10**9:09d}",
            state=state,
            payment_method=payment_method,
            payment_info=payment_info or {},
            currency=currency,
            grand_total=Decimal(grand_total),
            total_paid=Decimal(total_paid) if total_paid is not None else None,
            cart_active=False,
            invoice_id=invoice_id,
            credit_memos=[],
            history=[],
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _factory
