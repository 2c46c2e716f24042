import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from services.click_service.client import get_click_client
from services.click_service.router import return_router
from services.click_service.router import router as click_router
from services.click_service.service import ClickCallbackService
from services.click_service.signature import md5_signature
from services.payment_service.models import Payment, PaymentStatus
from services.payment_service.repository import PaymentRepository
from services.payment_service.router import router as payment_router
from shared.config.database import Base, get_db
from shared.config.settings import ClickSettings, get_settings


SERVICE_ID = 12345
SECRET_KEY = "test-click-secret"
INTERNAL_API_KEY = "test-internal-key"
SIGN_TIME = "2024-05-01 12:00:00"


@pytest.fixture
def settings():
    return ClickSettings(
        service_id=SERVICE_ID,
        merchant_id=777,
        merchant_user_id=555,
        secret_key=SECRET_KEY,
        api_base_url="https://click.test/v2/merchant/",
        api_timeout=2.0,
        internal_api_key=INTERNAL_API_KEY,
    )


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions use separate connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_payment(session_factory):
    async def _make(
        amount="50000",
        status=PaymentStatus.PENDING,
        merchant_trans_id=None,
        gateway_payment_id=None,
        payment_id=None,
        user_id=1,
    ) -> Payment:
        async with session_factory() as session:
            payment = Payment(
                id=payment_id,
                user_id=user_id,
                amount=Decimal(amount),
                merchant_trans_id=merchant_trans_id or f"mti-{uuid.uuid4().hex}",
                gateway_payment_id=gateway_payment_id,
                status=status.value,
            )
            return await PaymentRepository.create_payment(session, payment)

    return _make


@pytest.fixture
def fetch_payment(session_factory):
    """Reads the stored row through a fresh session."""
    async def _fetch(payment_id: int) -> Payment:
        async with session_factory() as session:
            return await PaymentRepository.get_by_id(session, payment_id)

    return _fetch


@pytest.fixture
def callback_service(settings):
    return ClickCallbackService(settings)


def _finish(body: dict, fields: tuple, overrides: dict, secret: str) -> dict:
    body.update(overrides)
    body = {k: v for k, v in body.items() if v is not None}
    if "sign_string" not in overrides:
        body["sign_string"] = md5_signature(*(
            secret if name == "secret" else body.get(name) for name in fields
        ))
    elif overrides["sign_string"] is None:
        body.pop("sign_string", None)
    return body


@pytest.fixture
def prepare_body():
    """PREPARE request fields for a payment, signed after overrides are applied.

    Pass sign_string=... to force a signature, or a field=None to drop it.
    """
    def _build(payment: Payment, secret: str = SECRET_KEY, **overrides) -> dict:
        body = {
            "click_trans_id": "7",
            "service_id": str(SERVICE_ID),
            "click_paydoc_id": "3001",
            "merchant_trans_id": payment.merchant_trans_id,
            "amount": str(payment.amount),
            "action": "0",
            "error": "0",
            "error_note": "Success",
            "sign_time": SIGN_TIME,
        }
        fields = ("click_trans_id", "service_id", "secret", "merchant_trans_id",
                  "amount", "action", "sign_time")
        return _finish(body, fields, overrides, secret)

    return _build


@pytest.fixture
def complete_body():
    def _build(payment: Payment, secret: str = SECRET_KEY, **overrides) -> dict:
        body = {
            "click_trans_id": "7",
            "service_id": str(SERVICE_ID),
            "click_paydoc_id": "3001",
            "merchant_trans_id": payment.merchant_trans_id,
            "merchant_prepare_id": str(payment.id),
            "amount": str(payment.amount),
            "action": "1",
            "error": "0",
            "error_note": "Success",
            "sign_time": SIGN_TIME,
        }
        fields = ("click_trans_id", "service_id", "secret", "merchant_trans_id",
                  "merchant_prepare_id", "amount", "action", "sign_time")
        return _finish(body, fields, overrides, secret)

    return _build


@pytest.fixture
def gateway():
    """Stand-in for ClickApiClient; tests set return values per call."""
    client = AsyncMock()
    client.query_status = AsyncMock()
    client.reverse = AsyncMock()
    return client


@pytest.fixture
def app(settings, session_factory, gateway):
    app = FastAPI()
    app.include_router(click_router, prefix="/api/click")
    app.include_router(payment_router, prefix="/api/payments")
    app.include_router(return_router)

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_click_client] = lambda: gateway
    return app


@pytest.fixture
async def http_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def operator_headers():
    return {"X-Internal-API-Key": INTERNAL_API_KEY}
