"""
Pytest configuration and fixtures.

Everything runs against an in-memory SQLite database and a fake PawaPay
served through ``httpx.MockTransport``; no network access is needed.
"""
import copy
import json
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from pawapay_marketplace.api.dependencies import Services, build_services
from pawapay_marketplace.api.main import create_app
from pawapay_marketplace.config import Settings
from pawapay_marketplace.core.webhook_verifier import compute_signature
from pawapay_marketplace.database.connection import Database
from pawapay_marketplace.database.models import (
    MembershipPayment,
    Order,
    PendingPayment,
    VendorEarnings,
)
from pawapay_marketplace.integrations.circuit_breaker import CircuitBreaker
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient

WEBHOOK_SECRET = "test-webhook-secret"
ADMIN_TOKEN = "test-admin-token"


def _deposit_operation(status: str, minimum: str, maximum: str) -> Dict[str, Any]:
    return {"DEPOSIT": {"status": status, "minAmount": minimum, "maxAmount": maximum}}


ACTIVE_CONF: Dict[str, Any] = {
    "countries": [
        {
            "country": "ZMB",
            "providers": [
                {
                    "provider": "MTN_MOMO_ZMB",
                    "displayName": "MTN",
                    "logo": "https://cdn.example.com/mtn.png",
                    "currencies": [
                        {
                            "currency": "ZMW",
                            "operationTypes": _deposit_operation("OPERATIONAL", "1", "50000"),
                        }
                    ],
                },
                {
                    "provider": "AIRTEL_OAPI_ZMB",
                    "displayName": "Airtel",
                    "currencies": [
                        {
                            "currency": "ZMW",
                            "operationTypes": _deposit_operation("OPERATIONAL", "5", "10000"),
                        }
                    ],
                },
                {
                    "provider": "ZAMTEL_MOMO_ZMB",
                    "displayName": "Zamtel",
                    "currencies": [
                        {
                            "currency": "ZMW",
                            "operationTypes": _deposit_operation("CLOSED", "1", "5000"),
                        }
                    ],
                },
            ],
        }
    ]
}


class FakePawaPay:
    """
    In-process stand-in for the PawaPay v2 API.

    Tests tweak the attributes to script answers and read ``requests`` to
    assert on what was sent.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.active_conf: Dict[str, Any] = copy.deepcopy(ACTIVE_CONF)
        self.deposit_status = "ACCEPTED"
        self.payout_status = "ACCEPTED"
        self.failure_reason: Optional[Dict[str, str]] = None
        self.prediction: Optional[Dict[str, str]] = None
        self.deposits: Dict[str, Dict[str, Any]] = {}
        self.payouts: Dict[str, Dict[str, Any]] = {}
        self.server_error: Optional[int] = None
        self.wallet_balances: List[Dict[str, Any]] = [
            {"country": "ZMB", "currency": "ZMW", "balance": "5000.00"}
        ]

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def _initiation(self, id_field: str, transaction_id: str, status: str) -> httpx.Response:
        body: Dict[str, Any] = {id_field: transaction_id, "status": status}
        if status != "ACCEPTED" and self.failure_reason:
            body["failureReason"] = self.failure_reason
        return httpx.Response(200, json=body)

    @staticmethod
    def _lookup(records: Dict[str, Dict[str, Any]], transaction_id: str) -> httpx.Response:
        record = records.get(transaction_id)
        if record is None:
            return httpx.Response(200, json={"status": "NOT_FOUND"})
        return httpx.Response(200, json={"status": "FOUND", "data": record})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.server_error:
            return httpx.Response(self.server_error, json={"errorMessage": "upstream failure"})

        path = request.url.path
        if path == "/v2/active-conf":
            return httpx.Response(200, json=self.active_conf)
        if path == "/v2/wallet-balances":
            return httpx.Response(200, json=self.wallet_balances)
        if path == "/v2/predict-provider":
            if self.prediction is None:
                return httpx.Response(400, json={"errorMessage": "Cannot predict provider"})
            return httpx.Response(200, json=self.prediction)
        if path == "/v2/deposits" and request.method == "POST":
            body = json.loads(request.content)
            return self._initiation("depositId", body["depositId"], self.deposit_status)
        if path.startswith("/v2/deposits/"):
            return self._lookup(self.deposits, path.rsplit("/", 1)[-1])
        if path == "/v2/payouts" and request.method == "POST":
            body = json.loads(request.content)
            return self._initiation("payoutId", body["payoutId"], self.payout_status)
        if path.startswith("/v2/payouts/resend-callback/") or path.startswith(
            "/v2/payouts/fail-enqueued/"
        ):
            return httpx.Response(
                200, json={"payoutId": path.rsplit("/", 1)[-1], "status": "ACCEPTED"}
            )
        if path.startswith("/v2/payouts/"):
            return self._lookup(self.payouts, path.rsplit("/", 1)[-1])
        return httpx.Response(404, json={"errorMessage": f"No route for {path}"})


class Seeder:
    """Inserts fixture rows the application reads but never creates."""

    def __init__(self, database: Database):
        self.database = database

    async def order(self, payment_token: str, payment_status: Optional[str] = None) -> Order:
        order = Order(payment_token=payment_token, payment_status=payment_status, status=0)
        async with self.database.session() as session:
            session.add(order)
        return order

    async def membership(self, payment_token: str) -> MembershipPayment:
        membership = MembershipPayment(payment_token=payment_token)
        async with self.database.session() as session:
            session.add(membership)
        return membership

    async def pending_payment(
        self,
        deposit_id: str,
        payment_token: str,
        payment_type: str = "product",
        amount: str = "100.00",
        internal_status: str = "pending",
    ) -> PendingPayment:
        payment = PendingPayment(
            deposit_id=deposit_id,
            payment_token=payment_token,
            payment_type=payment_type,
            currency="ZMW",
            payment_amount=Decimal(amount),
            provider="MTN_MOMO_ZMB",
            msisdn="260961234567",
            internal_status=internal_status,
            pawapay_status="ACCEPTED",
        )
        async with self.database.session() as session:
            session.add(payment)
        return payment

    async def earnings(
        self,
        vendor_id: int = 7,
        amount: str = "250.00",
        status: str = "available",
        provider: str = "AIRTEL_OAPI_ZMB",
        phone_number: str = "260971234567",
    ) -> VendorEarnings:
        earnings = VendorEarnings(
            vendor_id=vendor_id,
            available_amount=Decimal(amount),
            currency="ZMW",
            mno_provider=provider,
            phone_number=phone_number,
            status=status,
        )
        async with self.database.session() as session:
            session.add(earnings)
        return earnings


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        pawapay_api_token="test-api-token",
        pawapay_webhook_secret=WEBHOOK_SECRET,
        pawapay_base_url="https://pawapay.test",
        database_url="sqlite+aiosqlite://",
        transaction_limits="ZMW:1.00-50000.00",
        admin_api_token=ADMIN_TOKEN,
        app_name="pawapay-marketplace-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, Any]:
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = Database("sqlite+aiosqlite://", engine=engine)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def file_database(tmp_path: Any) -> AsyncGenerator[Database, Any]:
    """
    File-backed database with one connection per session.

    Race tests need real transaction isolation, which a single shared
    in-memory connection cannot give.
    """
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def seed(database: Database) -> Seeder:
    return Seeder(database)


@pytest.fixture
def file_seed(file_database: Database) -> Seeder:
    return Seeder(file_database)


@pytest.fixture
def fake_gateway() -> FakePawaPay:
    return FakePawaPay()


@pytest_asyncio.fixture
async def gateway_http(fake_gateway: FakePawaPay) -> AsyncGenerator[httpx.AsyncClient, Any]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_gateway.handler)) as client:
        yield client


@pytest.fixture
def pawapay_client(test_settings: Settings, gateway_http: httpx.AsyncClient) -> PawaPayClient:
    # High threshold so scripted 5xx answers never open the circuit mid-test
    return PawaPayClient(
        test_settings,
        http_client=gateway_http,
        circuit_breaker=CircuitBreaker(failure_threshold=100),
    )


@pytest.fixture
def services(
    test_settings: Settings, database: Database, pawapay_client: PawaPayClient
) -> Services:
    return build_services(test_settings, database=database, client=pawapay_client)


@pytest_asyncio.fixture
async def client(
    test_settings: Settings, database: Database, pawapay_client: PawaPayClient
) -> AsyncGenerator[httpx.AsyncClient, Any]:
    """Create test HTTP client."""
    app = create_app(test_settings, database=database, client=pawapay_client)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sign() -> Callable[[bytes], str]:
    """Signature the gateway would send for a body."""
    return lambda body: compute_signature(body, WEBHOOK_SECRET)


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN, "X-Admin-User-Id": "42"}


@pytest.fixture
def sample_payment_data() -> Dict[str, Any]:
    """Sample payment form submission."""
    return {
        "payment_amount": "100.00",
        "currency": "ZMW",
        "msisdn": "0961234567",
        "payment_type": "product",
        "payment_token": "ord_100",
        "order_items": [{"id": 17, "quantity": 1, "price": "100.00"}],
    }
