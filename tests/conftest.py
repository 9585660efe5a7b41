"""Shared test fixtures and configuration."""

import json
import os
import pytest
from typing import Any, Callable, Dict, List

import httpx

# Set up test environment variables before importing modules
os.environ.setdefault("IYZICO_API_KEY", "sandbox-api-key")
os.environ.setdefault("IYZICO_SECRET_KEY", "sandbox-secret-key")
os.environ.setdefault("IYZICO_BASE_URL", "https://gateway.test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from payment_relay.config import Credentials, RelayConfig


API_KEY = "sandbox-api-key"
SECRET_KEY = "sandbox-secret-key"
BASE_URL = "https://gateway.test"


class FakeGateway:
    """Records signed requests and answers with queued envelopes."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responses: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def respond(self, path: str, payload: Any, status_code: int = 200) -> None:
        self.responses[path] = lambda request: httpx.Response(status_code, json=payload)

    def respond_with(self, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.responses[path] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.responses.get(request.url.path)
        if responder is None:
            return httpx.Response(404, json={"status": "failure", "errorCode": "404", "errorMessage": "not found"})
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(api_key=API_KEY, secret_key=SECRET_KEY, base_url=BASE_URL)


@pytest.fixture
def relay_config(credentials) -> RelayConfig:
    return RelayConfig(
        credentials=credentials,
        database_url="sqlite+aiosqlite:///:memory:",
        rate_limit="1000/minute",
    )


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def auth_success_response() -> Dict[str, Any]:
    """Gateway envelope for a successful authorization."""
    return {
        "status": "success",
        "locale": "tr",
        "systemTime": 1718000000000,
        "conversationId": "conv-123",
        "price": 100.0,
        "paidPrice": 118.0,
        "installment": 1,
        "paymentId": "22416035",
        "fraudStatus": 1,
        "cardToken": "should-not-be-stored",
        "itemTransactions": [
            {
                "itemId": "BI101",
                "paymentTransactionId": "23997951",
                "transactionStatus": 2,
                "price": 60.0,
                "paidPrice": 70.8,
                "merchantCommissionRate": 0,
            },
            {
                "itemId": "BI102",
                "paymentTransactionId": "23997952",
                "transactionStatus": 2,
                "price": 40.0,
                "paidPrice": 47.2,
                "merchantCommissionRate": 0,
            },
        ],
    }


@pytest.fixture
def failure_response() -> Dict[str, Any]:
    return {
        "status": "failure",
        "errorCode": "10051",
        "errorMessage": "Kart limiti yetersiz, yetersiz bakiye",
        "errorGroup": "NOT_SUFFICIENT_FUNDS",
        "locale": "tr",
        "systemTime": 1718000000000,
    }


@pytest.fixture
def valid_payment_body() -> Dict[str, Any]:
    """Storefront request body for POST /payment."""
    return {
        "conversationId": "conv-123",
        "basketId": "B67832",
        "paymentChannel": "WEB",
        "installment": 1,
        "currency": "TRY",
        "basketItems": [
            {"id": "BI101", "name": "Binocular", "category1": "Collectibles", "price": "60"},
            {"id": "BI102", "name": "Game code", "category1": "Game", "price": 40},
        ],
        "paymentCard": {
            "cardHolderName": "John Doe",
            "cardNumber": "5528790000000008",
            "expireMonth": "12",
            "expireYear": "2030",
            "cvc": "123",
        },
        "customer": {
            "id": "BY789",
            "name": "John",
            "surname": "Doe",
            "email": "email@email.com",
            "phone": "+905350000000",
            "registrationAddress": "Nidakule Goztepe, Merdivenkoy Mah. Bora Sok. No:1",
            "city": "Istanbul",
            "country": "Turkey",
        },
        "shippingAddress": {
            "contactName": "Jane Doe",
            "city": "Istanbul",
            "country": "Turkey",
            "address": "Nidakule Goztepe, Merdivenkoy Mah. Bora Sok. No:1",
        },
        "billingAddress": {
            "contactName": "Jane Doe",
            "city": "Istanbul",
            "country": "Turkey",
            "address": "Nidakule Goztepe, Merdivenkoy Mah. Bora Sok. No:1",
        },
    }


# Database fixtures
@pytest.fixture
async def db_manager():
    """In-memory SQLite order store."""
    from payment_relay.database import DatabaseManager

    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.initialize()
    yield manager
    await manager.shutdown()


@pytest.fixture
async def db_session(db_manager):
    """Bare session without the manager's commit-on-exit."""
    from payment_relay.database import create_session_factory

    session_factory = create_session_factory(db_manager.engine)
    async with session_factory() as session:
        yield session
