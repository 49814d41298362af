"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Mocked Algoan and Bridge clients
- A registry holding one service account with two handled subscriptions
- A fake clock driving the convergence pollers
- Event and Bridge resource factories
"""
from datetime import date, timedelta
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from connector.bridge_schemas import (
    AuthenticationResponse,
    BridgeBank,
    BridgeResourceRef,
    BridgeTransaction,
    BridgeUser,
)
from connector.config import Settings
from connector.schemas import AggregatorConfig, InboundEvent
from connector.services.algoan_client import AlgoanClient, AlgoanCredentials
from connector.services.bridge_client import BridgeClient
from connector.services.hooks import HooksService
from connector.services.polling import ConvergencePoller
from connector.services.registry import ServiceAccount, ServiceAccountRegistry, sign_payload
from connector.services.synchronization import BankDetailsSynchronizer

HOOKS_SECRET = "test-rest-hooks-secret"


class FakeClock:
    """Monotonic clock that only moves when the poller sleeps."""

    def __init__(self, now: float = 0.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_event(
    subscription_id: str,
    event_name: str,
    payload: dict[str, Any],
    event_id: str = "event-1",
) -> InboundEvent:
    return InboundEvent.model_validate({
        "id": event_id,
        "subscription": {"id": subscription_id, "eventName": event_name},
        "payload": payload,
    })


def sign(payload: dict[str, Any]) -> str:
    return f"sha256={sign_payload(HOOKS_SECRET, payload)}"


def make_transaction(
    id: int,
    account_id: int,
    days_ago: int,
    updated_at: Optional[str] = None,
) -> BridgeTransaction:
    return BridgeTransaction(
        id=id,
        raw_description=f"CARD PAYMENT {id}",
        amount=-12.5,
        date=date.today() - timedelta(days=days_ago),
        updated_at=updated_at or f"2024-05-01T10:00:{id:02d}.000Z",
        currency_code="EUR",
        account=BridgeResourceRef(id=account_id),
        category=BridgeResourceRef(id=270, resource_uri="/v2/categories/270"),
    )


@pytest.fixture
def settings():
    return Settings(
        rest_hooks_secret=HOOKS_SECRET,
        synchronization_timeout=60,
        synchronization_waiting_time=5,
        default_nb_of_months=3,
    )


@pytest.fixture
def algoan():
    client = MagicMock(spec=AlgoanClient)
    client.authenticate.return_value = AlgoanCredentials(access_token="algoan-token")
    return client


@pytest.fixture
def bridge():
    client = MagicMock(spec=BridgeClient)
    client.get_access_token.return_value = AuthenticationResponse(
        access_token="bridge-token",
        user=BridgeUser(uuid="bridge-user-uuid"),
    )
    client.get_accounts.return_value = []
    client.get_user_personal_information.return_value = []
    client.get_transactions.return_value = []
    client.get_bank_information.return_value = BridgeBank(id=6, name="Mock Bank")
    client.get_resource_name.return_value = "Groceries"
    return client


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def poller(clock):
    return ConvergencePoller(clock=clock, sleep=clock.sleep)


@pytest.fixture
def registry(algoan, settings):
    return ServiceAccountRegistry(algoan, settings)


@pytest.fixture
def service_account(registry):
    """Service account handling both events, also owning a third, unhandled subscription."""
    account = ServiceAccount(
        id="service-account-1",
        client_id="algoan-client-id",
        client_secret="algoan-client-secret",
        config=AggregatorConfig(client_id="bridge-client-id", client_secret="bridge-client-secret"),
    )
    account.subscriptions = [
        registry.build_subscription(account, "sub-link", "aggregator_link_required"),
        registry.build_subscription(account, "sub-bank", "bank_details_required"),
    ]
    registry.register(account, ["sub-other"])
    return account


@pytest.fixture
def synchronizer(algoan, bridge, poller, settings):
    return BankDetailsSynchronizer(algoan, bridge, poller=poller, settings=settings)


@pytest.fixture
def hooks(registry, algoan, bridge, synchronizer, service_account):
    return HooksService(registry, algoan, bridge, synchronizer)
