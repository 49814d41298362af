"""Tests for service account loading and webhook signatures."""
import pytest

from connector.schemas import ServiceAccountResource, SubscriptionResource
from connector.services.registry import sign_payload
from tests.conftest import HOOKS_SECRET

TARGET = "http://localhost:8000/hooks"


class TestSignature:
    """X-Hub-Signature validation."""

    PAYLOAD = {"customerId": "customer-1", "analysisId": "analysis-1"}

    def test_signature_is_compact_json_hmac(self):
        # HMAC-SHA256 of '{"customerId":"customer-1","analysisId":"analysis-1"}'
        signature = sign_payload(HOOKS_SECRET, self.PAYLOAD)

        assert len(signature) == 64
        assert signature == sign_payload(HOOKS_SECRET, dict(self.PAYLOAD))
        assert signature != sign_payload("other-secret", self.PAYLOAD)

    def test_accepts_prefixed_and_bare_signatures(self, service_account):
        subscription = service_account.find_subscription("sub-bank")
        signature = sign_payload(HOOKS_SECRET, self.PAYLOAD)

        assert subscription.validate_signature(f"sha256={signature}", self.PAYLOAD)
        assert subscription.validate_signature(signature, self.PAYLOAD)

    def test_rejects_tampered_payload(self, service_account):
        subscription = service_account.find_subscription("sub-bank")
        signature = sign_payload(HOOKS_SECRET, self.PAYLOAD)

        assert not subscription.validate_signature(signature, {**self.PAYLOAD, "analysisId": "analysis-2"})
        assert not subscription.validate_signature("", self.PAYLOAD)
        assert not subscription.validate_signature(None, self.PAYLOAD)


class TestRegistryLoad:
    """Loading service accounts and their subscriptions from Algoan."""

    @pytest.fixture
    def algoan_resources(self, algoan):
        algoan.get_service_accounts.return_value = [
            ServiceAccountResource(
                id="sa-1",
                client_id="tenant-client",
                client_secret="tenant-secret",
                config={"clientId": "bridge-id", "clientSecret": "bridge-secret", "nbOfMonths": 6},
            )
        ]
        algoan.get_subscriptions.return_value = [
            SubscriptionResource(id="sub-link", target=TARGET, event_name="aggregator_link_required"),
            SubscriptionResource(id="sub-score", target=TARGET, event_name="score_computed"),
        ]
        algoan.create_subscription.return_value = SubscriptionResource(
            id="sub-bank-new", target=TARGET, event_name="bank_details_required", status="ACTIVE"
        )
        return algoan

    @pytest.mark.asyncio
    async def test_load_registers_service_accounts(self, registry, algoan_resources, settings):
        count = await registry.load()

        assert count == 1
        algoan_resources.authenticate.assert_any_await(settings.algoan_client_id, settings.algoan_client_secret)
        algoan_resources.authenticate.assert_any_await("tenant-client", "tenant-secret")

        service_account = registry.get_service_account_by_subscription_id("sub-link")
        assert service_account.id == "sa-1"
        assert service_account.config.client_id == "bridge-id"
        assert service_account.config.nb_of_months == 6

    @pytest.mark.asyncio
    async def test_missing_subscription_is_created(self, registry, algoan_resources, settings):
        await registry.load()

        algoan_resources.create_subscription.assert_awaited_once_with(
            algoan_resources.authenticate.return_value,
            target=settings.hooks_target_url,
            event_name="bank_details_required",
            secret=HOOKS_SECRET,
        )
        service_account = registry.get_service_account_by_subscription_id("sub-bank-new")
        assert service_account.find_subscription("sub-bank-new").event_name == "bank_details_required"

    @pytest.mark.asyncio
    async def test_other_events_are_indexed_but_not_handled(self, registry, algoan_resources):
        await registry.load()

        service_account = registry.get_service_account_by_subscription_id("sub-score")
        assert service_account is not None
        assert service_account.find_subscription("sub-score") is None
        assert [s.id for s in service_account.subscriptions] == ["sub-link", "sub-bank-new"]

    @pytest.mark.asyncio
    async def test_fully_subscribed_account_creates_nothing(self, registry, algoan_resources):
        algoan_resources.get_subscriptions.return_value = [
            SubscriptionResource(id="sub-link", target=TARGET, event_name="aggregator_link_required"),
            SubscriptionResource(id="sub-bank", target=TARGET, event_name="bank_details_required"),
        ]

        await registry.load()

        algoan_resources.create_subscription.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_subscription_resolves_to_nothing(self, registry, algoan_resources):
        await registry.load()

        assert registry.get_service_account_by_subscription_id("sub-unknown") is None
