"""
Tests for webhook authentication, dispatch and event acknowledgment.

Dispatch runs in a background task: tests await the task returned by
handle_webhook before checking what it did.
"""
import httpx
import pytest

from connector.errors import AlgoanApiError, BridgeApiError, UnauthorizedError, UnsupportedAggregationModeError
from connector.schemas import (
    AnalysisStatus,
    Customer,
    CustomerUpdate,
    EventStatus,
    EventSubscription,
    InboundEvent,
)
from connector.services.algoan_client import AlgoanClient
from connector.services.registry import Subscription
from tests.conftest import HOOKS_SECRET, make_event, sign

LINK_PAYLOAD = {"customerId": "customer-1"}
BANK_PAYLOAD = {"customerId": "customer-1", "analysisId": "analysis-1"}
REDIRECT_URL = "https://connect.bridgeapi.io/session/abc"


def make_customer(mode: str = "REDIRECT") -> Customer:
    return Customer.model_validate({
        "id": "customer-1",
        "aggregationDetails": {"mode": mode, "callbackUrl": "https://app.example.com/callback"},
        "personalDetails": {"contact": {"email": "jane@example.com"}},
    })


def unrouted_event(event_name: str, payload: dict) -> InboundEvent:
    """Build an event the HTTP layer would have rejected."""
    return InboundEvent.model_construct(
        id="event-1",
        subscription=EventSubscription.model_construct(id="sub-link", event_name=event_name),
        payload=payload,
    )


class TestWebhookAuthentication:
    """Events are authenticated before anything runs."""

    @pytest.mark.asyncio
    async def test_unknown_subscription_is_unauthorized(self, hooks, algoan):
        event = make_event("sub-unknown", "aggregator_link_required", LINK_PAYLOAD)

        with pytest.raises(UnauthorizedError):
            await hooks.handle_webhook(event, sign(LINK_PAYLOAD))

        algoan.update_event_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_signature_is_unauthorized(self, hooks, algoan):
        event = make_event("sub-link", "aggregator_link_required", LINK_PAYLOAD)

        with pytest.raises(UnauthorizedError) as exc_info:
            await hooks.handle_webhook(event, "sha256=deadbeef")

        assert exc_info.value.detail == "Invalid X-Hub-Signature: you cannot call this API"
        algoan.update_event_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_signature_is_unauthorized(self, hooks):
        event = make_event("sub-link", "aggregator_link_required", LINK_PAYLOAD)

        with pytest.raises(UnauthorizedError):
            await hooks.handle_webhook(event, None)

    @pytest.mark.asyncio
    async def test_signature_over_other_payload_is_unauthorized(self, hooks):
        event = make_event("sub-link", "aggregator_link_required", LINK_PAYLOAD)

        with pytest.raises(UnauthorizedError):
            await hooks.handle_webhook(event, sign({"customerId": "customer-2"}))

    @pytest.mark.asyncio
    async def test_unhandled_subscription_of_known_account_is_ignored(self, hooks, algoan):
        """A subscription for an event we do not handle is acknowledged with no work and no status update."""
        event = make_event("sub-other", "aggregator_link_required", LINK_PAYLOAD)

        task = await hooks.handle_webhook(event, sign(LINK_PAYLOAD))

        assert task is None
        algoan.update_event_status.assert_not_awaited()


class TestAggregatorLinkRequired:
    """Generating the Bridge Connect redirect URL."""

    @pytest.mark.asyncio
    async def test_redirect_url_is_stored_on_customer(self, hooks, algoan, bridge, service_account):
        algoan.get_customer_by_id.return_value = make_customer()
        bridge.generate_redirect_url.return_value = REDIRECT_URL
        event = make_event("sub-link", "aggregator_link_required", LINK_PAYLOAD)

        task = await hooks.handle_webhook(event, sign(LINK_PAYLOAD))
        await task

        credentials = algoan.authenticate.return_value
        algoan.authenticate.assert_any_await("algoan-client-id", "algoan-client-secret")
        bridge.generate_redirect_url.assert_awaited_once_with(
            "customer-1",
            "https://app.example.com/callback",
            "jane@example.com",
            service_account.config,
        )

        update: CustomerUpdate = algoan.update_customer.await_args.args[2]
        assert update.aggregation_details.aggregator_name == "BRIDGE"
        assert update.aggregation_details.redirect_url == REDIRECT_URL
        assert update.to_api() == {
            "aggregationDetails": {"aggregatorName": "BRIDGE", "redirectUrl": REDIRECT_URL}
        }

        algoan.update_event_status.assert_awaited_once_with(
            credentials, "sub-link", "event-1", EventStatus.PROCESSED
        )

    @pytest.mark.asyncio
    async def test_unsupported_mode_acknowledges_error(self, hooks, algoan, bridge):
        algoan.get_customer_by_id.return_value = make_customer(mode="API")
        event = make_event("sub-link", "aggregator_link_required", LINK_PAYLOAD)

        task = await hooks.handle_webhook(event, sign(LINK_PAYLOAD))
        with pytest.raises(UnsupportedAggregationModeError):
            await task

        bridge.generate_redirect_url.assert_not_awaited()
        algoan.update_customer.assert_not_awaited()
        algoan.update_event_status.assert_awaited_once()
        assert algoan.update_event_status.await_args.args[3] == EventStatus.ERROR


class TestBankDetailsRequired:
    """Dispatching the synchronization workflow."""

    @pytest.mark.asyncio
    async def test_successful_sync_acknowledges_processed(self, hooks, algoan, bridge):
        algoan.get_customer_by_id.return_value = make_customer()
        event = make_event("sub-bank", "bank_details_required", BANK_PAYLOAD, event_id="event-2")

        task = await hooks.handle_webhook(event, sign(BANK_PAYLOAD))
        await task

        algoan.update_analysis.assert_awaited_once()
        bridge.delete_user.assert_awaited_once()
        algoan.update_event_status.assert_awaited_once_with(
            algoan.authenticate.return_value, "sub-bank", "event-2", EventStatus.PROCESSED
        )

    @pytest.mark.asyncio
    async def test_sync_failure_flags_analysis_and_acknowledges_error(self, hooks, algoan, bridge):
        algoan.get_customer_by_id.return_value = make_customer()
        bridge.get_transactions.side_effect = BridgeApiError(503, "unavailable")
        event = make_event("sub-bank", "bank_details_required", BANK_PAYLOAD)

        task = await hooks.handle_webhook(event, sign(BANK_PAYLOAD))
        with pytest.raises(BridgeApiError):
            await task

        algoan.update_analysis.assert_awaited_once()
        assert algoan.update_analysis.await_args.args[3].status == AnalysisStatus.ERROR
        assert algoan.update_event_status.await_args.args[3] == EventStatus.ERROR
        bridge.delete_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_drain_waits_for_in_flight_events(self, hooks, algoan):
        algoan.get_customer_by_id.return_value = make_customer()
        event = make_event("sub-bank", "bank_details_required", BANK_PAYLOAD)

        await hooks.handle_webhook(event, sign(BANK_PAYLOAD))
        await hooks.drain()

        algoan.update_event_status.assert_awaited_once()
        assert hooks._tasks == set()


class TestUnroutableEvents:
    """Events with no workflow are acknowledged FAILED."""

    @pytest.mark.asyncio
    async def test_unknown_event_name_acknowledges_failed(self, hooks, algoan):
        event = unrouted_event("unknown_event", {})

        task = await hooks.handle_webhook(event, sign({}))
        await task

        algoan.update_event_status.assert_awaited_once()
        assert algoan.update_event_status.await_args.args[3] == EventStatus.FAILED
        algoan.get_customer_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_payload_acknowledges_failed(self, hooks, algoan):
        payload = {"customerId": "customer-1"}
        event = unrouted_event("bank_details_required", payload)

        task = await hooks.handle_webhook(event, sign(payload))
        await task

        assert algoan.update_event_status.await_args.args[3] == EventStatus.FAILED
        algoan.update_analysis.assert_not_awaited()


class TestEventAcknowledgment:
    """The acknowledgment handle reports one terminal status."""

    @pytest.mark.asyncio
    async def test_repeated_status_is_sent_once(self, service_account, algoan):
        event = service_account.find_subscription("sub-bank").event("event-1")

        await event.update(EventStatus.PROCESSED)
        await event.update(EventStatus.PROCESSED)

        algoan.update_event_status.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_later_status_is_ignored(self, service_account, algoan):
        event = service_account.find_subscription("sub-bank").event("event-1")

        await event.update(EventStatus.ERROR)
        await event.update(EventStatus.PROCESSED)

        algoan.update_event_status.assert_awaited_once()
        assert event.status == EventStatus.ERROR

    @pytest.mark.asyncio
    async def test_failed_report_does_not_raise(self, service_account, algoan):
        algoan.update_event_status.side_effect = AlgoanApiError(500, "boom")
        event = service_account.find_subscription("sub-bank").event("event-1")

        await event.update(EventStatus.PROCESSED)

        assert event.status == EventStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_undecodable_algoan_response_does_not_raise(self, service_account):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        algoan = AlgoanClient(base_url="https://algoan.test", transport=httpx.MockTransport(handler))
        subscription = Subscription("sub-bank", "bank_details_required", HOOKS_SECRET, service_account, algoan)
        event = subscription.event("event-1")

        await event.update(EventStatus.PROCESSED)

        assert event.status == EventStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_failed_report_after_success_leaves_task_successful(self, hooks, algoan):
        algoan.get_customer_by_id.return_value = make_customer()
        algoan.update_event_status.side_effect = RuntimeError("unexpected acknowledgment failure")
        event = make_event("sub-bank", "bank_details_required", BANK_PAYLOAD)

        task = await hooks.handle_webhook(event, sign(BANK_PAYLOAD))
        await task

        assert task.exception() is None
        algoan.update_analysis.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_report_keeps_workflow_error(self, hooks, algoan, bridge):
        algoan.get_customer_by_id.return_value = make_customer()
        bridge.get_transactions.side_effect = BridgeApiError(503, "unavailable")
        algoan.update_event_status.side_effect = RuntimeError("unexpected acknowledgment failure")
        event = make_event("sub-bank", "bank_details_required", BANK_PAYLOAD)

        task = await hooks.handle_webhook(event, sign(BANK_PAYLOAD))
        with pytest.raises(BridgeApiError):
            await task
