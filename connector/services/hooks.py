"""Authentication and dispatch of Algoan subscription events."""
import asyncio
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from connector.errors import UnauthorizedError, UnsupportedAggregationModeError
from connector.logging import TimedOperation, get_logger, set_event_context
from connector.schemas import (
    AggregationDetails,
    AggregationDetailsAggregatorName,
    AggregationDetailsMode,
    AggregatorLinkRequired,
    BankDetailsRequired,
    CustomerUpdate,
    EventStatus,
    InboundEvent,
)
from connector.services.algoan_client import AlgoanClient
from connector.services.bridge_client import BridgeClient
from connector.services.registry import ServiceAccount, ServiceAccountRegistry, Subscription
from connector.services.synchronization import BankDetailsSynchronizer
from connector import metrics

logger = get_logger(__name__)

Handler = Callable[[ServiceAccount, object], Awaitable[None]]


class HooksService:
    """
    Service for handling Algoan webhooks.

    The webhook call only authenticates the event: the workflow runs in a
    separate asyncio task so Algoan gets its response immediately. That task
    owns the event acknowledgment:
    - PROCESSED when the workflow completes
    - ERROR when it raises (the exception is then logged by the task callback)
    - FAILED when no workflow handles the event
    """

    def __init__(
        self,
        registry: ServiceAccountRegistry,
        algoan: AlgoanClient,
        bridge: BridgeClient,
        synchronizer: Optional[BankDetailsSynchronizer] = None,
    ):
        self.registry = registry
        self.algoan = algoan
        self.bridge = bridge
        self.synchronizer = synchronizer or BankDetailsSynchronizer(algoan, bridge)
        self._tasks: set[asyncio.Task] = set()
        self._handlers: dict[type, Handler] = {
            AggregatorLinkRequired: self.handle_aggregator_link_required,
            BankDetailsRequired: self.handle_bank_details_required,
        }

    async def handle_webhook(self, event: InboundEvent, signature: Optional[str]) -> Optional[asyncio.Task]:
        """
        Authenticate an event and start processing it.

        Args:
            event: Event received on POST /hooks
            signature: X-Hub-Signature header

        Returns:
            The dispatch task, or None when the event is not for us

        Raises:
            UnauthorizedError: Unknown subscription or invalid signature
        """
        subscription_id = event.subscription.id
        service_account = self.registry.get_service_account_by_subscription_id(subscription_id)

        if service_account is None:
            metrics.record_webhook(event.event_name, "unauthorized")
            raise UnauthorizedError(f"No service account found for subscription {subscription_id}")

        logger.debug("service_account_found", subscription_id=subscription_id, service_account_id=service_account.id)

        subscription = service_account.find_subscription(subscription_id)
        if subscription is None:
            metrics.record_webhook(event.event_name, "ignored")
            logger.info("webhook_ignored", subscription_id=subscription_id, event_name=event.event_name)
            return None

        if not subscription.validate_signature(signature, event.payload):
            metrics.record_webhook(event.event_name, "unauthorized")
            raise UnauthorizedError("Invalid X-Hub-Signature: you cannot call this API")

        metrics.record_webhook(event.event_name, "accepted")

        task = asyncio.create_task(self.dispatch(event, subscription, service_account))
        self._tasks.add(task)
        metrics.EVENTS_IN_FLIGHT.inc()
        task.add_done_callback(self._on_dispatch_done)
        return task

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        metrics.EVENTS_IN_FLIGHT.dec()

        if task.cancelled():
            logger.warning("event_dispatch_cancelled")
            return

        error = task.exception()
        if error is not None:
            logger.error("event_dispatch_failed", error=str(error), exc_info=error)

    async def dispatch(self, event: InboundEvent, subscription: Subscription, service_account: ServiceAccount) -> None:
        """Route an authenticated event to its workflow and acknowledge it."""
        set_event_context(event.id, event.payload.get("customerId"))
        subscription_event = subscription.event(event.id)

        try:
            typed = event.to_typed()
        except ValidationError as e:
            logger.error("event_payload_invalid", event_name=event.event_name, error=str(e))
            typed = None

        handler = self._handlers.get(type(typed))
        if handler is None:
            logger.error("event_not_routable", event_name=event.event_name)
            await subscription_event.update(EventStatus.FAILED)
            return

        logger.info("event_dispatched", event_name=event.event_name)

        try:
            await handler(service_account, typed)
        except Exception:
            await subscription_event.update(EventStatus.ERROR)
            raise

        await subscription_event.update(EventStatus.PROCESSED)

    async def drain(self) -> None:
        """Wait for every in-flight dispatch task."""
        if self._tasks:
            logger.info("draining_events", in_flight=len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def handle_aggregator_link_required(
        self, service_account: ServiceAccount, payload: AggregatorLinkRequired
    ) -> None:
        """
        Generate a Bridge Connect URL and store it on the customer.

        Only the REDIRECT mode is supported.
        """
        with TimedOperation("aggregator_link", logger, customer_id=payload.customer_id):
            credentials = await self.algoan.authenticate(service_account.client_id, service_account.client_secret)

            customer = await self.algoan.get_customer_by_id(credentials, payload.customer_id)
            logger.debug("customer_found", customer_id=customer.id)

            mode = customer.aggregation_details.mode
            if mode != AggregationDetailsMode.REDIRECT.value:
                raise UnsupportedAggregationModeError(mode)

            aggregation_details = AggregationDetails(
                aggregator_name=AggregationDetailsAggregatorName.BRIDGE.value,
                redirect_url=await self.bridge.generate_redirect_url(
                    customer.id,
                    customer.aggregation_details.callback_url,
                    customer.email,
                    service_account.config,
                ),
            )

            await self.algoan.update_customer(
                credentials, payload.customer_id, CustomerUpdate(aggregation_details=aggregation_details)
            )

    async def handle_bank_details_required(
        self, service_account: ServiceAccount, payload: BankDetailsRequired
    ) -> None:
        """Synchronize the customer's bank accounts and transactions into the analysis."""
        await self.synchronizer.synchronize(service_account, payload)
