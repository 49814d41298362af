"""Service accounts, subscriptions and event acknowledgment handles."""
import hashlib
import hmac
import json
from typing import Any, Optional

from connector.config import Settings, settings as default_settings
from connector.logging import get_logger
from connector.schemas import AggregatorConfig, EventStatus, ServiceAccountResource
from connector.services.algoan_client import AlgoanClient
from connector import metrics

logger = get_logger(__name__)


def sign_payload(secret: str, payload: dict[str, Any]) -> str:
    """Hex HMAC-SHA256 of the compact JSON serialization of a payload."""
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


class SubscriptionEvent:
    """
    Acknowledgment handle for one subscription event.

    The first terminal status is reported to Algoan; later updates never
    reach the API. Reporting is best-effort: a failed call is logged.
    """

    def __init__(self, algoan: AlgoanClient, service_account: "ServiceAccount", subscription_id: str, event_id: str):
        self._algoan = algoan
        self._service_account = service_account
        self.subscription_id = subscription_id
        self.id = event_id
        self.status: Optional[EventStatus] = None

    async def update(self, status: EventStatus) -> None:
        if self.status is not None:
            if self.status != status:
                logger.warning(
                    "event_status_already_reported",
                    event_id=self.id,
                    reported=self.status.value,
                    ignored=status.value,
                )
            return

        self.status = status
        metrics.record_acknowledgment(status.value)

        try:
            credentials = await self._algoan.authenticate(
                self._service_account.client_id, self._service_account.client_secret
            )
            await self._algoan.update_event_status(credentials, self.subscription_id, self.id, status)
        except Exception as e:
            logger.error(
                "event_acknowledgment_failed",
                event_id=self.id,
                subscription_id=self.subscription_id,
                status=status.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        logger.info("event_acknowledged", event_id=self.id, status=status.value)


class Subscription:
    """A registered webhook channel with its signing secret."""

    def __init__(
        self,
        id: str,
        event_name: str,
        secret: str,
        service_account: "ServiceAccount",
        algoan: AlgoanClient,
        target: Optional[str] = None,
        status: Optional[str] = None,
    ):
        self.id = id
        self.event_name = event_name
        self.secret = secret
        self.target = target
        self.status = status
        self._service_account = service_account
        self._algoan = algoan

    def validate_signature(self, signature: Optional[str], payload: dict[str, Any]) -> bool:
        """Check an X-Hub-Signature header against the payload."""
        if not signature:
            return False
        if signature.startswith("sha256="):
            signature = signature[len("sha256="):]
        return hmac.compare_digest(signature, sign_payload(self.secret, payload))

    def event(self, event_id: str) -> SubscriptionEvent:
        return SubscriptionEvent(self._algoan, self._service_account, self.id, event_id)


class ServiceAccount:
    """Tenant credentials, Bridge configuration and handled subscriptions."""

    def __init__(
        self,
        id: str,
        client_id: str,
        client_secret: str,
        config: Optional[AggregatorConfig] = None,
    ):
        self.id = id
        self.client_id = client_id
        self.client_secret = client_secret
        self.config = config or AggregatorConfig()
        self.subscriptions: list[Subscription] = []

    def find_subscription(self, subscription_id: str) -> Optional[Subscription]:
        for subscription in self.subscriptions:
            if subscription.id == subscription_id:
                return subscription
        return None


class ServiceAccountRegistry:
    """
    In-memory view of the Algoan service accounts the connector serves.

    Every subscription of a service account is indexed, but only those whose
    event is in settings.event_list are attached to the account: events from
    the others resolve to an account without a matching subscription.
    """

    def __init__(self, algoan: AlgoanClient, settings: Optional[Settings] = None):
        self.algoan = algoan
        self.settings = settings or default_settings
        self._by_subscription_id: dict[str, ServiceAccount] = {}

    def get_service_account_by_subscription_id(self, subscription_id: str) -> Optional[ServiceAccount]:
        return self._by_subscription_id.get(subscription_id)

    def register(self, service_account: ServiceAccount, subscription_ids: Optional[list[str]] = None) -> None:
        """Index a service account under its subscriptions (and any extra ids)."""
        for subscription in service_account.subscriptions:
            self._by_subscription_id[subscription.id] = service_account
        for subscription_id in subscription_ids or []:
            self._by_subscription_id[subscription_id] = service_account

    def build_subscription(
        self,
        service_account: ServiceAccount,
        id: str,
        event_name: str,
        target: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Subscription:
        return Subscription(
            id=id,
            event_name=event_name,
            secret=self.settings.rest_hooks_secret,
            service_account=service_account,
            algoan=self.algoan,
            target=target,
            status=status,
        )

    async def load(self) -> int:
        """
        Load service accounts from Algoan and make sure each one is
        subscribed to every event the connector handles.

        Returns:
            Number of service accounts registered
        """
        credentials = await self.algoan.authenticate(
            self.settings.algoan_client_id, self.settings.algoan_client_secret
        )
        resources = await self.algoan.get_service_accounts(credentials)

        for resource in resources:
            await self._load_service_account(resource)

        logger.info(
            "service_accounts_loaded",
            service_account_count=len(resources),
            subscription_count=len(self._by_subscription_id),
        )
        return len(resources)

    async def _load_service_account(self, resource: ServiceAccountResource) -> ServiceAccount:
        service_account = ServiceAccount(
            id=resource.id,
            client_id=resource.client_id,
            client_secret=resource.client_secret,
            config=AggregatorConfig.model_validate(resource.config or {}),
        )
        credentials = await self.algoan.authenticate(resource.client_id, resource.client_secret)
        existing = await self.algoan.get_subscriptions(credentials)

        handled = set(self.settings.event_list)
        other_ids: list[str] = []
        for item in existing:
            if item.event_name in handled:
                service_account.subscriptions.append(
                    self.build_subscription(service_account, item.id, item.event_name, item.target, item.status)
                )
            else:
                other_ids.append(item.id)

        subscribed = {subscription.event_name for subscription in service_account.subscriptions}
        for event_name in self.settings.event_list:
            if event_name in subscribed:
                continue
            created = await self.algoan.create_subscription(
                credentials,
                target=self.settings.hooks_target_url,
                event_name=event_name,
                secret=self.settings.rest_hooks_secret,
            )
            logger.info(
                "subscription_created",
                service_account_id=service_account.id,
                subscription_id=created.id,
                event_name=event_name,
            )
            service_account.subscriptions.append(
                self.build_subscription(service_account, created.id, created.event_name, created.target, created.status)
            )

        self.register(service_account, other_ids)
        return service_account
