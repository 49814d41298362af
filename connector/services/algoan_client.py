"""Client for the Algoan API (customers, analyses, subscriptions)."""
from dataclasses import dataclass
from typing import Optional

import httpx

from connector.config import settings
from connector.errors import AlgoanApiError
from connector.logging import get_logger
from connector.schemas import (
    AnalysisUpdate,
    Customer,
    CustomerUpdate,
    EventStatus,
    ServiceAccountResource,
    SubscriptionResource,
)
from connector.services.http import HttpApiClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class AlgoanCredentials:
    """Bearer token obtained for one service account."""
    access_token: str
    expires_in: Optional[int] = None

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class AlgoanClient(HttpApiClient):
    """
    Client for the Algoan REST API.

    Credentials are never stored on the client: `authenticate` returns an
    AlgoanCredentials value that callers pass to every other method.
    """

    service = "Algoan"
    error_class = AlgoanApiError

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url or settings.algoan_base_url, timeout, transport)

    async def authenticate(self, client_id: str, client_secret: str) -> AlgoanCredentials:
        """
        Get an access token with the OAuth client credentials grant.

        Raises:
            AlgoanApiError: If the credentials are rejected
        """
        data = await self._request(
            "authenticate",
            "POST",
            "/v1/oauth/token",
            data={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        return AlgoanCredentials(access_token=data["access_token"], expires_in=data.get("expires_in"))

    async def get_service_accounts(self, credentials: AlgoanCredentials) -> list[ServiceAccountResource]:
        data = await self._request(
            "get_service_accounts", "GET", "/v1/service-accounts", headers=credentials.headers
        )
        return [ServiceAccountResource.model_validate(item) for item in data or []]

    async def get_subscriptions(self, credentials: AlgoanCredentials) -> list[SubscriptionResource]:
        data = await self._request(
            "get_subscriptions", "GET", "/v1/subscriptions", headers=credentials.headers
        )
        return [SubscriptionResource.model_validate(item) for item in data or []]

    async def create_subscription(
        self,
        credentials: AlgoanCredentials,
        target: str,
        event_name: str,
        secret: str,
    ) -> SubscriptionResource:
        data = await self._request(
            "create_subscription",
            "POST",
            "/v1/subscriptions",
            headers=credentials.headers,
            json={"target": target, "eventName": event_name, "secret": secret},
        )
        return SubscriptionResource.model_validate(data)

    async def update_event_status(
        self,
        credentials: AlgoanCredentials,
        subscription_id: str,
        event_id: str,
        status: EventStatus,
    ) -> None:
        """Acknowledge a subscription event with its terminal status."""
        await self._request(
            "update_event_status",
            "PATCH",
            f"/v1/subscriptions/{subscription_id}/events/{event_id}",
            headers=credentials.headers,
            json={"status": status.value},
        )

    async def get_customer_by_id(self, credentials: AlgoanCredentials, customer_id: str) -> Customer:
        data = await self._request(
            "get_customer", "GET", f"/v2/customers/{customer_id}", headers=credentials.headers
        )
        return Customer.model_validate(data)

    async def update_customer(
        self,
        credentials: AlgoanCredentials,
        customer_id: str,
        update: CustomerUpdate,
    ) -> None:
        await self._request(
            "update_customer",
            "PUT",
            f"/v2/customers/{customer_id}",
            headers=credentials.headers,
            json=update.to_api(),
        )

    async def update_analysis(
        self,
        credentials: AlgoanCredentials,
        customer_id: str,
        analysis_id: str,
        update: AnalysisUpdate,
    ) -> None:
        await self._request(
            "update_analysis",
            "PATCH",
            f"/v2/customers/{customer_id}/analyses/{analysis_id}",
            headers=credentials.headers,
            json=update.to_api(),
        )

        logger.info(
            "analysis_updated",
            customer_id=customer_id,
            analysis_id=analysis_id,
            status=update.status.value if update.status else None,
            account_count=len(update.accounts) if update.accounts is not None else None,
        )
