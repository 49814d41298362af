"""Client for the Bridge API to fetch bank accounts and transactions."""
import hashlib
import hmac
from typing import Any, Optional

import httpx

from connector.config import settings
from connector.errors import BridgeApiError
from connector.logging import get_logger
from connector.schemas import AggregatorConfig
from connector.bridge_schemas import (
    AuthenticationResponse,
    BridgeAccount,
    BridgeBank,
    BridgeCategory,
    BridgeRefreshStatus,
    BridgeTransaction,
    BridgeUserInformation,
    UserAccount,
)
from connector.services.http import HttpApiClient

logger = get_logger(__name__)


def _resources(data: Any) -> list[dict]:
    """Bridge wraps lists in {"resources": [...]}; some endpoints return bare lists."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return data.get("resources", [])


class BridgeClient(HttpApiClient):
    """
    Client for the Bridge aggregation API.

    Each Algoan customer maps to one Bridge user whose email and password are
    derived from the customer id, so the user can be authenticated again and
    deleted without storing anything locally.
    """

    service = "Bridge"
    error_class = BridgeApiError

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url or settings.bridge_base_url, timeout, transport)

    def _headers(self, config: AggregatorConfig, access_token: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Bridge-Version": config.bankin_version or settings.bridge_version,
            "Client-Id": config.client_id or settings.bridge_client_id or "",
            "Client-Secret": config.client_secret or settings.bridge_client_secret or "",
        }
        if access_token is not None:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def user_email(self, customer_id: str) -> str:
        return f"{customer_id}@{settings.bridge_user_email_domain}"

    def user_password(self, customer_id: str, config: AggregatorConfig) -> str:
        """Derive a stable Bridge password for a customer."""
        key = (config.client_secret or settings.bridge_client_secret or "").encode()
        return hmac.new(key, customer_id.encode(), hashlib.sha256).hexdigest()

    async def register_user(self, customer_id: str, config: AggregatorConfig) -> None:
        """Create the Bridge user; an existing user (409) is left as is."""
        await self._request(
            "register_user",
            "POST",
            "/v2/users",
            headers=self._headers(config),
            json={
                "email": self.user_email(customer_id),
                "password": self.user_password(customer_id, config),
            },
            ignore_status=(409,),
        )

    async def authenticate(self, customer_id: str, config: AggregatorConfig) -> AuthenticationResponse:
        data = await self._request(
            "authenticate",
            "POST",
            "/v2/authenticate",
            headers=self._headers(config),
            json={
                "email": self.user_email(customer_id),
                "password": self.user_password(customer_id, config),
            },
        )
        return AuthenticationResponse.model_validate(data)

    async def get_access_token(self, customer_id: str, config: AggregatorConfig) -> AuthenticationResponse:
        """
        Get a user-scoped access token, creating the Bridge user if needed.

        Args:
            customer_id: Algoan customer identifier
            config: Tenant Bridge configuration

        Returns:
            AuthenticationResponse with access_token and user.uuid
        """
        await self.register_user(customer_id, config)
        return await self.authenticate(customer_id, config)

    async def generate_redirect_url(
        self,
        customer_id: str,
        callback_url: Optional[str],
        email: Optional[str],
        config: AggregatorConfig,
    ) -> str:
        """Get a Bridge Connect URL where the customer links a bank."""
        authentication = await self.get_access_token(customer_id, config)

        body: dict[str, Any] = {"country": "fr", "context": customer_id}
        if email:
            body["prefill_email"] = email
        if callback_url:
            body["callback_url"] = callback_url

        data = await self._request(
            "connect_item",
            "POST",
            "/v2/connect/items/add",
            headers=self._headers(config, authentication.access_token),
            json=body,
        )
        return data["redirect_url"]

    async def refresh(self, item_id: str, access_token: str, config: AggregatorConfig) -> None:
        """Ask Bridge to pull fresh data from the bank behind an item."""
        await self._request(
            "refresh_item",
            "POST",
            f"/v2/items/{item_id}/refresh",
            headers=self._headers(config, access_token),
        )

    async def get_refresh_status(
        self, item_id: str, access_token: str, config: AggregatorConfig
    ) -> BridgeRefreshStatus:
        data = await self._request(
            "get_refresh_status",
            "GET",
            f"/v2/items/{item_id}/refresh/status",
            headers=self._headers(config, access_token),
        )
        return BridgeRefreshStatus.model_validate(data or {})

    async def get_accounts(self, access_token: str, config: AggregatorConfig) -> list[BridgeAccount]:
        """Fetch every account of the user, following pagination."""
        accounts: list[BridgeAccount] = []
        url: Optional[str] = "/v2/accounts"

        while url:
            data = await self._request(
                "get_accounts", "GET", url, headers=self._headers(config, access_token)
            )
            accounts.extend(BridgeAccount.model_validate(item) for item in _resources(data))
            pagination = data.get("pagination") if isinstance(data, dict) else None
            url = (pagination or {}).get("next_uri")

        return accounts

    async def get_user_personal_information(
        self, access_token: str, config: AggregatorConfig
    ) -> list[BridgeUserInformation]:
        data = await self._request(
            "get_user_personal_information",
            "GET",
            "/v2/users/kyc",
            headers=self._headers(config, access_token),
        )
        return [BridgeUserInformation.model_validate(item) for item in _resources(data)]

    async def get_transactions(
        self,
        access_token: str,
        since: Optional[str],
        config: AggregatorConfig,
    ) -> list[BridgeTransaction]:
        """
        Fetch one page of transactions updated after a cursor.

        Args:
            access_token: User-scoped token
            since: updated_at of the last transaction already seen, or None for the first page
            config: Tenant Bridge configuration

        Returns:
            Transactions of the page, in Bridge order
        """
        params: dict[str, Any] = {"limit": settings.transactions_page_size}
        if since is not None:
            params["since"] = since

        data = await self._request(
            "get_transactions",
            "GET",
            "/v2/transactions/updated",
            headers=self._headers(config, access_token),
            params=params,
        )
        return [BridgeTransaction.model_validate(item) for item in _resources(data)]

    async def get_bank_information(
        self, access_token: str, resource_uri: str, config: AggregatorConfig
    ) -> BridgeBank:
        data = await self._request(
            "get_bank", "GET", resource_uri, headers=self._headers(config, access_token)
        )
        return BridgeBank.model_validate(data)

    async def get_resource_name(
        self, access_token: str, resource_uri: str, config: AggregatorConfig
    ) -> str:
        """Resolve the name of a category resource."""
        data = await self._request(
            "get_category", "GET", resource_uri, headers=self._headers(config, access_token)
        )
        return BridgeCategory.model_validate(data).name

    async def delete_user(self, user: UserAccount, config: AggregatorConfig) -> None:
        """Delete the Bridge user and every item linked to it."""
        await self._request(
            "delete_user",
            "DELETE",
            f"/v2/users/{user.bridge_user_id}",
            headers=self._headers(config, user.access_token),
            json={"password": self.user_password(user.id, config)},
        )

        logger.info("bridge_user_deleted", customer_id=user.id, bridge_user_id=user.bridge_user_id)
