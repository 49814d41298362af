"""Pydantic schemas for Algoan events, customers and analyses."""
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model reading and writing Algoan's camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict[str, Any]:
        """Serialize for an Algoan request body."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =============================================================================
# EVENTS
# =============================================================================


class EventName(str, Enum):
    """Subscription events handled by the connector."""
    AGGREGATOR_LINK_REQUIRED = "aggregator_link_required"
    BANK_DETAILS_REQUIRED = "bank_details_required"


class EventStatus(str, Enum):
    """Terminal acknowledgment statuses of a subscription event."""
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"
    FAILED = "FAILED"


class AggregatorLinkRequired(CamelModel):
    """Payload of the "aggregator_link_required" event."""
    customer_id: str


class BankDetailsRequired(CamelModel):
    """Payload of the "bank_details_required" event."""
    customer_id: str
    analysis_id: str


TypedEvent = Union[AggregatorLinkRequired, BankDetailsRequired]

EVENT_PAYLOADS: dict[str, type[CamelModel]] = {
    EventName.AGGREGATOR_LINK_REQUIRED.value: AggregatorLinkRequired,
    EventName.BANK_DETAILS_REQUIRED.value: BankDetailsRequired,
}


class EventSubscription(CamelModel):
    """Subscription block of an inbound event."""
    id: str
    event_name: EventName
    target: Optional[str] = None
    status: Optional[str] = None


class InboundEvent(CamelModel):
    """Request body for POST /hooks."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., description="Subscription event identifier")
    subscription: EventSubscription
    index: Optional[int] = None
    time: Optional[int] = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_payload(self) -> "InboundEvent":
        self.to_typed()
        return self

    @property
    def event_name(self) -> str:
        name = self.subscription.event_name
        return name.value if isinstance(name, EventName) else str(name)

    def to_typed(self) -> Optional[TypedEvent]:
        """
        Convert the raw payload into the variant matching the event name.

        Returns:
            The typed payload, or None for an event name we do not handle
        """
        payload_model = EVENT_PAYLOADS.get(self.event_name)
        if payload_model is None:
            return None
        return payload_model.model_validate(self.payload)


# =============================================================================
# SERVICE ACCOUNTS & SUBSCRIPTIONS
# =============================================================================


class AggregatorConfig(CamelModel):
    """
    Per-tenant Bridge configuration stored on the Algoan service account.

    Unset polling values fall back to the application settings.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    bankin_version: Optional[str] = None
    nb_of_months: Optional[int] = Field(default=None, gt=0)
    synchronization_timeout: Optional[float] = Field(default=None, ge=0)
    synchronization_waiting_time: Optional[float] = Field(default=None, ge=0)


class ServiceAccountResource(CamelModel):
    """Service account as returned by GET /v1/service-accounts."""
    id: str
    client_id: str
    client_secret: str
    config: Optional[dict[str, Any]] = None


class SubscriptionResource(CamelModel):
    """Subscription as returned by GET /v1/subscriptions."""
    id: str
    target: str
    event_name: str
    status: Optional[str] = None


# =============================================================================
# CUSTOMERS
# =============================================================================


class AggregationDetailsMode(str, Enum):
    REDIRECT = "REDIRECT"
    API = "API"
    IFRAME = "IFRAME"


class AggregationDetailsAggregatorName(str, Enum):
    BRIDGE = "BRIDGE"


class AggregationDetails(CamelModel):
    aggregator_name: Optional[str] = None
    mode: Optional[str] = None
    callback_url: Optional[str] = None
    redirect_url: Optional[str] = None
    user_id: Optional[str] = None


class Contact(CamelModel):
    email: Optional[str] = None


class PersonalDetails(CamelModel):
    contact: Optional[Contact] = None


class Customer(CamelModel):
    """Customer as returned by GET /v2/customers/{id}."""
    id: str
    aggregation_details: AggregationDetails = Field(default_factory=AggregationDetails)
    personal_details: Optional[PersonalDetails] = None

    @property
    def email(self) -> Optional[str]:
        if self.personal_details and self.personal_details.contact:
            return self.personal_details.contact.email
        return None


class CustomerUpdate(CamelModel):
    """Request body for PUT /v2/customers/{id}."""
    aggregation_details: AggregationDetails


# =============================================================================
# ANALYSES
# =============================================================================


class AnalysisStatus(str, Enum):
    CREATED = "CREATED"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class ErrorCodes(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AccountType(str, Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    LOAN = "LOAN"
    CREDIT_CARD = "CREDIT_CARD"


class AccountUsage(str, Enum):
    PERSONAL = "PERSONAL"
    PROFESSIONAL = "PROFESSIONAL"


class AccountLoanType(str, Enum):
    OTHER = "OTHER"


class AccountOwner(CamelModel):
    name: str


class AccountBank(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None


class AccountLoan(CamelModel):
    amount: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    payment: Optional[float] = None
    interest_rate: Optional[float] = None
    remaining_capital: Optional[float] = None
    type: Optional[AccountLoanType] = None


class AccountDetails(CamelModel):
    loan: Optional[AccountLoan] = None


class AggregatorReference(CamelModel):
    id: str
    category: Optional[str] = None


class TransactionDates(CamelModel):
    debited_at: Optional[str] = None
    booked_at: Optional[str] = None


class AnalysisTransaction(CamelModel):
    dates: TransactionDates
    description: str
    amount: float
    currency: str
    is_coming: bool = False
    aggregator: Optional[AggregatorReference] = None


class AnalysisAccount(CamelModel):
    balance: float
    balance_date: str
    currency: str
    type: AccountType
    usage: AccountUsage
    owners: Optional[list[AccountOwner]] = None
    iban: Optional[str] = None
    name: Optional[str] = None
    bank: Optional[AccountBank] = None
    details: Optional[AccountDetails] = None
    aggregator: Optional[AggregatorReference] = None
    transactions: Optional[list[AnalysisTransaction]] = None


class AnalysisError(CamelModel):
    code: ErrorCodes
    message: str


class AnalysisUpdate(CamelModel):
    """Request body for PATCH /v2/customers/{customerId}/analyses/{analysisId}."""
    accounts: Optional[list[AnalysisAccount]] = None
    status: Optional[AnalysisStatus] = None
    error: Optional[AnalysisError] = None
