"""Pydantic schemas for Bridge API resources."""
import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BridgeModel(BaseModel):
    """Base model for Bridge resources; unknown fields are ignored."""
    model_config = ConfigDict(extra="ignore")


class BridgeUser(BridgeModel):
    uuid: str
    email: Optional[str] = None


class AuthenticationResponse(BridgeModel):
    """Response of POST /v2/authenticate."""
    access_token: str
    expires_at: Optional[str] = None
    user: BridgeUser


class UserAccount(BridgeModel):
    """Identifies the Bridge user created for an Algoan customer."""
    bridge_user_id: str
    id: str  # Algoan customer id
    access_token: str


class BridgeResourceRef(BridgeModel):
    id: int
    resource_uri: Optional[str] = None
    resource_type: Optional[str] = None


class BridgeLoanDetails(BridgeModel):
    next_payment_date: Optional[str] = None
    next_payment_amount: Optional[float] = None
    maturity_date: Optional[str] = None
    opening_date: Optional[str] = None
    interest_rate: Optional[float] = None
    type: Optional[str] = None
    borrowed_capital: Optional[float] = None
    repaid_capital: Optional[float] = None
    remaining_capital: Optional[float] = None


class BridgeAccount(BridgeModel):
    id: int
    name: Optional[str] = None
    balance: float
    status: Optional[int] = None
    updated_at: str
    type: str
    currency_code: str
    item: Optional[BridgeResourceRef] = None
    bank: Optional[BridgeResourceRef] = None
    loan_details: Optional[BridgeLoanDetails] = None
    is_pro: bool = False
    iban: Optional[str] = None


class BridgeTransaction(BridgeModel):
    id: int
    description: Optional[str] = None
    raw_description: Optional[str] = None
    amount: float
    date: datetime.date
    updated_at: Optional[str] = None
    currency_code: str
    is_deleted: bool = False
    category: Optional[BridgeResourceRef] = None
    account: BridgeResourceRef
    is_future: bool = False


class BridgeRefreshStatus(BridgeModel):
    status: Optional[str] = None
    refreshed_at: Optional[str] = None
    refreshed_accounts_count: Optional[int] = None
    total_accounts_count: Optional[int] = None


class BridgeUserInformation(BridgeModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    birth_date: Optional[str] = None
    is_pro: Optional[bool] = None


class BridgeBank(BridgeModel):
    id: int
    name: str


class BridgeCategory(BridgeModel):
    id: int
    name: str
