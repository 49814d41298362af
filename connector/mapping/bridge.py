"""
Bridge → Algoan mapping.

Bank names and transaction categories are separate Bridge resources; both
are resolved through the client and memoized in a dict owned by the caller,
so one synchronization never asks twice for the same resource.
"""
import datetime
from typing import TYPE_CHECKING, Optional, Union

from connector.bridge_schemas import BridgeAccount, BridgeTransaction, BridgeUserInformation
from connector.logging import get_logger
from connector.schemas import (
    AccountBank,
    AccountDetails,
    AccountLoan,
    AccountLoanType,
    AccountOwner,
    AccountType,
    AccountUsage,
    AggregatorConfig,
    AggregatorReference,
    AnalysisAccount,
    AnalysisTransaction,
    TransactionDates,
)

if TYPE_CHECKING:
    from connector.services.bridge_client import BridgeClient

logger = get_logger(__name__)

ACCOUNT_TYPES = {
    "checking": AccountType.CHECKING,
    "savings": AccountType.SAVINGS,
    "shared_saving_plan": AccountType.SAVINGS,
    "life_insurance": AccountType.SAVINGS,
    "loan": AccountType.LOAN,
    "card": AccountType.CREDIT_CARD,
}


def to_iso_datetime(value: Union[str, datetime.date, None]) -> Optional[str]:
    """Render a Bridge day (YYYY-MM-DD) as a UTC midnight ISO 8601 timestamp."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.date.fromisoformat(value[:10])
    return f"{value.isoformat()}T00:00:00.000Z"


def map_owners(user_info: list[BridgeUserInformation]) -> Optional[list[AccountOwner]]:
    owners = [
        AccountOwner(name=f"{info.first_name or ''} {info.last_name or ''}".strip())
        for info in user_info
    ]
    return [owner for owner in owners if owner.name] or None


def map_loan(account: BridgeAccount) -> Optional[AccountDetails]:
    loan = account.loan_details
    if account.type != "loan" or loan is None:
        return None

    interest_rate = None
    if loan.interest_rate is not None:
        # Bridge sends a percentage, Algoan expects a ratio
        interest_rate = round(loan.interest_rate / 100, 6)

    return AccountDetails(
        loan=AccountLoan(
            amount=loan.borrowed_capital,
            start_date=to_iso_datetime(loan.opening_date),
            end_date=to_iso_datetime(loan.maturity_date),
            payment=loan.next_payment_amount,
            interest_rate=interest_rate,
            remaining_capital=loan.remaining_capital,
            type=AccountLoanType.OTHER,
        )
    )


async def map_bridge_accounts(
    accounts: list[BridgeAccount],
    user_info: list[BridgeUserInformation],
    access_token: str,
    bridge: "BridgeClient",
    config: AggregatorConfig,
    bank_names: Optional[dict[str, str]] = None,
) -> list[AnalysisAccount]:
    """
    Map Bridge accounts to Algoan analysis accounts.

    Args:
        accounts: Accounts returned by Bridge
        user_info: Personal information, possibly empty
        access_token: User-scoped Bridge token used to resolve banks
        bridge: Bridge client
        config: Tenant Bridge configuration
        bank_names: Memo of bank resource URI to bank name

    Returns:
        Analysis accounts, without transactions
    """
    bank_names = {} if bank_names is None else bank_names
    owners = map_owners(user_info)
    mapped: list[AnalysisAccount] = []

    for account in accounts:
        bank = None
        if account.bank is not None:
            name = None
            if account.bank.resource_uri:
                if account.bank.resource_uri not in bank_names:
                    information = await bridge.get_bank_information(
                        access_token, account.bank.resource_uri, config
                    )
                    bank_names[account.bank.resource_uri] = information.name
                name = bank_names[account.bank.resource_uri]
            bank = AccountBank(id=str(account.bank.id), name=name)

        mapped.append(
            AnalysisAccount(
                balance=account.balance,
                balance_date=account.updated_at,
                currency=account.currency_code,
                type=ACCOUNT_TYPES.get(account.type, AccountType.CHECKING),
                usage=AccountUsage.PROFESSIONAL if account.is_pro else AccountUsage.PERSONAL,
                owners=owners,
                iban=account.iban,
                name=account.name,
                bank=bank,
                details=map_loan(account),
                aggregator=AggregatorReference(id=str(account.id)),
            )
        )

    logger.debug("bridge_accounts_mapped", account_count=len(mapped))
    return mapped


async def map_bridge_transactions(
    transactions: list[BridgeTransaction],
    access_token: str,
    bridge: "BridgeClient",
    config: AggregatorConfig,
    categories: Optional[dict[str, str]] = None,
) -> list[AnalysisTransaction]:
    """Map Bridge transactions to Algoan analysis transactions, keeping their order."""
    categories = {} if categories is None else categories
    mapped: list[AnalysisTransaction] = []

    for transaction in transactions:
        category = None
        if transaction.category is not None and transaction.category.resource_uri:
            uri = transaction.category.resource_uri
            if uri not in categories:
                categories[uri] = await bridge.get_resource_name(access_token, uri, config)
            category = categories[uri]

        mapped.append(
            AnalysisTransaction(
                dates=TransactionDates(debited_at=to_iso_datetime(transaction.date)),
                description=transaction.raw_description or transaction.description or "",
                amount=transaction.amount,
                currency=transaction.currency_code,
                is_coming=transaction.is_future,
                aggregator=AggregatorReference(id=str(transaction.id), category=category),
            )
        )

    return mapped
