"""
Bank details synchronization.

Pulls a customer's accounts and transactions from Bridge and pushes them
into an Algoan analysis:

1. Authenticate to Algoan with the service account credentials
2. Fetch the customer; an aggregationDetails.userId means a linked Bridge item
3. Get a Bridge access token for the customer
4. For a linked item, trigger a refresh and poll its status
5. Fetch accounts, plus personal information when Bridge provides it
6. Poll transactions until enough history is covered, then attach them
   to their accounts
7. Update the analysis; on any failure, flag the analysis as in error and
   re-raise
8. Delete the Bridge user

Polling never fails on its deadline: the workflow continues with whatever
was observed last.

Concurrent runs for the same customer are not serialized here. Two
"bank_details_required" events for one customer can interleave their
analysis updates and Bridge user deletions.
"""
import datetime
import time
from dataclasses import dataclass, field
from typing import Optional

from connector.bridge_schemas import (
    BridgeRefreshStatus,
    BridgeTransaction,
    BridgeUserInformation,
    UserAccount,
)
from connector.config import Settings, settings as default_settings
from connector.logging import TimedOperation, get_logger
from connector.mapping import map_bridge_accounts, map_bridge_transactions
from connector.schemas import (
    AggregatorConfig,
    AnalysisAccount,
    AnalysisError,
    AnalysisStatus,
    AnalysisUpdate,
    BankDetailsRequired,
    ErrorCodes,
)
from connector.services.algoan_client import AlgoanClient, AlgoanCredentials
from connector.services.bridge_client import BridgeClient
from connector.services.polling import ConvergencePoller
from connector.services.registry import ServiceAccount
from connector import metrics

logger = get_logger(__name__)

REFRESH_FINISHED = "finished"
INTERNAL_ERROR_MESSAGE = "An error occurred when fetching data from the aggregator"


def months_between(earlier: datetime.date, later: datetime.date) -> int:
    """
    Whole calendar months from earlier to later, truncated.

    >>> months_between(datetime.date(2024, 1, 15), datetime.date(2024, 4, 14))
    2
    >>> months_between(datetime.date(2024, 1, 15), datetime.date(2024, 4, 15))
    3
    """
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if later.day < earlier.day:
        months -= 1
    return months


def needs_more_history(transactions: list[BridgeTransaction], nb_of_months: int) -> bool:
    """
    Transaction poller predicate.

    An empty history stops polling: there is nothing older to wait for.
    Otherwise polling goes on while the earliest transaction held is no
    more than nb_of_months old.
    """
    if not transactions:
        return False
    return months_between(transactions[0].date, datetime.date.today()) <= nb_of_months


def refresh_pending(refresh: Optional[BridgeRefreshStatus]) -> bool:
    """Refresh poller predicate."""
    return refresh is None or refresh.status != REFRESH_FINISHED


class TransactionAccumulator:
    """
    Transactions collected across polled pages.

    A transaction delivered again replaces its previous version; the set is
    kept sorted by date, ascending. The cursor is the greatest updated_at
    seen so far.
    """

    def __init__(self):
        self._by_id: dict[int, BridgeTransaction] = {}
        self.transactions: list[BridgeTransaction] = []
        self.cursor: Optional[str] = None

    def add(self, page: list[BridgeTransaction]) -> list[BridgeTransaction]:
        for transaction in page:
            self._by_id[transaction.id] = transaction
            if transaction.updated_at and (self.cursor is None or transaction.updated_at > self.cursor):
                self.cursor = transaction.updated_at

        self.transactions = sorted(self._by_id.values(), key=lambda t: t.date)
        return self.transactions


def partition_transactions(
    accounts: list[AnalysisAccount],
    transactions: list[BridgeTransaction],
) -> list[list[BridgeTransaction]]:
    """Split transactions per account, matching Bridge numeric account ids."""
    partitions = []
    for account in accounts:
        account_id = int(account.aggregator.id) if account.aggregator else None
        partitions.append([t for t in transactions if t.account.id == account_id])
    return partitions


@dataclass
class SyncSession:
    """Working state of one synchronization run."""
    customer_id: str
    analysis_id: str
    nb_of_months: int
    access_token: str = ""
    bridge_user_id: str = ""
    accounts: list[AnalysisAccount] = field(default_factory=list)
    transactions: list[BridgeTransaction] = field(default_factory=list)


class BankDetailsSynchronizer:
    """Runs the "bank_details_required" workflow."""

    def __init__(
        self,
        algoan: AlgoanClient,
        bridge: BridgeClient,
        poller: Optional[ConvergencePoller] = None,
        settings: Optional[Settings] = None,
    ):
        self.algoan = algoan
        self.bridge = bridge
        self.poller = poller or ConvergencePoller()
        self.settings = settings or default_settings

    def _timeout(self, config: AggregatorConfig) -> float:
        if config.synchronization_timeout is not None:
            return config.synchronization_timeout
        return self.settings.synchronization_timeout

    def _waiting_time(self, config: AggregatorConfig) -> float:
        if config.synchronization_waiting_time is not None:
            return config.synchronization_waiting_time
        return self.settings.synchronization_waiting_time

    async def synchronize(self, service_account: ServiceAccount, payload: BankDetailsRequired) -> None:
        """
        Synchronize bank details into the analysis.

        Raises:
            Exception: Whatever failed; the analysis has been flagged as in error first
        """
        config = service_account.config
        credentials: Optional[AlgoanCredentials] = None
        start_time = time.perf_counter()

        with TimedOperation(
            "bank_details_synchronization",
            logger,
            customer_id=payload.customer_id,
            analysis_id=payload.analysis_id,
        ):
            try:
                credentials = await self.algoan.authenticate(
                    service_account.client_id, service_account.client_secret
                )
                session = await self.collect(credentials, config, payload)

                await self.algoan.update_analysis(
                    credentials,
                    payload.customer_id,
                    payload.analysis_id,
                    AnalysisUpdate(accounts=session.accounts),
                )
            except Exception as err:
                logger.error(
                    "bank_details_fetch_failed",
                    customer_id=payload.customer_id,
                    analysis_id=payload.analysis_id,
                    error=str(err),
                )
                metrics.record_sync(False, time.perf_counter() - start_time)
                await self._report_error(service_account, credentials, payload)
                raise

            try:
                await self.bridge.delete_user(
                    UserAccount(
                        bridge_user_id=session.bridge_user_id,
                        id=session.customer_id,
                        access_token=session.access_token,
                    ),
                    config,
                )
            except Exception:
                # the analysis is already updated; only the outcome is recorded
                metrics.record_sync(False, time.perf_counter() - start_time)
                raise

        metrics.record_sync(True, time.perf_counter() - start_time, len(session.transactions))

    async def collect(
        self,
        credentials: AlgoanCredentials,
        config: AggregatorConfig,
        payload: BankDetailsRequired,
    ) -> SyncSession:
        """Fetch and map everything the analysis needs."""
        customer = await self.algoan.get_customer_by_id(credentials, payload.customer_id)
        logger.debug("customer_found", customer_id=customer.id)

        authentication = await self.bridge.get_access_token(customer.id, config)
        session = SyncSession(
            customer_id=customer.id,
            analysis_id=payload.analysis_id,
            nb_of_months=config.nb_of_months or self.settings.default_nb_of_months,
            access_token=authentication.access_token,
            bridge_user_id=authentication.user.uuid,
        )

        item_id = customer.aggregation_details.user_id
        if item_id is not None:
            await self.bridge.refresh(item_id, session.access_token, config)
            await self.wait_for_refresh(item_id, session.access_token, config)

        bridge_accounts = await self.bridge.get_accounts(session.access_token, config)
        logger.debug("bridge_accounts_retrieved", customer_id=customer.id, account_count=len(bridge_accounts))

        user_info = await self.get_personal_information(session.access_token, config)
        session.accounts = await map_bridge_accounts(
            bridge_accounts, user_info, session.access_token, self.bridge, config
        )

        session.transactions = await self.collect_transactions(session.access_token, config, session.nb_of_months)
        await self.attach_transactions(session, config)

        return session

    async def wait_for_refresh(
        self, item_id: str, access_token: str, config: AggregatorConfig
    ) -> Optional[BridgeRefreshStatus]:
        """Poll the refresh status until it is finished or the deadline passes."""

        async def fetch() -> BridgeRefreshStatus:
            return await self.bridge.get_refresh_status(item_id, access_token, config)

        outcome = await self.poller.run(
            "refresh",
            fetch,
            refresh_pending,
            timeout=self._timeout(config),
            waiting_time=self._waiting_time(config),
        )
        return outcome.result

    async def get_personal_information(
        self, access_token: str, config: AggregatorConfig
    ) -> list[BridgeUserInformation]:
        """Personal information is optional: failing to get it leaves owners empty."""
        try:
            return await self.bridge.get_user_personal_information(access_token, config)
        except Exception as e:
            logger.warning("user_personal_information_unavailable", error=str(e))
            return []

    async def collect_transactions(
        self, access_token: str, config: AggregatorConfig, nb_of_months: int
    ) -> list[BridgeTransaction]:
        """Poll transaction pages until nb_of_months of history is covered or the deadline passes."""
        accumulator = TransactionAccumulator()

        async def fetch() -> list[BridgeTransaction]:
            page = await self.bridge.get_transactions(access_token, accumulator.cursor, config)
            return accumulator.add(page)

        outcome = await self.poller.run(
            "transactions",
            fetch,
            lambda transactions: needs_more_history(transactions, nb_of_months),
            timeout=self._timeout(config),
            waiting_time=self._waiting_time(config),
        )
        return outcome.result

    async def attach_transactions(self, session: SyncSession, config: AggregatorConfig) -> None:
        """Map each account's transactions; accounts without any keep transactions unset."""
        categories: dict[str, str] = {}
        partitions = partition_transactions(session.accounts, session.transactions)

        for account, transactions in zip(session.accounts, partitions):
            mapped = await map_bridge_transactions(
                transactions, session.access_token, self.bridge, config, categories
            )
            if mapped:
                account.transactions = mapped

    async def _report_error(
        self,
        service_account: ServiceAccount,
        credentials: Optional[AlgoanCredentials],
        payload: BankDetailsRequired,
    ) -> None:
        """Flag the analysis as in error. Failing to do so is logged only."""
        update = AnalysisUpdate(
            status=AnalysisStatus.ERROR,
            error=AnalysisError(code=ErrorCodes.INTERNAL_ERROR, message=INTERNAL_ERROR_MESSAGE),
        )
        try:
            if credentials is None:
                credentials = await self.algoan.authenticate(
                    service_account.client_id, service_account.client_secret
                )
            await self.algoan.update_analysis(credentials, payload.customer_id, payload.analysis_id, update)
        except Exception as e:
            logger.error(
                "analysis_error_update_failed",
                customer_id=payload.customer_id,
                analysis_id=payload.analysis_id,
                error=str(e),
            )
