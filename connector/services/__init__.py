"""Service layer for the Bridge connector."""
from connector.services.algoan_client import AlgoanClient, AlgoanCredentials
from connector.services.bridge_client import BridgeClient
from connector.services.polling import ConvergencePoller, PollOutcome
from connector.services.registry import ServiceAccount, ServiceAccountRegistry, Subscription
from connector.services.synchronization import BankDetailsSynchronizer
from connector.services.hooks import HooksService

__all__ = [
    "AlgoanClient",
    "AlgoanCredentials",
    "BankDetailsSynchronizer",
    "BridgeClient",
    "ConvergencePoller",
    "HooksService",
    "PollOutcome",
    "ServiceAccount",
    "ServiceAccountRegistry",
    "Subscription",
]
