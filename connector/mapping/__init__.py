"""Mapping of Bridge resources into Algoan analysis accounts."""
from connector.mapping.bridge import map_bridge_accounts, map_bridge_transactions

__all__ = ["map_bridge_accounts", "map_bridge_transactions"]
