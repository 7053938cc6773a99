"""API route handlers."""
from . import accounts, admin, banking, connections, dashboard, holdings, transactions

__all__ = ["accounts", "admin", "banking", "connections", "dashboard", "holdings", "transactions"]
