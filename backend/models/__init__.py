"""SQLAlchemy ORM models."""

from .brokerage_connection import BrokerageConnection
from .connected_account import ConnectedAccount
from .holding import Holding
from .provider_identity import ProviderIdentity
from .user import User
from .utils import generate_uuid, utcnow

__all__ = ["BrokerageConnection", "ConnectedAccount", "Holding", "ProviderIdentity", "User", "generate_uuid", "utcnow"]
