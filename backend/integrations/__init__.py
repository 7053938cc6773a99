"""External API integrations.

This package contains:
- Provider protocols: the bank provider and brokerage aggregator interfaces
- SnapTrade client: the brokerage aggregator
- Teller client: the bank provider
"""

from integrations.aggregator_protocol import (
    AggregatorIdentity,
    AggregatorProvider,
    BankProvider,
)

__all__ = [
    "AggregatorIdentity",
    "AggregatorProvider",
    "BankProvider",
]
