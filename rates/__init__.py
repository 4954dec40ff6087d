"""
Store Cashback Rate Policies

Reads a store's cashback configuration (percentage or fixed amount) and
converts a reported sale amount into the cashback owed, rounded half-up to
two decimal places.
"""

from .rate_policy import (
    CashbackType,
    StoreRatePolicy,
    RatePolicyLookup,
    round_currency,
    parse_rate_value,
)

__all__ = [
    "CashbackType",
    "StoreRatePolicy",
    "RatePolicyLookup",
    "round_currency",
    "parse_rate_value",
]
