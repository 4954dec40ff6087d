"""
Affiliate Postback Reconciliation

This module provides:
- Validation of untrusted postbacks from affiliate networks
- Click correlation against the click ledger
- An append-only conversion audit log
- Pending cashback transactions under per-store rate policies
- Atomic increments of the user's pending cashback balance
"""

from .models import (
    Click,
    Conversion,
    ConversionStatus,
    Transaction,
    TransactionStatus,
    PostbackOutcome,
    PostbackResult,
    UserBalance,
)
from .service import PostbackService, PostbackServiceError, InvalidPostbackError
from .store import DocumentStore, InMemoryDocumentStore

__all__ = [
    "Click",
    "Conversion",
    "ConversionStatus",
    "Transaction",
    "TransactionStatus",
    "PostbackOutcome",
    "PostbackResult",
    "UserBalance",
    "PostbackService",
    "PostbackServiceError",
    "InvalidPostbackError",
    "DocumentStore",
    "InMemoryDocumentStore",
]
