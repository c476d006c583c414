"""
Checkout - Models Package
"""

from checkout.models.transaction import Transaction, Rail, TransactionStatus
from checkout.models.artifact import (
    RailArtifact, InstantTransferArtifact, BankSlipArtifact, CardArtifact, ARTIFACT_FOR_RAIL
)
from checkout.models.audit import TransactionEvent, EventType

__all__ = [
    "Transaction", "Rail", "TransactionStatus",
    "RailArtifact", "InstantTransferArtifact", "BankSlipArtifact", "CardArtifact", "ARTIFACT_FOR_RAIL",
    "TransactionEvent", "EventType",
]
