"""Processed-item ledger: which upstream items each flow already consumed."""

from ingestflow.ledger.repository import InMemoryLedger, ProcessedItemsRepository
from ingestflow.ledger.schemas import Ledger, LedgerEntry

__all__ = ["InMemoryLedger", "Ledger", "LedgerEntry", "ProcessedItemsRepository"]
