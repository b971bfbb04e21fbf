"""
Ledger Sync Module

Applies a paid transaction to the quarterly ledger. Runs after the payment
has been committed, in its own transaction: a failure is recorded on the
transaction (sync_status='failed', system_error) and never undoes the
payment. Failed rows are picked up again by retry_failed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..database import execute_query, execute_update
from ..exceptions import LedgerSyncError
from ..ledger.quarterly_ledger import LedgerType, QuarterlyLedger, SettlementResult
from .transaction import PaymentTransaction

logger = logging.getLogger(__name__)


class SyncStatus:
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    SKIPPED = "skipped"  # transaction is not linked to a ledger row


@dataclass
class RetrySummary:
    checked: int = 0
    synced: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "synced": self.synced,
            "failed": self.failed,
        }


class LedgerSync:
    """Pushes paid transactions into the quarterly ledger."""

    def __init__(self, db: Session, settings: PortalSettings):
        self.db = db
        self.settings = settings
        self.ledger = QuarterlyLedger(db, settings)

    def settle(self, transaction: PaymentTransaction, paid_on: date | None = None) -> SettlementResult | None:
        """Settle the ledger rows a transaction pays for. Does not commit.

        Args:
            transaction: Paid PaymentTransaction

        Returns:
            SettlementResult, or None when the transaction has no ledger link

        Raises:
            LedgerSyncError: Linked ledger rows are missing
        """
        if transaction.is_annual and transaction.property_total_id > 0:
            if not transaction.year:
                raise LedgerSyncError(f"Annual payment {transaction.payment_id} has no year")
            return self.ledger.settle_annual(
                LedgerType(transaction.ledger_type),
                transaction.property_total_id,
                transaction.year,
                transaction.receipt_number,
                discount_percent=transaction.discount_percent,
                paid_on=paid_on,
            )

        if transaction.tax_id > 0 and not transaction.is_annual:
            return self.ledger.settle_quarter(transaction.tax_id, transaction.receipt_number, paid_on)

        return None

    def apply(self, transaction: PaymentTransaction, paid_on: date | None = None) -> str:
        """Settle the ledger for a paid transaction and record the outcome.

        Args:
            transaction: Paid PaymentTransaction (receipt_number set)
            paid_on: Ledger payment date (defaults to today)

        Returns:
            Resulting sync status
        """
        try:
            result = self.settle(transaction, paid_on)
            status = SyncStatus.SYNCED if result is not None else SyncStatus.SKIPPED
            self._mark(transaction.payment_id, status, None)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Ledger sync failed for payment {transaction.payment_id}: {e}")
            self._mark(transaction.payment_id, SyncStatus.FAILED, str(e))
            self.db.commit()
            return SyncStatus.FAILED

        if result is not None:
            logger.info(
                f"Ledger synced for payment {transaction.payment_id}: "
                f"settled {result.settled or 'nothing'}, already paid {result.already_paid or 'none'}"
            )
        return status

    def retry_failed(self, limit: int = 50) -> RetrySummary:
        """Re-apply the ledger update of paid transactions whose sync failed.

        Settlement only touches unpaid quarters, so a retry never changes a
        quarter that an earlier attempt already settled.

        Args:
            limit: Maximum number of transactions to process

        Returns:
            RetrySummary
        """
        rows = execute_query(
            self.db,
            """
            SELECT *
            FROM payment_transactions
            WHERE payment_status = 'paid' AND sync_status = 'failed'
            ORDER BY id
            LIMIT :limit
            """,
            {"limit": limit},
        )

        summary = RetrySummary()
        for row in rows:
            transaction = PaymentTransaction.from_row(row)
            summary.checked += 1
            paid_on = transaction.paid_at.date() if transaction.paid_at else None
            status = self.apply(transaction, paid_on)
            if status == SyncStatus.FAILED:
                summary.failed.append(transaction.payment_id)
            else:
                summary.synced.append(transaction.payment_id)

        logger.info(
            f"Ledger sync retry: {len(summary.synced)} synced, "
            f"{len(summary.failed)} still failing of {summary.checked}"
        )
        return summary

    def _mark(self, payment_id: str, status: str, error: str | None) -> None:
        execute_update(
            self.db,
            """
            UPDATE payment_transactions
            SET sync_status = :status, system_error = :error
            WHERE payment_id = :payment_id
            """,
            {"payment_id": payment_id, "status": status, "error": error},
        )
