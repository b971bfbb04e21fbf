"""
Penalty Calculator Module

Applies late-payment penalties to overdue quarterly taxes. The penalty is a
monthly percentage of the quarterly installment, counting every started
month after the due date.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..database import as_date, as_decimal, execute_insert, execute_query, execute_update

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

PERCENT_TABLES = {
    "penalty_config": "penalty_percent",
    "discount_config": "discount_percent",
}


def latest_effective_percent(
    db: Session,
    table: str,
    as_of: date,
    default: Decimal,
) -> Decimal:
    """Percent of the latest configuration in effect on a date.

    Rows must have started (effective_date <= as_of) and not expired.

    Args:
        db: Database session
        table: penalty_config or discount_config
        as_of: Lookup date
        default: Returned when no row is in effect

    Returns:
        Configured percent
    """
    column = PERCENT_TABLES[table]
    rows = execute_query(
        db,
        f"SELECT id, {column} AS percent, effective_date, expiration_date FROM {table}",
    )

    active = []
    for row in rows:
        effective = as_date(row["effective_date"])
        expiration = as_date(row["expiration_date"])
        if effective is None or effective > as_of:
            continue
        if expiration is not None and expiration < as_of:
            continue
        active.append((effective, row["id"], as_decimal(row["percent"])))

    if not active:
        logger.debug(f"No active {table} row as of {as_of}, using default {default}%")
        return default

    return max(active)[2]


def months_late(days_late: int, day_divisor: int = 30) -> int:
    """Started months after the due date (1 to 30 days is one month)."""
    if days_late <= 0:
        return 0
    return math.ceil(days_late / day_divisor)


def compute_penalty(
    quarterly_tax: Decimal,
    penalty_percent: Decimal,
    days_late: int,
    day_divisor: int = 30,
) -> Decimal:
    """Penalty = installment x percent/100 x months late, in cents."""
    months = months_late(days_late, day_divisor)
    penalty = quarterly_tax * penalty_percent / Decimal("100") * months
    return penalty.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PenaltyUpdate:
    quarter_id: int
    days_late: int
    old_penalty: Decimal
    new_penalty: Decimal

    def to_dict(self) -> dict:
        return {
            "quarter_id": self.quarter_id,
            "days_late": self.days_late,
            "old_penalty": float(self.old_penalty),
            "new_penalty": float(self.new_penalty),
        }


@dataclass
class PenaltyRunSummary:
    """Result of one penalty refresh run."""

    ledger_type: str
    calculated_date: date
    penalty_percent: Decimal
    checked_records: int = 0
    updates: list[PenaltyUpdate] = field(default_factory=list)

    @property
    def updated_records(self) -> int:
        return len(self.updates)

    @property
    def total_penalty(self) -> Decimal:
        """Penalty added by this run."""
        return sum((u.new_penalty - u.old_penalty for u in self.updates), Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "ledger_type": self.ledger_type,
            "calculated_date": self.calculated_date.isoformat(),
            "penalty_percent": float(self.penalty_percent),
            "checked_records": self.checked_records,
            "updated_records": self.updated_records,
            "total_penalty": float(self.total_penalty),
            "updates": [u.to_dict() for u in self.updates],
        }


class PenaltyCalculator:
    """Refreshes penalties on overdue quarterly taxes."""

    def __init__(self, db: Session, settings: PortalSettings):
        self.db = db
        self.settings = settings

    def penalty_percent(self, as_of: date) -> Decimal:
        return latest_effective_percent(
            self.db,
            "penalty_config",
            as_of,
            Decimal(str(self.settings.default_penalty_percent)),
        )

    def refresh(self, ledger_type: str, as_of: date | None = None) -> PenaltyRunSummary:
        """Recalculate penalties of every unpaid quarter past its due date.

        Penalties only grow: a row is updated when the recomputed penalty
        is greater than the stored one, and it is then marked overdue.
        Commits, and logs the run in penalty_log.

        Args:
            ledger_type: 'rpt' or 'business'
            as_of: Calculation date (defaults to today)

        Returns:
            PenaltyRunSummary
        """
        as_of = as_of or date.today()
        percent = self.penalty_percent(as_of)
        summary = PenaltyRunSummary(
            ledger_type=ledger_type,
            calculated_date=as_of,
            penalty_percent=percent,
        )

        rows = execute_query(
            self.db,
            """
            SELECT id, total_quarterly_tax, penalty_amount, days_late, due_date
            FROM quarterly_taxes
            WHERE ledger_type = :ledger_type
              AND payment_status IN ('pending', 'overdue')
              AND due_date < :as_of
            ORDER BY id
            """,
            {"ledger_type": ledger_type, "as_of": as_of},
        )

        try:
            for row in rows:
                summary.checked_records += 1
                due_date = as_date(row["due_date"])
                days_late = max(int(row["days_late"] or 0), (as_of - due_date).days)
                current = as_decimal(row["penalty_amount"])
                new_penalty = compute_penalty(
                    as_decimal(row["total_quarterly_tax"]),
                    percent,
                    days_late,
                    self.settings.penalty_day_divisor,
                )

                if new_penalty <= current:
                    continue

                execute_update(
                    self.db,
                    """
                    UPDATE quarterly_taxes
                    SET penalty_amount = :penalty,
                        penalty_percent_used = :percent,
                        payment_status = 'overdue',
                        days_late = :days_late
                    WHERE id = :id AND payment_status != 'paid'
                    """,
                    {"id": row["id"], "penalty": new_penalty, "percent": percent, "days_late": days_late},
                )
                summary.updates.append(PenaltyUpdate(row["id"], days_late, current, new_penalty))
                logger.debug(
                    f"Penalty for quarter {row['id']}: {current} -> {new_penalty} ({days_late} days late)"
                )

            execute_insert(self.db, "penalty_log", {
                "ledger_type": ledger_type,
                "calculated_date": as_of,
                "updated_records": summary.updated_records,
                "total_penalty": summary.total_penalty,
                "penalty_percent_used": percent,
                "created_at": datetime.now(),
            })
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Penalty run ({ledger_type}, {as_of}): {summary.updated_records} of "
            f"{summary.checked_records} overdue quarters updated at {percent}%"
        )
        return summary
