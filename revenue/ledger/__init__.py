"""
Quarterly Ledger Module

Quarterly tax rows, annual settlement quotes and the RPT registration
status workflow.
"""

from .quarterly_ledger import (
    QuarterlyLedger,
    QuarterlyTax,
    QuarterStatus,
    LedgerType,
    SettlementResult,
)
from .annual_quote import (
    AnnualQuote,
    AnnualQuoteResult,
)
from .registration import (
    RegistrationWorkflow,
    RegistrationStatus,
)

__all__ = [
    # Quarterly Ledger
    "QuarterlyLedger",
    "QuarterlyTax",
    "QuarterStatus",
    "LedgerType",
    "SettlementResult",
    # Annual Quote
    "AnnualQuote",
    "AnnualQuoteResult",
    # Registration
    "RegistrationWorkflow",
    "RegistrationStatus",
]
