"""
Business Tax Module

Rate lookup, regulatory fees, tax arithmetic and late-payment penalties.
The persistence service lives in revenue.tax.business_tax.
"""

from .rate_resolver import (
    RateResolver,
    RateLookup,
    TaxCalculationType,
    TaxConfiguration,
    select_latest,
)
from .fee_aggregator import (
    FeeAggregator,
    FeeBreakdown,
    RegulatoryFee,
    sum_active_fees,
)
from .tax_computer import (
    TaxComputer,
    TaxComputation,
    QuarterlyInstallment,
    QUARTERS,
)
from .penalties import (
    PenaltyCalculator,
    PenaltyRunSummary,
    compute_penalty,
    latest_effective_percent,
    months_late,
)

__all__ = [
    # Rate Resolver
    "RateResolver",
    "RateLookup",
    "TaxCalculationType",
    "TaxConfiguration",
    "select_latest",
    # Fee Aggregator
    "FeeAggregator",
    "FeeBreakdown",
    "RegulatoryFee",
    "sum_active_fees",
    # Tax Computer
    "TaxComputer",
    "TaxComputation",
    "QuarterlyInstallment",
    "QUARTERS",
    # Penalties
    "PenaltyCalculator",
    "PenaltyRunSummary",
    "compute_penalty",
    "latest_effective_percent",
    "months_late",
]
