"""
API Routes Package

Contains all route modules for the revenue portal API.
"""

from .otp import router as otp_router
from .business_tax import router as business_tax_router
from .property_tax import router as property_tax_router
from .registration import router as registration_router
from .ledger import router as ledger_router
from .tax_config import router as tax_config_router

__all__ = [
    "otp_router",
    "business_tax_router",
    "property_tax_router",
    "registration_router",
    "ledger_router",
    "tax_config_router",
]
