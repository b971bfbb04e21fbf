"""
Municipal Revenue Portal

Business tax computation, quarterly tax ledgers and OTP-gated payments.
"""

__version__ = "1.0.0"
