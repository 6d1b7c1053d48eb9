"""
Fee calculation for the payment engine.

Public API:
    FeeCalculator - Platform fee, gateway fee and deposit calculation
    FeeResult - Fee breakdown for a service price
    PaymentFeeResult - Fees for one full/deposit/balance payment
    DepositQuote - Deposit amount and percentage
    money - Round a value to cents (ROUND_HALF_UP)
"""

from .calculator import FeeCalculator
from .money import money, percent_of
from .types import DepositQuote, FeeResult, FeeSource, PaymentFeeResult

__all__ = [
    "DepositQuote",
    "FeeCalculator",
    "FeeResult",
    "FeeSource",
    "PaymentFeeResult",
    "money",
    "percent_of",
]
