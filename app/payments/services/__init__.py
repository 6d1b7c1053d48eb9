"""
Payment services.

- PaymentManager: Payment lifecycle (checkout, completion, refunds)
- PayoutScheduler: Scheduling and disbursing provider escrow balances

Usage:
    from payments.services import PaymentManager, PayoutScheduler

    result = PaymentManager.initialize_payment(booking, return_url, cancel_url)

    scheduler = PayoutScheduler()
    scheduler.schedule_payouts()
    scheduler.process_scheduled_payouts()
"""

from payments.services.payment_manager import CheckoutSession, PaymentManager
from payments.services.payout_scheduler import PayoutRunReport, PayoutScheduler

__all__ = [
    "CheckoutSession",
    "PaymentManager",
    "PayoutRunReport",
    "PayoutScheduler",
]
