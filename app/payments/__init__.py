"""
Payments app for marketplace bookings.

This app handles:
- Fee calculation (platform fee, gateway fee, deposits)
- Payment lifecycle through escrow or split gateways
- Provider escrow balances in an append-only ledger
- Scheduling and disbursing provider payouts
- Gateway payment callbacks

Related apps:
    - marketplace: Provider, Service and Booking being paid for

Usage:
    from payments.services import PaymentManager, PayoutScheduler

    # Start checkout
    result = PaymentManager.initialize_payment(booking, return_url, cancel_url)

    # Pay out provider balances
    PayoutScheduler().schedule_payouts()
"""
