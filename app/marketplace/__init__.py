"""
Marketplace app holding the booking-side collaborators of the payment engine.

This app owns the minimal records the settlement engine consumes:
- Provider: salon/spa/studio with subscription tier, fee payer and payout details
- Service: bookable service with an optional deposit override
- Booking: a client's appointment carrying the price and stored fee snapshot

Scheduling, listings and team permissions live outside this project.

Related apps:
    - payments: fees, gateways, ledger and payouts for these records
"""
