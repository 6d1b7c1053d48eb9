"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Payment, ScheduledPayout, gateway config and settings models
- test_payment_manager.py: Payment creation, checkout, callbacks, refunds
- test_payout_scheduler.py: Payout scheduling and disbursement
- test_tasks.py / test_commands.py: Celery tasks and the management command
- test_integration.py: Deposit, balance and payout end to end

Usage:
    pytest payments/tests/
    pytest payments/tests/test_payout_scheduler.py
"""
