"""
End-to-end payment and payout flows.

A client pays a deposit and later the balance through WiPay escrow; the
provider's ledger accumulates both shares and the scheduler pays them out.
"""

from dataclasses import replace
from decimal import Decimal

import pytest
from django.urls import reverse

from payments.adapters import GatewayResponse
from payments.ledger import LedgerService
from payments.models import Payment, ScheduledPayout
from payments.services import PaymentManager, PayoutScheduler
from payments.state_machines import PaymentStatus, PaymentType, ScheduledPayoutStatus
from payments.tasks import complete_payment_callback


@pytest.fixture
def payout_config(payment_config):
    return replace(
        payment_config,
        payouts=replace(payment_config.payouts, minimum_amount=Decimal("50.00")),
    )


def pay(booking, payment_type, transaction_id):
    checkout = PaymentManager.initialize_payment(
        booking,
        "https://app/return",
        "https://app/cancel",
        payment_type=payment_type,
    )
    assert checkout.success
    result = PaymentManager.handle_callback(
        "wipay",
        {
            "order_id": checkout.data.order_id,
            "status": "success",
            "transaction_id": transaction_id,
        },
    )
    assert result.success
    return Payment.objects.get(pk=checkout.data.payment.pk)


class TestDepositBalancePayout:
    def test_full_cycle(self, booking, wipay_http, disbursement_adapter, payout_config):
        deposit = pay(booking, PaymentType.DEPOSIT, "TXN-DEP")
        balance = pay(booking, PaymentType.BALANCE, "TXN-BAL")

        assert deposit.status == PaymentStatus.COMPLETED
        assert balance.status == PaymentStatus.COMPLETED
        assert deposit.amount + balance.amount == Decimal("100.00")
        assert LedgerService.get_available_balance(booking.provider) == Decimal("92.88")

        scheduler = PayoutScheduler(adapter=disbursement_adapter, config=payout_config)
        assert scheduler.schedule_payouts() == 1
        payout = ScheduledPayout.objects.get(provider=booking.provider)
        assert payout.amount == Decimal("92.88")

        result = scheduler.process_payout(payout)

        assert result.success
        payout = ScheduledPayout.objects.get(pk=payout.pk)
        assert payout.status == ScheduledPayoutStatus.COMPLETED
        assert payout.disbursement_id == "DSB-0001"
        assert LedgerService.get_provider_balance(booking.provider) == Decimal("0.00")
        disbursement_adapter.disburse.assert_called_once()

    def test_refund_after_payout_goes_negative(self, booking, wipay_http, disbursement_adapter, payout_config):
        payment = pay(booking, PaymentType.FULL, "TXN-FULL")
        scheduler = PayoutScheduler(adapter=disbursement_adapter, config=payout_config)
        scheduler.schedule_payouts()
        scheduler.process_payout(ScheduledPayout.objects.get(provider=booking.provider))

        wipay_http.post.return_value = GatewayResponse(200, {"status": "success", "refund_id": "RF-1"})
        refund = PaymentManager.refund(payment)
        assert refund.success

        share = PaymentManager.provider_refund_share(payment, payment.amount)
        LedgerService.debit_for_refund(payment, share, reference=refund.data.refund_id)

        assert LedgerService.get_provider_balance(booking.provider) == -share


class TestCallbackThroughHttp:
    def test_callback_view_completes_payment(self, client, processing_payment, wipay_http, mocker):
        # Run the queued task inline
        mocker.patch.object(
            complete_payment_callback,
            "delay",
            side_effect=lambda *args: complete_payment_callback(*args),
        )

        response = client.post(
            reverse("payments:gateway_callback", kwargs={"gateway": "wipay"}),
            data={
                "order_id": processing_payment.gateway_order_id,
                "status": "success",
                "transaction_id": "TXN-HTTP",
            },
        )

        assert response.status_code == 200
        payment = Payment.objects.get(pk=processing_payment.pk)
        assert payment.status == PaymentStatus.COMPLETED
        assert LedgerService.get_available_balance(payment.provider) == Decimal("92.88")
