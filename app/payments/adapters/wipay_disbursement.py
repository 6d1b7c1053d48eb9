"""
WiPay disbursement adapter.

Moves money out of the platform's WiPay account to a provider, either to
the provider's own verified WiPay account or to their bank account.
Consumed only by PayoutScheduler; payment capture goes through the
gateway strategies in payments.gateways.

Usage:
    from payments.adapters import WiPayDisbursementAdapter

    adapter = WiPayDisbursementAdapter()
    if adapter.is_available():
        result = adapter.disburse(payout, idempotency_key=key)
        if result.success:
            payout.disbursement_id = result.disbursement_id
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from django.conf import settings

from payments.adapters.http_client import GatewayHttpClient
from payments.exceptions import GatewayError, GatewayTimeoutError, PaymentConfigError
from payments.state_machines import GatewayProvider, VerificationStatus

if TYPE_CHECKING:
    from typing import Any

    from marketplace.models import Provider
    from payments.models import ProviderGatewayConfig, ScheduledPayout


SANDBOX_BASE_URL = "https://sandbox.wipayfinancial.com/v1"
LIVE_BASE_URL = "https://api.wipayfinancial.com/v1"


@dataclass
class DisbursementResult:
    """
    Outcome of a disbursement attempt.

    Attributes:
        success: Whether WiPay accepted the transfer
        disbursement_id: WiPay's disbursement id on success
        error: Human-readable failure reason
        retryable: Whether the failure was transient (timeout, 5xx, rate limit)
        outcome_unknown: The request timed out, WiPay may still have paid
        response: Raw response body, stored on the payout for audit
    """

    success: bool
    disbursement_id: str | None = None
    error: str | None = None
    retryable: bool = False
    outcome_unknown: bool = False
    response: dict[str, Any] = field(default_factory=dict)


class DisbursementAdapter(Protocol):
    """Interface PayoutScheduler uses to send money to a provider."""

    def disburse(
        self,
        payout: ScheduledPayout,
        idempotency_key: str | None = None,
    ) -> DisbursementResult: ...

    def is_available(self) -> bool: ...


class WiPayDisbursementAdapter:
    """
    WiPay disbursement API client.

    Destination is chosen per payout:
    - Provider has an active, verified WiPay gateway config: /disbursements/account
    - Otherwise, provider has banking details on file: /disbursements/bank
    - Otherwise the payout cannot be sent

    Never raises for gateway failures; they come back as a failed
    DisbursementResult so one provider cannot stop a payout batch.
    """

    def __init__(
        self,
        api_key: str | None = None,
        platform_account_id: str | None = None,
        test_mode: bool | None = None,
        http_client: GatewayHttpClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.WIPAY_API_KEY
        self.platform_account_id = (
            platform_account_id
            if platform_account_id is not None
            else settings.WIPAY_PLATFORM_ACCOUNT_ID
        )
        self.test_mode = test_mode if test_mode is not None else settings.WIPAY_TEST_MODE
        self.base_url = (
            getattr(settings, "WIPAY_DISBURSEMENT_URL", "")
            or (SANDBOX_BASE_URL if self.test_mode else LIVE_BASE_URL)
        )
        self.http = http_client or GatewayHttpClient(
            GatewayProvider.WIPAY.value,
            base_url=self.base_url,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def is_available(self) -> bool:
        """Whether API credentials are configured."""
        return bool(self.api_key) and bool(self.platform_account_id)

    def disburse(
        self,
        payout: ScheduledPayout,
        idempotency_key: str | None = None,
    ) -> DisbursementResult:
        """
        Send a payout to the provider.

        Args:
            payout: Payout being processed (amount may already be shrunk)
            idempotency_key: Sent as Idempotency-Key so a retried request
                cannot pay twice

        Returns:
            DisbursementResult
        """
        provider = payout.provider
        wipay_config = self._get_wipay_config(provider)

        if wipay_config is not None:
            path = "/disbursements/account"
            try:
                payload = self._account_payload(payout, provider, wipay_config)
            except PaymentConfigError as e:
                return DisbursementResult(success=False, error=e.message)
        elif provider.has_banking_info:
            path = "/disbursements/bank"
            payload = self._bank_payload(payout, provider)
        else:
            return DisbursementResult(
                success=False,
                error="Provider has no payment method configured",
            )

        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        logger = self.get_logger()
        start_time = time.time()

        logger.info(
            "Starting WiPay disbursement",
            extra={
                "payout_id": str(payout.id),
                "provider_id": str(provider.id),
                "amount": str(payout.amount),
                "destination": path.rsplit("/", 1)[-1],
            },
        )

        try:
            response = self.http.post(path, json=payload, headers=headers)
        except GatewayError as e:
            logger.error(
                "WiPay disbursement error",
                extra={
                    "payout_id": str(payout.id),
                    "error_code": e.error_code,
                    "error": e.message,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            return DisbursementResult(
                success=False,
                error=e.message,
                retryable=e.is_retryable,
                outcome_unknown=isinstance(e, GatewayTimeoutError),
                response=e.details,
            )

        data = response.data
        duration_ms = (time.time() - start_time) * 1000

        if data.get("status") == "success":
            logger.info(
                "WiPay disbursement completed",
                extra={
                    "payout_id": str(payout.id),
                    "disbursement_id": data.get("disbursement_id"),
                    "duration_ms": round(duration_ms, 2),
                },
            )
            disbursement_id = data.get("disbursement_id")
            return DisbursementResult(
                success=True,
                disbursement_id=str(disbursement_id) if disbursement_id else None,
                response=data,
            )

        logger.warning(
            "WiPay disbursement rejected",
            extra={
                "payout_id": str(payout.id),
                "status": data.get("status"),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return DisbursementResult(
            success=False,
            error=data.get("message") or "Disbursement failed",
            response=data,
        )

    # =========================================================================
    # Payloads
    # =========================================================================

    @staticmethod
    def _get_wipay_config(provider: Provider) -> ProviderGatewayConfig | None:
        return (
            provider.gateway_configs.select_related("gateway")
            .filter(
                gateway__slug=GatewayProvider.WIPAY,
                is_active=True,
                verification_status=VerificationStatus.VERIFIED,
            )
            .first()
        )

    def _common_payload(self, payout: ScheduledPayout, provider: Provider) -> dict[str, Any]:
        return {
            "source_account": self.platform_account_id,
            "amount": f"{payout.amount:.2f}",
            "currency": payout.currency,
            "reference": str(payout.id),
            "description": f"Payout for {provider.business_name} (Provider #{provider.id})",
            "environment": "sandbox" if self.test_mode else "live",
        }

    def _account_payload(
        self,
        payout: ScheduledPayout,
        provider: Provider,
        config: ProviderGatewayConfig,
    ) -> dict[str, Any]:
        credentials = config.get_credentials()
        return {
            **self._common_payload(payout, provider),
            "destination_account": credentials.get("account_number")
            or config.merchant_account_id,
        }

    def _bank_payload(self, payout: ScheduledPayout, provider: Provider) -> dict[str, Any]:
        return {
            **self._common_payload(payout, provider),
            "bank_name": provider.bank_name,
            "account_number": provider.bank_account_number,
            "account_holder_name": provider.bank_account_holder_name,
            "branch_code": provider.bank_branch_code,
            "account_type": provider.bank_account_type,
        }
