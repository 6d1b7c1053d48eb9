"""
Tests for GatewayHttpClient and its helpers.

Covers bounded retries on transient failures, immediate failure on
permanent 4xx responses, status code translation, log redaction and
idempotency keys.
"""

import httpx
import pytest

from payments.adapters.http_client import (
    REDACTED,
    GatewayHttpClient,
    IdempotencyKeyGenerator,
    backoff_delay,
    generate_correlation_id,
    is_retryable_gateway_error,
    redact,
)
from payments.exceptions import (
    GatewayAuthenticationError,
    GatewayDeclinedError,
    GatewayInsufficientFundsError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)


def make_client(max_retries=2):
    delays = []
    client = GatewayHttpClient(
        "wipay",
        base_url="https://sandbox.wipayfinancial.com/v1/",
        headers={"Authorization": "Bearer secret"},
        timeout=5,
        max_retries=max_retries,
        sleep=delays.append,
    )
    return client, delays


class TestRequests:
    """Successful requests and URL building."""

    def test_returns_parsed_json(self, route_httpx):
        calls = route_httpx(lambda request: httpx.Response(200, json={"status": "success"}))
        client, _ = make_client()

        response = client.post("/disbursements/bank", json={"amount": "10.00"})

        assert response.ok
        assert response.data == {"status": "success"}
        assert response.correlation_id.startswith("pay_")
        assert str(calls[0].url) == "https://sandbox.wipayfinancial.com/v1/disbursements/bank"
        assert calls[0].headers["Authorization"] == "Bearer secret"

    def test_empty_path_posts_to_base_url(self, route_httpx):
        calls = route_httpx(lambda request: httpx.Response(200, json={"url": "https://pay"}))
        client, _ = make_client()

        client.post("", data={"total": "10.00"})

        assert str(calls[0].url) == "https://sandbox.wipayfinancial.com/v1"

    def test_non_json_body(self, route_httpx):
        route_httpx(lambda request: httpx.Response(200, text="OK"))
        client, _ = make_client()

        response = client.get("/ping")

        assert response.data == {}
        assert response.text == "OK"

    def test_per_request_headers_merge(self, route_httpx):
        calls = route_httpx(lambda request: httpx.Response(200, json={}))
        client, _ = make_client()

        client.post("/x", json={}, headers={"Idempotency-Key": "disburse:1:1:abc"})

        assert calls[0].headers["Idempotency-Key"] == "disburse:1:1:abc"
        assert calls[0].headers["Authorization"] == "Bearer secret"


class TestRetries:
    """Bounded retries with backoff."""

    def test_retries_5xx_then_succeeds(self, route_httpx):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"ok": True})])
        calls = route_httpx(lambda request: next(responses))
        client, delays = make_client()

        response = client.get("/status")

        assert response.data == {"ok": True}
        assert len(calls) == 2
        assert len(delays) == 1

    def test_gives_up_after_max_retries(self, route_httpx):
        calls = route_httpx(lambda request: httpx.Response(502, json={"message": "bad gateway"}))
        client, delays = make_client(max_retries=2)

        with pytest.raises(GatewayUnavailableError):
            client.get("/status")

        assert len(calls) == 3
        assert len(delays) == 2

    def test_rate_limit_is_retried(self, route_httpx):
        calls = route_httpx(lambda request: httpx.Response(429))
        client, _ = make_client(max_retries=1)

        with pytest.raises(GatewayRateLimitError):
            client.get("/status")

        assert len(calls) == 2

    def test_timeout(self, route_httpx):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        calls = route_httpx(handler)
        client, _ = make_client(max_retries=1)

        with pytest.raises(GatewayTimeoutError) as exc_info:
            client.post("/disbursements/bank", json={})

        assert exc_info.value.is_retryable
        assert len(calls) == 2

    def test_connection_error(self, route_httpx):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        route_httpx(handler)
        client, _ = make_client(max_retries=0)

        with pytest.raises(GatewayUnavailableError):
            client.get("/status")

    def test_client_errors_are_not_retried(self, route_httpx):
        calls = route_httpx(lambda request: httpx.Response(400, json={"message": "bad amount"}))
        client, delays = make_client()

        with pytest.raises(GatewayInvalidRequestError, match="bad amount"):
            client.post("/refund", json={})

        assert len(calls) == 1
        assert delays == []


class TestStatusTranslation:
    """4xx responses map onto the GatewayError taxonomy."""

    @pytest.mark.parametrize(
        "status,body,error_class",
        [
            (401, {}, GatewayAuthenticationError),
            (403, {}, GatewayAuthenticationError),
            (402, {"message": "Card declined"}, GatewayDeclinedError),
            (402, {"message": "Insufficient funds"}, GatewayInsufficientFundsError),
            (404, {"message": "Not found"}, GatewayInvalidRequestError),
            (422, {"error": "Invalid account"}, GatewayInvalidRequestError),
        ],
    )
    def test_translation(self, route_httpx, status, body, error_class):
        route_httpx(lambda request: httpx.Response(status, json=body))
        client, _ = make_client()

        with pytest.raises(error_class) as exc_info:
            client.get("/x")

        assert exc_info.value.is_retryable is False


class TestHelpers:
    def test_redact_nested(self):
        data = {
            "amount": "10.00",
            "Authorization": "Bearer secret",
            "destination": {"bank_account_number": "123", "bank_name": "NCB"},
            "items": [{"cvv": "123"}],
        }

        redacted = redact(data)

        assert redacted["amount"] == "10.00"
        assert redacted["Authorization"] == REDACTED
        assert redacted["destination"]["bank_account_number"] == REDACTED
        assert redacted["destination"]["bank_name"] == "NCB"
        assert redacted["items"][0]["cvv"] == REDACTED

    def test_redact_header_with_dashes(self):
        assert redact({"X-Api-Key": "k"}) == {"X-Api-Key": REDACTED}

    def test_idempotency_key_is_stable(self, settings):
        settings.SECRET_KEY = "test-secret"

        first = IdempotencyKeyGenerator.generate("disburse", "payout-1")
        second = IdempotencyKeyGenerator.generate("disburse", "payout-1")

        assert first == second
        assert first.startswith("disburse:payout-1:1:")
        assert IdempotencyKeyGenerator.generate("disburse", "payout-1", attempt=2) != first

    def test_backoff_grows_and_caps(self):
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 4.0 <= backoff_delay(2) <= 5.0
        assert backoff_delay(20) <= 75.0

    def test_correlation_id_format(self):
        correlation_id = generate_correlation_id()

        assert correlation_id.startswith("pay_")
        assert len(correlation_id) == 20

    def test_is_retryable_gateway_error(self):
        assert is_retryable_gateway_error(GatewayTimeoutError("slow")) is True
        assert is_retryable_gateway_error(GatewayDeclinedError("no")) is False
        assert is_retryable_gateway_error(ValueError("boom")) is False
