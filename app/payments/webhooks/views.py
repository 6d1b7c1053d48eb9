"""
Inbound gateway callback endpoint.

Gateways POST the outcome of a hosted checkout here. The view:
1. Resolves the gateway from the URL (404 if unknown)
2. Parses the body (JSON or form-encoded) and checks it names an order
3. Queues the completion for async processing
4. Returns immediately

Completion itself is idempotent (see PaymentManager.complete_payment), so a
gateway re-delivering the same callback is safe.

Usage:
    # In urls.py
    from payments.webhooks.views import gateway_callback

    urlpatterns = [
        path("callbacks/<slug:gateway>/", gateway_callback, name="gateway_callback"),
    ]
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.exceptions import UnknownGatewayError
from payments.gateways import GatewayResolver

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def parse_callback_body(request: HttpRequest) -> dict[str, Any]:
    """Callback payload as a flat dict; empty if the body can't be read."""
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return request.POST.dict()


@csrf_exempt
@require_POST
def gateway_callback(request: HttpRequest, gateway: str) -> HttpResponse:
    """
    Receive a payment callback and queue it for completion.

    Returns:
        HttpResponse with status:
        - 200: Callback accepted
        - 400: Payload does not identify an order
        - 404: Unknown gateway
    """
    try:
        strategy = GatewayResolver.resolve_by_name(gateway)
    except UnknownGatewayError:
        logger.warning("Callback for unknown gateway", extra={"gateway": gateway})
        return HttpResponse("Unknown gateway", status=404)

    payload = parse_callback_body(request)
    webhook = strategy.parse_webhook(payload)

    if not webhook.is_valid:
        logger.warning(
            "Invalid gateway callback",
            extra={"gateway": gateway, "error": webhook.error},
        )
        return HttpResponse("Invalid payload", status=400)

    logger.info(
        "Received gateway callback",
        extra={
            "gateway": gateway,
            "order_id": webhook.order_id,
            "transaction_id": webhook.transaction_id,
            "status": webhook.status,
        },
    )

    from payments.tasks import complete_payment_callback

    complete_payment_callback.delay(gateway, payload)
    return HttpResponse("Accepted", status=200)
