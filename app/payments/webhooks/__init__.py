"""
Gateway callbacks.

Callbacks are validated in the view and completed asynchronously by
payments.tasks.complete_payment_callback.
"""

from payments.webhooks.views import gateway_callback

__all__ = [
    "gateway_callback",
]
