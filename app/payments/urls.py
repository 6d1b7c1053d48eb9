"""
URL configuration for the payments app.

Routes:
    - POST /callbacks/<gateway>/ - Gateway payment callback

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.webhooks.views import gateway_callback

app_name = "payments"

urlpatterns = [
    path("callbacks/<slug:gateway>/", gateway_callback, name="gateway_callback"),
]
