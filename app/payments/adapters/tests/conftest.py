"""
Pytest fixtures for adapter tests.

Outbound HTTP is served by httpx.MockTransport: route_httpx(handler)
makes every httpx.Client the gateway client opens answer with handler.

Usage:
    def test_retry(route_httpx):
        calls = route_httpx(lambda request: httpx.Response(503))
        ...
        assert len(calls) == 2
"""

import httpx
import pytest


@pytest.fixture
def route_httpx(mocker):
    """Route gateway HTTP traffic to a handler; returns the list of requests seen."""
    real_client = httpx.Client

    def install(handler):
        calls = []

        def recording_handler(request):
            calls.append(request)
            return handler(request)

        def client_factory(**kwargs):
            return real_client(transport=httpx.MockTransport(recording_handler), **kwargs)

        mocker.patch("payments.adapters.http_client.httpx.Client", side_effect=client_factory)
        return calls

    return install

