"""
Root pytest configuration for the Django project.

Settings come from .env.development (SQLite, WiPay test mode). This module
swaps Redis out for in-process fakes and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import pytest


def pytest_configure():
    """Adjust Django settings for the test run."""
    from django.conf import settings

    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "tests",
        }
    }

    # Fast password hasher for factories
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.WIPAY_API_KEY = "test-api-key"
    settings.WIPAY_PLATFORM_ACCOUNT_ID = "PLATFORM-001"
    settings.WIPAY_TEST_MODE = True
    settings.PAYOUT_MANUAL_DISBURSEMENT = False
    settings.GATEWAY_MAX_RETRIES = 1


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py -> e2e (full payment and payout flows)
    - test_services.py, test_tasks.py, test_views.py, etc. -> integration
    - test_models.py, test_calculator.py, test_http_client.py, etc. -> unit
    - Unmatched files -> integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_commands.py",
        "test_admin.py",
        "test_payment_manager.py",
        "test_payout_scheduler.py",
        "test_resolver.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_calculator.py",
        "test_config.py",
        "test_http_client.py",
        "test_wipay.py",
        "test_disbursement.py",
        "test_locks.py",
        "test_crypto.py",
        "test_state_transitions.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Redis Fake (for DistributedLock)
# =============================================================================


class FakeRedis:
    """
    In-memory stand-in for the lock commands DistributedLock uses.

    Implements SET NX EX and the two token-checked Lua scripts by matching
    on the script text. Expiry is not simulated.
    """

    def __init__(self):
        self.store = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return False
        self.store[key] = value
        return True

    def get(self, key):
        return self.store.get(key)

    def eval(self, script, numkeys, key, token, *args):
        if self.store.get(key) != token:
            return 0
        if '"del"' in script:
            del self.store[key]
        return 1


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(autouse=True)
def _patch_lock_redis(mocker, fake_redis):
    """Route every DistributedLock to the in-memory fake."""
    mocker.patch("payments.locks.get_redis_connection", return_value=fake_redis)
    return fake_redis


@pytest.fixture(autouse=True)
def _clear_cache():
    """Payment config is cached; start each test from the settings defaults."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
