"""
Django settings for the application.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ, following the 12-factor app
methodology.

Environment files:
    - .env.development: Development settings (DEBUG=True, WiPay sandbox)
    - .env.production: Production settings (DEBUG=False, hardened security)

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/topics/settings/

For the full list of settings and their values, see:
https://docs.djangoproject.com/en/5.2/ref/settings/
"""

import os
from pathlib import Path

import environ

# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, []),
    LOG_LEVEL=(str, "INFO"),
)

# In Docker, env vars are passed directly; .env files are for local dev
env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env("DEBUG")

ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    # Django core apps
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "django_celery_beat",
    # Local apps
    "core",
    "marketplace",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# =============================================================================
# Database Configuration
# =============================================================================
# https://docs.djangoproject.com/en/5.2/ref/settings/#databases
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default="postgres://postgres:postgres@db:5432/app_dev",
    ),
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
    DATABASES["default"]["OPTIONS"] = {
        "connect_timeout": 10,
    }

# =============================================================================
# Cache Configuration
# =============================================================================
# Also backs the payment configuration cache and payout locks (django-redis)
CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": env("REDIS_URL", default="redis://redis:6379/0"),
        "OPTIONS": {
            "CLIENT_CLASS": "django_redis.client.DefaultClient",
            "IGNORE_EXCEPTIONS": True,
        },
    }
}

# =============================================================================
# Authentication Configuration
# =============================================================================
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# =============================================================================
# Celery Configuration
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://redis:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
CELERY_TASK_ALWAYS_EAGER = env.bool("CELERY_TASK_ALWAYS_EAGER", default=False)
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

# =============================================================================
# Payment Configuration
# =============================================================================
# System defaults for fees, deposits and payouts. Admin edits are stored in
# payments.PaymentSettings and merged over these (see payments.config).
PAYMENT_CONFIG = {
    "gateway_fee_rate": env("PAYMENT_GATEWAY_FEE_RATE", default="4.0"),
    "tiers": {
        "starter": {
            "platform_fee_rate": env("PAYMENT_STARTER_FEE_RATE", default="3.0"),
            "default_deposit_percentage": "20",
            "minimum_deposit_percentage": "20",
            "can_disable_deposit": False,
            "provider_deposit_override": False,
        },
        "premium": {
            "platform_fee_rate": env("PAYMENT_PREMIUM_FEE_RATE", default="1.5"),
            "default_deposit_percentage": "15",
            "minimum_deposit_percentage": "15",
            "can_disable_deposit": False,
            "provider_deposit_override": True,
        },
        "enterprise": {
            "platform_fee_rate": env("PAYMENT_ENTERPRISE_FEE_RATE", default="0.5"),
            "default_deposit_percentage": "0",
            "minimum_deposit_percentage": "0",
            "can_disable_deposit": True,
            "provider_deposit_override": False,
        },
    },
    "payouts": {
        "frequency": env("PAYOUT_FREQUENCY", default="weekly"),
        "day_of_week": env("PAYOUT_DAY_OF_WEEK", default="friday"),
        "minimum_amount": env("PAYOUT_MINIMUM_AMOUNT", default="1000.00"),
        "hold_period_days": env.int("PAYOUT_HOLD_PERIOD_DAYS", default=7),
        "auto_release_holds": env.bool("PAYOUT_AUTO_RELEASE_HOLDS", default=True),
    },
    "default_currency": env("PAYMENT_DEFAULT_CURRENCY", default="JMD"),
    "supported_currencies": env.list("PAYMENT_SUPPORTED_CURRENCIES", default=["JMD", "USD"]),
    "default_gateway": env("PAYMENT_DEFAULT_GATEWAY", default="wipay"),
    "default_fee_payer": env("PAYMENT_DEFAULT_FEE_PAYER", default="provider"),
}

# Encrypts provider merchant credentials (Fernet key). Derived from SECRET_KEY when empty.
GATEWAY_CREDENTIALS_KEY = env("GATEWAY_CREDENTIALS_KEY", default="")

# Outbound gateway HTTP calls
GATEWAY_HTTP_TIMEOUT_SECONDS = env.int("GATEWAY_HTTP_TIMEOUT_SECONDS", default=30)
GATEWAY_MAX_RETRIES = env.int("GATEWAY_MAX_RETRIES", default=3)

# When set, payouts are debited and completed without calling the disbursement
# API; finance sends the transfers by hand using the payout reference number.
PAYOUT_MANUAL_DISBURSEMENT = env.bool("PAYOUT_MANUAL_DISBURSEMENT", default=False)

# =============================================================================
# WiPay Configuration
# =============================================================================
# Credentials from the WiPay merchant dashboard. Test mode uses the sandbox
# account for checkout and the sandbox disbursement API.
WIPAY_API_KEY = env("WIPAY_API_KEY", default="")
WIPAY_PLATFORM_ACCOUNT_ID = env("WIPAY_PLATFORM_ACCOUNT_ID", default="")
WIPAY_COUNTRY_CODE = env("WIPAY_COUNTRY_CODE", default="JM")
WIPAY_TEST_MODE = env.bool("WIPAY_TEST_MODE", default=True)
WIPAY_API_URL = env("WIPAY_API_URL", default="https://jm.wipayfinancial.com/plugins/payments/request")
WIPAY_DISBURSEMENT_URL = env("WIPAY_DISBURSEMENT_URL", default="")

# =============================================================================
# Internationalization
# =============================================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = env("TIME_ZONE", default="America/Jamaica")
USE_I18N = True
USE_TZ = True

# =============================================================================
# Static Files
# =============================================================================
STATIC_URL = env("STATIC_URL", default="/static/")
STATIC_ROOT = BASE_DIR / "staticfiles"

# =============================================================================
# Default Primary Key Field Type
# =============================================================================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (web, celery-worker, celery-beat)
LOG_FILE_NAME = env("LOG_FILE_NAME", default="django.log")
LOG_DIR = BASE_DIR / "logs"

LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "file": {
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            # Max 10MB per file, 5 backups
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / LOG_FILE_NAME,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "file",
            "encoding": "utf-8",
        },
    },
    "root": {
        "handlers": ["console", "file"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console", "file"],
            "level": "ERROR",
            "propagate": False,
        },
        "celery": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "payments": {
            "handlers": ["console", "file"],
            "level": env("PAYMENTS_LOG_LEVEL", default=LOG_LEVEL),
            "propagate": False,
        },
    },
}

# =============================================================================
# Security Settings (Production Only)
# =============================================================================
if not DEBUG:
    SECURE_SSL_REDIRECT = env.bool("SECURE_SSL_REDIRECT", default=True)
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

    SESSION_COOKIE_SECURE = env.bool("SESSION_COOKIE_SECURE", default=True)
    CSRF_COOKIE_SECURE = env.bool("CSRF_COOKIE_SECURE", default=True)

    SECURE_HSTS_SECONDS = env.int("SECURE_HSTS_SECONDS", default=31536000)  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = env.bool(
        "SECURE_HSTS_INCLUDE_SUBDOMAINS", default=True
    )
    SECURE_HSTS_PRELOAD = env.bool("SECURE_HSTS_PRELOAD", default=True)

    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"
