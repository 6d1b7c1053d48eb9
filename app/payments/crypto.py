"""
Symmetric encryption for stored gateway credentials.

Provider merchant credentials are stored as a Fernet token. The key comes
from settings.GATEWAY_CREDENTIALS_KEY, or is derived from SECRET_KEY when
that is unset.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

from payments.exceptions import PaymentConfigError


def get_fernet_key() -> bytes:
    configured = getattr(settings, "GATEWAY_CREDENTIALS_KEY", "")
    if configured:
        return configured.encode()
    key = hashlib.sha256(settings.SECRET_KEY.encode()).digest()
    return base64.urlsafe_b64encode(key)


def encrypt_credentials(credentials: dict[str, Any]) -> str:
    """Serialize and encrypt a credentials dict."""
    return Fernet(get_fernet_key()).encrypt(json.dumps(credentials).encode()).decode()


def decrypt_credentials(token: str) -> dict[str, Any]:
    """
    Decrypt a credentials token.

    Raises:
        PaymentConfigError: If the token was encrypted with another key
    """
    if not token:
        return {}
    try:
        raw = Fernet(get_fernet_key()).decrypt(token.encode())
    except InvalidToken as e:
        raise PaymentConfigError("Stored gateway credentials cannot be decrypted") from e
    return json.loads(raw)
