"""SIEMSYNC — Mimecast Request Signing.

Every API call carries its own HMAC-SHA1 signature built from the request
date, a fresh request id, the request URI and the application key.
"""

import base64
import binascii
import hashlib
import hmac
import uuid
from email.utils import formatdate
from typing import Dict, Optional

from siemsync.config import MimecastCredentials


class ConfigurationError(Exception):
    """Raised when a required credential or URI is missing."""


def _http_date() -> str:
    """Current time as an RFC 1123 HTTP-date, e.g. 'Mon, 19 Oct 2026 10:00:00 GMT'."""
    return formatdate(usegmt=True)


def require_config(
    uri: str,
    secret_key: str,
    access_key: str,
    application_key: str,
    application_id: str,
) -> None:
    """Raise ConfigurationError naming every empty value."""
    required = {
        "uri": uri,
        "secret_key": secret_key,
        "access_key": access_key,
        "application_key": application_key,
        "application_id": application_id,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigurationError(
            f"Missing required Mimecast configuration: {', '.join(missing)}"
        )


def compute_signature(
    secret_key: str, date: str, request_id: str, uri: str, application_key: str
) -> str:
    """Return the base64 HMAC-SHA1 digest for one request."""
    try:
        key = base64.b64decode(secret_key)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError("Mimecast secret key is not valid base64") from e
    message = ":".join([date, request_id, uri, application_key])
    digest = hmac.new(key, message.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_request(
    uri: str,
    secret_key: str,
    access_key: str,
    application_key: str,
    application_id: str,
    request_id: Optional[str] = None,
    date: Optional[str] = None,
) -> Dict[str, str]:
    """Build the signed header set for a single Mimecast API request.

    Args:
        uri: Request path, e.g. ``/api/audit/get-siem-logs``.
        secret_key: Base64-encoded secret key.
        access_key: Access key placed in the Authorization header.
        application_key: Application key mixed into the signed string.
        application_id: Sent as ``x-mc-app-id``.
        request_id: Override for the generated request id (tests only).
        date: Override for the generated HTTP-date (tests only).

    Raises:
        ConfigurationError: If any of the five required values is empty.
    """
    require_config(uri, secret_key, access_key, application_key, application_id)

    request_id = request_id or str(uuid.uuid4())
    date = date or _http_date()
    signature = compute_signature(secret_key, date, request_id, uri, application_key)

    return {
        "x-mc-app-id": application_id,
        "x-mc-date": date,
        "x-mc-req-id": request_id,
        "Authorization": f"MC {access_key}:{signature}",
        "Content-Type": "application/json",
        "Accept": "*/*",
        "Connection": "keep-alive",
    }


class RequestSigner:
    """Signs requests with a fixed set of credentials."""

    def __init__(self, credentials: MimecastCredentials):
        self.credentials = credentials

    def validate(self, uri: str) -> None:
        require_config(
            uri,
            self.credentials.secret_key,
            self.credentials.access_key,
            self.credentials.application_key,
            self.credentials.application_id,
        )

    def sign(
        self, uri: str, request_id: Optional[str] = None, date: Optional[str] = None
    ) -> Dict[str, str]:
        return sign_request(
            uri,
            self.credentials.secret_key,
            self.credentials.access_key,
            self.credentials.application_key,
            self.credentials.application_id,
            request_id=request_id,
            date=date,
        )
