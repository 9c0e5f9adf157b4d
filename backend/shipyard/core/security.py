"""
Security utilities: API key check for management routes and webhook
signature verification.
"""
import hashlib
import hmac
import secrets
from typing import Optional

from fastapi import Security
from fastapi.security import APIKeyHeader

from shipyard.core.config import settings
from shipyard.core.exceptions import (
    InvalidApiKeyError,
    WebhookSignatureInvalidError,
    WebhookSignatureMissingError,
)


api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

SIGNATURE_PREFIX = "sha256="


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency for verifying the operator API key.

    Raises:
        InvalidApiKeyError: If no key is configured or the key does not match
    """
    if not settings.API_KEY or not api_key:
        raise InvalidApiKeyError()
    if not secrets.compare_digest(api_key, settings.API_KEY):
        raise InvalidApiKeyError()
    return api_key


def sign_payload(body: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 header value for a body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> None:
    """
    Verify a GitHub webhook body against its HMAC-SHA256 signature.

    Args:
        body: Raw request body
        signature: Value of the X-Hub-Signature-256 header
        secret: Shared webhook secret

    Raises:
        WebhookSignatureMissingError: If the header is absent (401)
        WebhookSignatureInvalidError: If the signature does not match (403)
    """
    if not signature:
        raise WebhookSignatureMissingError()
    expected = sign_payload(body, secret)
    if not hmac.compare_digest(expected, signature):
        raise WebhookSignatureInvalidError()


def generate_deployment_secret() -> str:
    """Bearer token handed to build and deploy Jobs for status callbacks."""
    return secrets.token_hex(32)
