"""
Tests for API key and webhook signature checks.
"""
from unittest.mock import patch

import pytest

from shipyard.core.exceptions import (
    InvalidApiKeyError,
    WebhookSignatureInvalidError,
    WebhookSignatureMissingError,
)
from shipyard.core.security import (
    generate_deployment_secret,
    sign_payload,
    verify_api_key,
    verify_webhook_signature,
)


class TestWebhookSignature:
    def test_known_signature(self):
        # Example from GitHub's webhook validation documentation
        signature = sign_payload(b"Hello, World!", "It's a Secret to Everybody")

        assert signature == "sha256=757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"

    def test_valid_signature_passes(self):
        body = b'{"ref": "refs/heads/main"}'
        verify_webhook_signature(body, sign_payload(body, "secret"), "secret")

    def test_missing_signature(self):
        with pytest.raises(WebhookSignatureMissingError):
            verify_webhook_signature(b"{}", None, "secret")

    def test_tampered_body(self):
        signature = sign_payload(b'{"a": 1}', "secret")

        with pytest.raises(WebhookSignatureInvalidError):
            verify_webhook_signature(b'{"a": 2}', signature, "secret")

    def test_wrong_secret(self):
        with pytest.raises(WebhookSignatureInvalidError):
            verify_webhook_signature(b"{}", sign_payload(b"{}", "other"), "secret")


class TestApiKey:
    @pytest.mark.asyncio
    async def test_matching_key(self):
        assert await verify_api_key("test-api-key") == "test-api-key"

    @pytest.mark.asyncio
    async def test_wrong_or_missing_key(self):
        with pytest.raises(InvalidApiKeyError):
            await verify_api_key("nope")
        with pytest.raises(InvalidApiKeyError):
            await verify_api_key(None)

    @pytest.mark.asyncio
    async def test_unconfigured_key_rejects_everything(self):
        with patch("shipyard.core.security.settings") as mock_settings:
            mock_settings.API_KEY = ""
            with pytest.raises(InvalidApiKeyError):
                await verify_api_key("")


def test_deployment_secrets_are_unique():
    secrets = {generate_deployment_secret() for _ in range(50)}

    assert len(secrets) == 50
    assert all(len(s) == 64 for s in secrets)
