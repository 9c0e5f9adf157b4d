"""
GitHub webhook receiver.
"""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request, status

from shipyard.api.deps import get_webhook_service
from shipyard.core.config import settings
from shipyard.core.exceptions import ValidationError, WebhookSignatureInvalidError
from shipyard.core.security import verify_webhook_signature
from shipyard.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/github", status_code=status.HTTP_200_OK)
async def github_webhook(
    request: Request,
    x_github_event: str = Header(..., alias="X-GitHub-Event"),
    x_hub_signature_256: Optional[str] = Header(None, alias="X-Hub-Signature-256"),
    service: WebhookService = Depends(get_webhook_service),
) -> Dict[str, Any]:
    """
    Receive a GitHub webhook delivery.

    The raw body is checked against the shared secret before it is parsed.

    Raises:
        WebhookSignatureMissingError: No signature header (401)
        WebhookSignatureInvalidError: Signature mismatch (403)
        UnknownWebhookRequestTypeError: Unhandled event or action (400)
    """
    body = await request.body()
    if not settings.GITHUB_WEBHOOK_SECRET:
        logger.error("GITHUB_WEBHOOK_SECRET is not set; rejecting webhook")
        raise WebhookSignatureInvalidError()
    verify_webhook_signature(body, x_hub_signature_256, settings.GITHUB_WEBHOOK_SECRET)

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid webhook payload: {e}")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid webhook payload")

    deployment_ids = await service.handle(x_github_event, payload)
    return {"event": x_github_event, "deployments": deployment_ids}
