"""
Custom exception hierarchy for domain-specific errors.

Services raise domain exceptions, and the exception handlers registered in
main.py map them to HTTP responses.
"""
from typing import Optional, Dict, Any


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Not Found Errors (404)
# =============================================================================

class NotFoundError(DomainException):
    """Base class for resource not found errors."""
    pass


class AppNotFoundError(NotFoundError):
    """App does not exist."""

    def __init__(self, identifier: str):
        super().__init__(f"App not found: {identifier}", {"identifier": identifier})


class DeploymentNotFoundError(NotFoundError):
    """Deployment does not exist."""

    def __init__(self, identifier: str = "unknown"):
        super().__init__(f"Deployment not found: {identifier}", {"identifier": identifier})


class InstallationNotFoundError(NotFoundError):
    """Organization has no Git provider installation."""

    def __init__(self, org_id: str):
        super().__init__(
            f"No Git provider installation for organization: {org_id}",
            {"org_id": org_id},
        )


class OrganizationNotFoundError(NotFoundError):
    """No organization matches the given identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"Organization not found: {identifier}", {"identifier": identifier})


# =============================================================================
# Conflict Errors (409)
# =============================================================================

class AlreadyExistsError(DomainException):
    """Base class for resource already exists errors."""
    pass


class ConflictError(AlreadyExistsError):
    """A unique constraint in the store was violated."""

    def __init__(self, resource: str, reason: str = "Unique constraint violated"):
        super().__init__(f"Conflict on {resource}: {reason}", {"resource": resource, "reason": reason})


# =============================================================================
# Validation Errors (400)
# =============================================================================

class ValidationError(DomainException):
    """Base class for validation errors."""
    pass


class InvalidStatusReportError(ValidationError):
    """A callback reported a status that is not legal for the deployment."""

    def __init__(self, deployment_id: int, status: str, reason: str = "Invalid status"):
        super().__init__(
            f"{reason}: {status}",
            {"deployment_id": deployment_id, "status": status},
        )


class UnknownWebhookRequestTypeError(ValidationError):
    """Webhook event or action is not handled."""

    def __init__(self, event: str, action: Optional[str] = None):
        super().__init__(
            f"Unsupported webhook event: {event}" + (f" ({action})" if action else ""),
            {"event": event, "action": action},
        )


class InvalidConfigurationError(ValidationError):
    """Configuration is invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field, "reason": reason})


# =============================================================================
# Authentication Errors (401)
# =============================================================================

class AuthenticationError(DomainException):
    """Base class for missing credentials."""
    pass


class WebhookSignatureMissingError(AuthenticationError):
    """Webhook request carries no signature header."""

    def __init__(self):
        super().__init__("Missing webhook signature")


# =============================================================================
# Authorization Errors (403)
# =============================================================================

class AuthorizationError(DomainException):
    """Base class for authorization errors."""
    pass


class WebhookSignatureInvalidError(AuthorizationError):
    """Webhook signature does not match the shared secret."""

    def __init__(self):
        super().__init__("Invalid webhook signature")


class InvalidApiKeyError(AuthorizationError):
    """API key is missing or wrong."""

    def __init__(self):
        super().__init__("Invalid API key")


# =============================================================================
# Operation Errors (500)
# =============================================================================

class OperationError(DomainException):
    """Base class for operation failures."""
    pass


class DeploymentError(OperationError):
    """
    A build dispatch or cluster apply failed.

    The deployment has already been marked ERROR when this is raised.
    """

    def __init__(self, deployment_id: int, reason: str):
        super().__init__(
            f"Deployment failed ({deployment_id}): {reason}",
            {"deployment_id": deployment_id, "reason": reason},
        )


class BuildDispatchError(OperationError):
    """The build Job could not be created."""

    def __init__(self, deployment_id: int, reason: str):
        super().__init__(
            f"Build dispatch failed ({deployment_id}): {reason}",
            {"deployment_id": deployment_id, "reason": reason},
        )


class NamespaceNotReadyError(OperationError):
    """Namespace did not become Active in time."""

    def __init__(self, namespace: str, attempts: int):
        super().__init__(
            f"Timed out waiting for namespace {namespace} after {attempts} attempts",
            {"namespace": namespace, "attempts": attempts},
        )


class StatusWatchError(OperationError):
    """A status watch stream failed."""

    def __init__(self, stream: str, reason: str):
        super().__init__(f"Status watch '{stream}' failed: {reason}", {"stream": stream, "reason": reason})


# =============================================================================
# Service Unavailable (503)
# =============================================================================

class ServiceUnavailableError(DomainException):
    """External service is unavailable."""

    def __init__(self, service: str, reason: str = "Service unavailable"):
        super().__init__(f"{service}: {reason}", {"service": service, "reason": reason})
