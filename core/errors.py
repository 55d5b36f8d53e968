"""
Application error taxonomy.

Services raise these; the FastAPI exception handlers in ``main.py`` turn them
into the standard error envelope with the matching HTTP status.
"""
from http import HTTPStatus
from typing import Any, Dict, Optional


class ApplicationError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human readable message
        code: Stable machine readable error code
        status_code: HTTP status code used at the boundary
        details: Optional extra context (never secrets)
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_SERVER_ERROR",
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = int(status_code)
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(ApplicationError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code, HTTPStatus.BAD_REQUEST, details)


class UnauthorizedError(ApplicationError):
    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None, code: str = "UNAUTHORIZED"):
        super().__init__(message, code, HTTPStatus.UNAUTHORIZED, details)


class ForbiddenError(ApplicationError):
    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "FORBIDDEN", HTTPStatus.FORBIDDEN, details)


class NotFoundError(ApplicationError):
    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None, code: str = "NOT_FOUND"):
        super().__init__(message, code, HTTPStatus.NOT_FOUND, details)


class InternalServerError(ApplicationError):
    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None,
                 code: str = "INTERNAL_SERVER_ERROR"):
        super().__init__(message, code, HTTPStatus.INTERNAL_SERVER_ERROR, details)


class UpstreamError(ApplicationError):
    """Payment provider call failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "STRIPE_API_ERROR"):
        super().__init__(message, code, HTTPStatus.BAD_GATEWAY, details)


# ============================================================
# Domain errors
# ============================================================
class OrgNotFoundError(NotFoundError):
    def __init__(self, org_ref: str):
        super().__init__(f"Organization not found: {org_ref}", {"orgId": org_ref}, code="ORG_NOT_FOUND")


class NoActiveSubscriptionError(NotFoundError):
    def __init__(self, org_ref: str):
        super().__init__(
            f"No active subscription found for organization: {org_ref}",
            {"orgId": org_ref},
            code="NO_ACTIVE_SUBSCRIPTION",
        )


class InvalidPlanCodeError(InternalServerError):
    """A live subscription references a plan missing from configuration."""

    def __init__(self, plan_code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Invalid plan code in subscription: {plan_code}",
            {"planCode": plan_code, **(details or {})},
            code="INVALID_PLAN_CODE",
        )


class InvalidQuantityError(ValidationError):
    def __init__(self, quantity: Any):
        super().__init__(
            "Usage value must be a positive integer",
            {"value": quantity},
            code="INVALID_QUANTITY",
        )


class WebhookEventNotFoundError(NotFoundError):
    def __init__(self, event_id: str):
        super().__init__(f"Webhook event not found: {event_id}", {"eventId": event_id}, code="WEBHOOK_EVENT_NOT_FOUND")


def to_domain_error(error: BaseException) -> ApplicationError:
    """Normalise any exception into an ApplicationError."""
    if isinstance(error, ApplicationError):
        return error
    return InternalServerError("An unexpected error occurred", {"originalError": error.__class__.__name__})
