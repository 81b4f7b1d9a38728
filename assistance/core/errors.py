"""Error hierarchy: classified exceptions for every failure the core reports.

Every error carries a code, a category and the HTTP status the boundary layer
answers with. Infrastructure errors never expose driver detail in to_response().
"""

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    INFRASTRUCTURE = "infrastructure"


class AssistanceError(Exception):
    """Base exception for all classified assistance errors."""

    code = "ERROR"
    category = ErrorCategory.INFRASTRUCTURE
    http_status = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
            }
        }


# ---------------------------------------------------------------------------
# Validation (400)
# ---------------------------------------------------------------------------


class ValidationError(AssistanceError):
    code = "BAD_REQUEST"
    category = ErrorCategory.VALIDATION
    http_status = 400
    default_message = "The request is invalid"


class InvalidQueryMode(ValidationError):
    code = "BAD_Q_QUERY"
    default_message = "Query option does not exist"


class InvalidProjection(ValidationError):
    code = "BAD_FIELDS"
    default_message = "Requested fields are not valid"


# ---------------------------------------------------------------------------
# Authorization (401)
# ---------------------------------------------------------------------------


class AuthorizationError(AssistanceError):
    code = "UNAUTHORIZED"
    category = ErrorCategory.AUTHORIZATION
    http_status = 401
    default_message = "Not allowed to access this resource"


Unauthorized = AuthorizationError


# ---------------------------------------------------------------------------
# Business rules (422)
# ---------------------------------------------------------------------------


class BusinessRuleError(AssistanceError):
    code = "BUSINESS_RULE"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 422
    default_message = "The operation is not allowed"


class SelfSubscription(BusinessRuleError):
    code = "SELF_SUBSCRIPTION"
    default_message = "The owner can not subscribe onto their own assistance"


class NoVacancies(BusinessRuleError):
    code = "NO_VACANCIES"
    default_message = "This assistance has no empty vacancies"


class AlreadySubscribed(BusinessRuleError):
    code = "ALREADY_SUBSCRIBED"
    default_message = "This user is already subscribed in this assistance"


class NotSubscribed(BusinessRuleError):
    code = "NOT_SUBSCRIBED"
    default_message = "User is not subscribed in this assistance"


class EventUnavailable(BusinessRuleError):
    code = "EVENT_UNAVAILABLE"
    default_message = "This assistance is no longer available"


# ---------------------------------------------------------------------------
# Not found (404)
# ---------------------------------------------------------------------------


class NotFoundError(AssistanceError):
    code = "NOT_FOUND"
    category = ErrorCategory.NOT_FOUND
    http_status = 404
    default_message = "Resource not found"


class EventNotFound(NotFoundError):
    code = "EVENT_NOT_FOUND"
    default_message = "Assistance not found"


class InvalidIdentifier(NotFoundError):
    code = "INVALID_IDENTIFIER"
    default_message = "Resource not found"


# ---------------------------------------------------------------------------
# Infrastructure (500)
# ---------------------------------------------------------------------------


class InfrastructureError(AssistanceError):
    code = "INTERNAL_ERROR"
    category = ErrorCategory.INFRASTRUCTURE
    http_status = 500
    default_message = "An unexpected error occurred"

    def to_response(self) -> dict:
        # The message may carry driver detail; callers only see the default.
        return {
            "error": {
                "code": self.code,
                "message": self.default_message,
                "category": self.category.value,
            }
        }


class ComposerError(InfrastructureError):
    code = "COMPOSER_ERROR"
