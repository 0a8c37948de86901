"""
Spare Finance - Exception Hierarchy

Structured exception types for failures talking to third-party services.
Business-rule violations inside services are raised as ValueError and
translated to HTTP 400 by the routes.

Exception Categories:
    - IntegrationError: Base for external service failures
    - PlaidError: Plaid API returned an error payload
    - QuestradeError: Questrade token or REST failures
    - BillingError: Stripe failures outside webhook verification
"""

from typing import Any, Dict, Optional


class SpareError(Exception):
    """
    Base exception for all Spare Finance errors.

    Attributes:
        message: Human-readable error description
        code: Optional error code for programmatic handling
        details: Optional dict with additional context
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code or self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# EXTERNAL SERVICE ERRORS
# =============================================================================


class IntegrationError(SpareError):
    """Third-party service call failed."""

    status_code = 502


class PlaidError(IntegrationError):
    """Plaid API error."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        error_type: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, code=error_code, **kwargs)
        self.error_code = error_code
        self.error_type = error_type


class QuestradeError(IntegrationError):
    """Questrade API or token error."""

    pass


class BillingError(IntegrationError):
    """Stripe API error."""

    pass
