"""
Error Taxonomy

Every failure the engine surfaces to a caller is a CulturalTruthError
carrying a machine-readable classification and, where one exists,
remediation text a human can act on.

  - ValidationError:       malformed or missing tool arguments
  - FeatureDisabledError:  tool gated off by the active environment
  - ConfigurationError:    process cannot start (missing API key)
  - ExternalServiceError:  Qloo call failed (rate limit, auth, 5xx, timeout)
  - CircuitOpenError:      breaker is open, call was not attempted

External failures are absorbed per-call by the orchestrator. They only
reach a caller from the direct lookup tools (search, trends, ...).
"""

from __future__ import annotations

from typing import Optional


class CulturalTruthError(Exception):
    """Base class for all engine errors."""

    classification = "system_error"
    remediation: Optional[str] = None

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if remediation is not None:
            self.remediation = remediation

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "classification": self.classification,
            "message": self.message,
            "remediation": self.remediation,
        }


class ValidationError(CulturalTruthError):
    classification = "validation_error"
    remediation = "Check the tool arguments and try again."


class FeatureDisabledError(ValidationError):
    classification = "feature_disabled"
    remediation = (
        "Enable the feature with configure_environment or switch to "
        "Production mode."
    )


class ConfigurationError(CulturalTruthError):
    classification = "configuration_error"
    remediation = "Set QLOO_API_KEY in the environment or .env file."


# --- External service failures ---

class ExternalServiceError(CulturalTruthError):
    """A Qloo API call failed."""

    classification = "external_service_error"
    remediation = "Retry later. Bias analysis still works without cultural data."

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        remediation: Optional[str] = None,
    ):
        super().__init__(message, remediation=remediation)
        self.status_code = status_code


class RateLimitedError(ExternalServiceError):
    classification = "rate_limited"
    remediation = "Wait a minute and retry, or lower RATE_LIMIT_PER_MINUTE."


class UnauthorizedError(ExternalServiceError):
    classification = "unauthorized"
    remediation = "Check your Qloo API key credentials."


class ForbiddenError(ExternalServiceError):
    classification = "forbidden"
    remediation = "Your Qloo subscription does not include this endpoint."


class ServerError(ExternalServiceError):
    classification = "server_error"
    remediation = "The Qloo API is having problems. Try again later."


class ServiceTimeoutError(ExternalServiceError):
    classification = "timeout"
    remediation = "The Qloo API did not respond in time. Retry or raise API_TIMEOUT."


class CircuitOpenError(CulturalTruthError):
    """Raised when the circuit breaker is open."""

    classification = "breaker_open"
    remediation = (
        "Too many consecutive Qloo failures. Cultural lookups resume "
        "automatically after the recovery timeout."
    )
