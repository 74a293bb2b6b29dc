"""Custom exceptions for the API test suite."""
from typing import Optional, Any, Dict


class AutomationFrameworkError(Exception):
    """Base exception for all framework errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(AutomationFrameworkError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None,
                 config_file: Optional[str] = None, **kwargs):
        details = {"config_key": config_key, "config_file": config_file}
        details.update(kwargs)
        super().__init__(message, details)


class TransportError(AutomationFrameworkError):
    """Raised when an HTTP call cannot be completed (network error, timeout)."""

    def __init__(self, message: str, method: Optional[str] = None,
                 url: Optional[str] = None, **kwargs):
        details = {"method": method, "url": url}
        details.update(kwargs)
        super().__init__(message, details)


class UndefinedStepError(AutomationFrameworkError):
    """Raised when no registered step matches a phrase."""

    def __init__(self, phrase: str):
        super().__init__(f"Undefined step: {phrase}", {"phrase": phrase})
        self.phrase = phrase


class AmbiguousStepError(AutomationFrameworkError):
    """Raised when two templates can match the same phrase, at registration or dispatch."""

    def __init__(self, template: str, existing: str, phrase: Optional[str] = None):
        message = f"Step '{template}' is ambiguous with already registered step '{existing}'"
        if phrase is not None:
            message += f" (both match '{phrase}')"
        super().__init__(message, {"template": template, "existing": existing, "phrase": phrase})
        self.template = template
        self.existing = existing
        self.phrase = phrase


class MissingVariableError(AutomationFrameworkError):
    """Raised when a stored variable is read before it was set."""

    def __init__(self, name: str, **kwargs):
        details = {"variable": name}
        details.update(kwargs)
        super().__init__(f"Variable '{name}' has not been stored in this scenario", details)
        self.name = name


class NoResponseError(AutomationFrameworkError):
    """Raised when a response assertion runs before any request was sent."""

    def __init__(self, message: str = "No response captured yet; send a request first"):
        super().__init__(message)


class MissingCredentialsError(AutomationFrameworkError):
    """Raised when a request asks for an auth style that is not active."""

    def __init__(self, style: str, active: Optional[str] = None):
        super().__init__(
            f"No {style} credentials are active for this scenario",
            {"requested": style, "active": active}
        )


class StepTimeoutError(AutomationFrameworkError):
    """Raised when a step exceeds the suite-wide wall-clock ceiling."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None,
                 operation: Optional[str] = None, **kwargs):
        details = {"timeout_seconds": timeout_seconds, "operation": operation}
        details.update(kwargs)
        super().__init__(message, details)


class ResponseAssertionError(AutomationFrameworkError, AssertionError):
    """Raised when a response does not meet an expectation."""

    def __init__(self, message: str, field: Optional[str] = None,
                 expected: Optional[Any] = None, actual: Optional[Any] = None, **kwargs):
        details = {"field": field, "expected": expected, "actual": actual}
        details.update(kwargs)
        super().__init__(message, details)
        self.field = field
        self.expected = expected
        self.actual = actual
