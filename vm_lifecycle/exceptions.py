"""
Custom Exception Hierarchy for Azure VM Lifecycle

Every error raised by the orchestrators derives from VmLifecycleError so the
CLI can tell fatal precondition failures (not found, ambiguous, invalid
argument) apart from resource-level failures that are recorded and skipped.
"""

from typing import Any, Dict, List, Optional


class VmLifecycleError(Exception):
    """
    Base exception class for all VM lifecycle errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


def _resource_context(
    kwargs: Dict[str, Any],
    resource_type: Optional[str],
    name: Optional[str],
    resource_group: Optional[str],
) -> Dict[str, Any]:
    context = kwargs.get("context", {})
    if resource_type:
        context["resource_type"] = resource_type
    if name:
        context["name"] = name
    if resource_group:
        context["resource_group"] = resource_group
    return context


class ResourceNotFoundError(VmLifecycleError):
    """Raised when a named resource does not exist."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        name: Optional[str] = None,
        resource_group: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        kwargs["context"] = _resource_context(kwargs, resource_type, name, resource_group)
        kwargs.setdefault("error_code", "RESOURCE_NOT_FOUND")
        super().__init__(message, **kwargs)


class AmbiguousResourceError(VmLifecycleError):
    """Raised when a name resolves to more than one resource."""

    def __init__(
        self,
        message: str,
        name: Optional[str] = None,
        match_count: int = 0,
        resource_groups: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if name:
            context["name"] = name
        context["match_count"] = match_count
        if resource_groups:
            context["resource_groups"] = ",".join(resource_groups)
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AMBIGUOUS_RESOURCE")
        kwargs.setdefault(
            "recovery_suggestion",
            "Re-run with --resource-group to select exactly one resource",
        )
        super().__init__(message, **kwargs)
        self.match_count = match_count


class InvalidArgumentError(VmLifecycleError):
    """Raised when caller-supplied arguments cannot be acted upon."""

    def __init__(self, message: str, argument: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if argument:
            context["argument"] = argument
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_ARGUMENT")
        super().__init__(message, **kwargs)


class ResourceOperationError(VmLifecycleError):
    """Raised when the control plane rejects a call (conflict or transient)."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        name: Optional[str] = None,
        resource_group: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        kwargs["context"] = _resource_context(kwargs, resource_type, name, resource_group)
        kwargs.setdefault("error_code", "OPERATION_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Resolve the conflict in the portal or re-run the command",
        )
        super().__init__(message, **kwargs)


class OperationAbortedError(VmLifecycleError):
    """Raised when the user declines confirmation."""

    def __init__(self, message: str = "Operation cancelled by user", **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "OPERATION_ABORTED")
        super().__init__(message, **kwargs)


class ConfigurationError(VmLifecycleError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        kwargs["context"] = context
        kwargs.setdefault("error_code", "CONFIGURATION_ERROR")
        kwargs.setdefault(
            "recovery_suggestion",
            "Set the missing value in the environment or in a .env file",
        )
        super().__init__(message, **kwargs)
