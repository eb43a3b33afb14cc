"""
Quix - Custom exceptions for error handling.
"""

from typing import Any, Optional


class QuixError(Exception):
    """Base exception for all Quix orchestration errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class SelectionError(QuixError):
    """Raised when the model call behind tool category selection fails."""

    pass


class PlanningError(QuixError):
    """Raised when plan generation fails or returns an invalid plan."""

    pass


class ModelCallError(QuixError):
    """Raised when a chat model call fails during execution."""

    pass


class ModelTimeoutError(ModelCallError):
    """Raised when a chat model call exceeds its timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.timeout = timeout


class ExecutionLimitError(QuixError):
    """Raised when the execution loop exceeds its maximum number of model cycles.

    Reported separately from model and network failures so that a runaway
    plan can be told apart from an outage.
    """

    def __init__(
        self,
        message: str,
        max_cycles: int,
        transcript: Optional[list[Any]] = None,
        **context: Any,
    ) -> None:
        super().__init__(message, **context)
        self.max_cycles = max_cycles
        self.transcript = transcript or []


class ToolNotFoundError(QuixError):
    """Raised when a tool name does not resolve to a registered tool."""

    def __init__(self, name: str, available: Optional[list[str]] = None) -> None:
        super().__init__(f"Unknown tool: {name}", name=name)
        self.name = name
        self.available = available or []


class ToolArgumentsError(QuixError):
    """Raised when proposed tool arguments fail schema validation."""

    def __init__(self, message: str, tool: str, errors: Optional[list[Any]] = None) -> None:
        super().__init__(message, tool=tool)
        self.tool = tool
        self.errors = errors or []


class SchemaError(QuixError):
    """Raised when a parameter schema cannot be translated into a validator."""

    pass


class BridgeInitializationError(QuixError):
    """Raised when an external tool server cannot be connected or enumerated."""

    def __init__(self, provider: str, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, provider=provider)
        self.provider = provider
        self.cause = cause


class BridgeNotConnectedError(QuixError):
    """Raised when an operation is attempted on a closed or unopened session."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"Not connected to tool server '{provider}'. Call connect() first.",
            provider=provider,
        )
        self.provider = provider
