"""
Domain-specific exceptions for the policy engine.

Evaluation errors (EvalError and its subclasses) are returned inside an
EvaluationResult by the evaluator and never cross the public boundary as
uncaught exceptions. The policy layer collapses every one of them to deny.
"""

from typing import Any


class PolicyEngineError(Exception):
    """Base exception for all policy engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(PolicyEngineError):
    """
    Raised when an expression or policy fails structural validation.

    Examples:
    - Unknown expression type tag
    - Operation name not registered
    - Wrong number of arguments for an operation
    - Expression tree deeper than the configured maximum
    """

    pass


class RegistrationError(PolicyEngineError):
    """
    Raised when a host-defined operation cannot be registered.

    Examples:
    - Custom operation name collides with a built-in
    - Custom operation is not callable
    - Invalid arity bounds
    """

    pass


class ConfigurationError(PolicyEngineError):
    """
    Raised when a policy set is inconsistent.

    Examples:
    - Two policies registered for the same (model, action, scope, field)
    - Field-scoped policy without a field name
    """

    pass


class AuthorizationError(PolicyEngineError):
    """
    Raised by the policy layer when a mutation is not permitted.

    The message is always generic and details are always empty so that the
    caller cannot learn which rule, field or role caused the rejection.
    """

    GENERIC_MESSAGE = "Not authorized"

    def __init__(self) -> None:
        super().__init__(self.GENERIC_MESSAGE)


class EvalError(PolicyEngineError):
    """Base class for failures produced while evaluating an expression."""

    code = "eval_error"

    def __init__(self, message: str, *, path: str = "$", details: dict[str, Any] | None = None):
        self.path = path
        super().__init__(message, details={"path": path, **(details or {})})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, path={self.path!r})"


class DepthExceeded(EvalError):
    """Expression nesting went past the configured maximum depth."""

    code = "depth_exceeded"

    def __init__(self, max_depth: int, *, path: str):
        self.max_depth = max_depth
        super().__init__(
            f"Maximum expression depth ({max_depth}) exceeded at {path}",
            path=path,
            details={"max_depth": max_depth},
        )


class UnknownField(EvalError):
    """A field path could not be resolved (strict field access only)."""

    code = "unknown_field"

    def __init__(self, field_path: str, *, path: str = "$"):
        self.field_path = field_path
        super().__init__(
            f"Unknown field '{field_path}' at {path}",
            path=path,
            details={"field": field_path},
        )


class UnknownOperation(EvalError):
    """The named operation is not registered (or not allowed in this position)."""

    code = "unknown_operation"

    def __init__(self, name: str, *, path: str = "$"):
        self.name = name
        super().__init__(f"Unknown operation '{name}' at {path}", path=path, details={"name": name})


class TypeMismatch(EvalError):
    """An operation received an argument of the wrong type."""

    code = "type_mismatch"

    def __init__(self, op: str, arg_index: int, expected: str, actual: str, *, path: str = "$"):
        self.op = op
        self.arg_index = arg_index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Operation '{op}' expects {expected} for argument {arg_index}, got {actual}",
            path=path,
            details={"op": op, "arg_index": arg_index, "expected": expected, "actual": actual},
        )


class DivisionByZero(EvalError):
    """Division or modulo by zero."""

    code = "division_by_zero"

    def __init__(self, op: str, *, path: str = "$"):
        self.op = op
        super().__init__(f"Division by zero in '{op}' at {path}", path=path, details={"op": op})


class ArityError(EvalError):
    """An operation was invoked with an argument count outside its bounds."""

    code = "arity_error"

    def __init__(self, op: str, expected: str, actual: int, *, path: str = "$"):
        self.op = op
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Operation '{op}' expects {expected} arguments, got {actual}",
            path=path,
            details={"op": op, "expected": expected, "actual": actual},
        )


class OperationFailed(EvalError):
    """An operation raised something other than an EvalError (e.g. a host extension)."""

    code = "operation_failed"

    def __init__(self, op: str, reason: str, *, path: str = "$"):
        self.op = op
        super().__init__(
            f"Operation '{op}' failed at {path}: {reason}",
            path=path,
            details={"op": op, "reason": reason},
        )


# Stable error codes, used by structured logs
ERROR_CODE_MAP = {
    ValidationError: "validation_error",
    RegistrationError: "registration_error",
    ConfigurationError: "configuration_error",
    AuthorizationError: "authorization_error",
    DepthExceeded: DepthExceeded.code,
    UnknownField: UnknownField.code,
    UnknownOperation: UnknownOperation.code,
    TypeMismatch: TypeMismatch.code,
    DivisionByZero: DivisionByZero.code,
    ArityError: ArityError.code,
    OperationFailed: OperationFailed.code,
}


def get_error_code(error: Exception) -> str:
    """
    Get the stable error code for a given exception.

    Args:
        error: The exception instance

    Returns:
        Error code string (defaults to "internal_error" for unknown errors)
    """
    return ERROR_CODE_MAP.get(type(error), "internal_error")
