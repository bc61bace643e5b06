"""Error taxonomy for the encode pipeline.

Every per-job failure is an EncodarrError subclass so the queue can tell an
expected, already-explained failure apart from a bug (plain Exception).
"""

from typing import Optional, Sequence


class EncodarrError(Exception):
    """Base class for pipeline errors."""

    pass


class SourceUnavailable(EncodarrError):
    """Raised when the probing target is missing or unreadable."""

    def __init__(self, path, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        message = f"Path {path} no longer exists or is otherwise inaccessible"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidRule(EncodarrError):
    """Raised when a rule clause uses an operator the evaluator does not know."""

    def __init__(self, operator: str):
        self.operator = operator
        super().__init__(f"Invalid operator {operator!r}")


class InvalidComparison(EncodarrError):
    """Raised when a clause compares values that have no ordering between them."""

    def __init__(self, prop: str, operator: str, actual, expected):
        self.property = prop
        self.operator = operator
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"Cannot compare {prop}={actual!r} ({type(actual).__name__}) "
            f"{operator} {expected!r} ({type(expected).__name__})"
        )


class EncodeFailed(EncodarrError):
    """Raised when the external encoder reports an error."""

    def __init__(self, message: str, returncode: Optional[int] = None, output_tail: Sequence[str] = ()):
        self.returncode = returncode
        self.output_tail = list(output_tail)
        super().__init__(message)


class RelocationFailed(EncodarrError):
    """Raised when the finished encode cannot be copied to its destination."""

    def __init__(self, temp_path, dest_path, reason: str):
        self.temp_path = temp_path
        self.dest_path = dest_path
        super().__init__(f"Unable to move {temp_path} to {dest_path}: {reason}")
