"""Result Type for Success/Failure/Loading Communication.

Every fallible or asynchronous operation in the monitoring core returns a
``Result`` instead of raising. A result is exactly one of three variants:

    - ``Success``: the operation completed and carries a value
    - ``Failure``: the operation failed and carries an error message plus context
    - ``Loading``: the operation is still in flight

Architecture:
    - Pure domain type with zero infrastructure dependencies
    - Variants are frozen dataclasses behind a shared base, so ``match``
      statements can dispatch on the concrete class
    - Combinators (map, chain, unwrap_or) make failure propagation explicit;
      none of them can turn a Failure into a Success

Example:
    ```python
    result = data_source.get_patient_by_id("P001")
    match result:
        case Success(value=patient):
            render(patient)
        case Failure(error=message):
            log_error(message)
        case Loading():
            show_spinner()
    ```
"""

import traceback
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

T = TypeVar('T')
R = TypeVar('R')


class UnwrapError(Exception):
    """Raised when unwrapping a Failure or Loading result."""

    def __init__(self, message: str, result: 'Result[Any]'):
        super().__init__(message)
        self.result = result


class Result(Generic[T]):
    """Base class of the three result variants.

    Use the classmethod constructors rather than instantiating variants
    directly when the caller should not care about the concrete class.
    """

    __slots__ = ()

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return Success(value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, BaseException],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        When ``error`` is an exception it is kept as ``cause`` and its
        traceback (if it was raised) is captured as ``trace``.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "SourceError", "DispatchError")
            error_details: Additional context (patient_id, source, etc.)

        Returns:
            Result: Failure result with error information
        """
        if isinstance(error, BaseException):
            message = str(error)
            type_name = error_type or type(error).__name__
            cause: Optional[BaseException] = error
            trace = (
                ''.join(traceback.format_exception(type(error), error, error.__traceback__))
                if error.__traceback__ is not None else None
            )
        else:
            message = error
            type_name = error_type or "UnknownError"
            cause = None
            trace = None

        return Failure(
            error=message,
            error_type=type_name,
            error_details=dict(error_details or {}),
            cause=cause,
            trace=trace
        )

    @classmethod
    def loading(cls) -> 'Result[T]':
        """Create a result for an operation that is still in flight."""
        return Loading()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def is_success(self) -> bool:
        """Check if result is successful."""
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return isinstance(self, Failure)

    def is_loading(self) -> bool:
        """Check if result is still loading."""
        return isinstance(self, Loading)

    # ------------------------------------------------------------------
    # Combinators
    # ------------------------------------------------------------------

    def map(self, transform: Callable[[T], R]) -> 'Result[R]':
        """Transform the value of a Success; forward Failure/Loading unchanged."""
        if isinstance(self, Success):
            return Success(transform(self.value))
        return self  # type: ignore[return-value]

    def chain(self, operation: Callable[[T], 'Result[R]']) -> 'Result[R]':
        """Run another fallible operation on the value of a Success.

        Failure and Loading short-circuit: ``operation`` is never invoked and
        the original state is returned.
        """
        if isinstance(self, Success):
            return operation(self.value)
        return self  # type: ignore[return-value]

    async def chain_async(
        self,
        operation: Callable[[T], Awaitable['Result[R]']]
    ) -> 'Result[R]':
        """Async variant of :meth:`chain`."""
        if isinstance(self, Success):
            return await operation(self.value)
        return self  # type: ignore[return-value]

    def map_or(self, default: R, transform: Callable[[T], R]) -> R:
        """Transform the value of a Success, or return ``default``."""
        if isinstance(self, Success):
            return transform(self.value)
        return default

    def unwrap(self) -> T:
        """Return the value of a Success.

        Raises:
            UnwrapError: If the result is a Failure or still Loading
        """
        if isinstance(self, Success):
            return self.value
        if isinstance(self, Failure):
            raise UnwrapError(f"Unwrapped failure result: {self.error}", self)
        raise UnwrapError("Unwrapped loading result", self)

    def unwrap_or(self, default: T) -> T:
        """Return the value of a Success, or ``default``."""
        if isinstance(self, Success):
            return self.value
        return default

    def unwrap_or_else(self, default: Callable[[], T]) -> T:
        """Return the value of a Success, or compute a default."""
        if isinstance(self, Success):
            return self.value
        return default()

    # ------------------------------------------------------------------
    # Observers (side effects only, the result is returned unchanged)
    # ------------------------------------------------------------------

    def on_success(self, callback: Callable[[T], Any]) -> 'Result[T]':
        if isinstance(self, Success):
            callback(self.value)
        return self

    def on_failure(self, callback: Callable[[str, Optional[BaseException]], Any]) -> 'Result[T]':
        if isinstance(self, Failure):
            callback(self.error, self.cause)
        return self

    def on_loading(self, callback: Callable[[], Any]) -> 'Result[T]':
        if isinstance(self, Loading):
            callback()
        return self


@dataclass(frozen=True, repr=False)
class Success(Result[T]):
    """Result of an operation that completed successfully."""

    value: T

    @property
    def error(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


@dataclass(frozen=True, repr=False)
class Failure(Result[T]):
    """Result of an operation that failed.

    Attributes:
        error: Human-readable error message
        error_type: Taxonomy name (ValidationError, SourceError, DispatchError, ...)
        error_details: Additional context (patient_id, source, etc.)
        cause: Original exception, if any
        trace: Formatted traceback of ``cause``, if it was raised
    """

    error: str
    error_type: str = "UnknownError"
    error_details: dict = field(default_factory=dict, compare=False, hash=False)
    cause: Optional[BaseException] = field(default=None, compare=False, hash=False)
    trace: Optional[str] = field(default=None, compare=False, hash=False)

    @property
    def value(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"Failure({self.error_type}: {self.error})"


@dataclass(frozen=True, repr=False)
class Loading(Result[T]):
    """Result of an operation that has not completed yet."""

    @property
    def value(self) -> None:
        return None

    @property
    def error(self) -> None:
        return None

    def __repr__(self) -> str:
        return "Loading()"
