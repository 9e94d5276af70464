"""
Exception classes raised by execution contexts.

Everything this package raises derives from `DalError`. Driver exceptions
never escape an execute operation unwrapped; they are kept as ``__cause__``.
"""
import re

# Substrings of driver messages that indicate a transient condition
TRANSIENT_PATTERNS = [
    r'ssl (syscall|error)',
    r'eof detected',
    r'server closed the connection',
    r'connection (is )?(closed|reset|refused|lost|terminated|broken)',
    r'broken pipe',
    r'communication link failure',
    r'could not connect',
    r'no route to host',
    r'network.*(unreachable|error)',
    r'timeout( expired)?',
    r'timed out',
    r'deadlock',
    r'database is locked',
    r'database .* (is )?(unavailable|starting up|shutting down)',
    r'too many connections',
]

_TRANSIENT = re.compile('|'.join(TRANSIENT_PATTERNS), re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """Whether a failure looks transient, so that retrying may succeed.

    Nothing in this package retries on its own. Application-raised errors
    and protocol violations are never retryable; for anything else the
    message of the error and of each ``__cause__`` is matched against
    `TRANSIENT_PATTERNS`.
    """
    if isinstance(exc, (UserRaisedDatabaseError, ProtocolViolationError)):
        return False
    while exc is not None:
        if _TRANSIENT.search(str(exc)):
            return True
        exc = exc.__cause__
    return False


class DalError(Exception):
    """Base class for all data access errors.

    The message may be given as a format string followed by its arguments.
    """

    def __init__(self, message: str = '', *args) -> None:
        if args:
            message = message.format(*args)
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ''


class ConfigurationError(DalError):
    """Connection source could not produce a usable connection.
    """


class ProtocolViolationError(DalError):
    """Execution context state machine was misused by the caller.
    """


class UserRaisedDatabaseError(DalError):
    """Error raised on purpose by server-side application logic.

    Carries the server's message verbatim.
    """

    def __init__(self, message: str, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code


class EngineError(DalError):
    """Any other failure reported by the database driver.
    """

    def __init__(self, operation: str, message: str) -> None:
        super().__init__('Database error occurred in {}. {}', operation, message)
        self.operation = operation


class UnexpectedError(DalError):
    """Non-driver failure during execution.
    """

    def __init__(self, operation: str, message: str) -> None:
        super().__init__('Error occurred in {}. {}', operation, message)
        self.operation = operation
