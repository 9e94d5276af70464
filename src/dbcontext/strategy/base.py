"""
Base strategy interface for dialect-specific behavior.

Defines the abstract base class that all dialect strategies inherit from.
A strategy knows how to reach its database (connection URL, engine
arguments, per-connection settings), how to invoke a stored procedure, and
how to read the native error code out of a driver exception so that
execution contexts can tell application-raised errors from engine failures.

Execution contexts never branch on the dialect themselves; they ask the
strategy registered for the connection's SQLAlchemy dialect name.
"""
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbcontext.exceptions import ConfigurationError

if TYPE_CHECKING:
    from dbcontext.options import DatabaseOptions

# SQLAlchemy dialect name -> strategy class, filled by @register_strategy
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}

_PROCEDURE_NAME = re.compile(r'^[A-Za-z_][\w$#]*(\.[A-Za-z_][\w$#]*)*$')


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Examples
        @register_strategy('oracle')
        class OracleStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


def check_procedure_name(name: str) -> str:
    """Validate a (possibly schema-qualified) stored procedure name.

    Procedure names are spliced into the call text, so only plain
    identifiers are accepted.
    """
    name = (name or '').strip()
    if not _PROCEDURE_NAME.match(name):
        raise ValueError(f'Invalid stored procedure name: {name!r}')
    return name


class DatabaseStrategy(ABC):
    """Everything execution contexts need to know about one dialect.
    """

    #: Native error code the server reports for errors raised on purpose
    #: by application logic (stored procedures, triggers).
    user_error_code: int | str | None = None

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """SQLAlchemy dialect name the strategy is registered under."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """URL for ``create_engine`` built from connection options."""

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Dialect-specific ``create_engine`` arguments (``connect_args`` etc.)."""

    @abstractmethod
    def configure_connection(self, connection: sa.Connection) -> None:
        """Apply per-connection settings right after a connection is opened.

        Must not begin a transaction on the SQLAlchemy connection: the
        execution context still has to choose auto-commit or a transaction.
        """

    @abstractmethod
    def build_procedure_call(self, name: str, param_names: list[str]) -> str:
        """Statement text invoking a stored procedure.

        Args:
            name: Validated procedure name, possibly schema-qualified
            param_names: Bound parameter names, in binding order

        Returns
            Text using ``:name`` bind markers, one per parameter
        """

    @abstractmethod
    def get_error_code(self, err: BaseException) -> int | str | None:
        """Native error code carried by a driver exception, or None."""

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Option fields that must be set (non-empty, non-zero) for this dialect."""

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Check the dialect's required options.

        Raises
            ConfigurationError: Naming the first missing field
        """
        missing = [f for f in cls.get_required_options() if not getattr(options, f)]
        if missing:
            raise ConfigurationError('field {} cannot be None or 0', missing[0])

    def get_error_message(self, err: BaseException) -> str:
        """Server message for a driver exception, without driver decoration.
        """
        return str(err).strip()

    def is_user_raised(self, err: BaseException,
                       code: int | str | None = None) -> bool:
        """Whether a driver exception was raised on purpose by application logic.

        ``code`` replaces the dialect's `user_error_code` when given.
        """
        expected = code if code is not None else self.user_error_code
        return expected is not None and self.get_error_code(err) == expected

    def quote_identifier(self, identifier: str) -> str:
        """ANSI double-quoted identifier; SQL Server overrides with brackets."""
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'
