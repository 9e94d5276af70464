"""
SQLite-specific strategy implementation.

SQLite has no stored procedures. Application logic signals business-rule
failures with ``RAISE(ABORT, 'message')`` inside triggers, which the driver
reports with the extended result code SQLITE_CONSTRAINT_TRIGGER.
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbcontext.exceptions import ConfigurationError
from dbcontext.strategy.base import DatabaseStrategy, register_strategy
from dbcontext.utils import get_raw_connection

if TYPE_CHECKING:
    from dbcontext.options import DatabaseOptions

logger = logging.getLogger(__name__)

SQLITE_CONSTRAINT_TRIGGER = 1811


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    user_error_code = SQLITE_CONSTRAINT_TRIGGER

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        if options.timeout:
            return {'connect_args': {'timeout': options.timeout}}
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def configure_connection(self, connection: sa.Connection) -> None:
        """Configure connection settings for SQLite.

        Runs on the driver connection so that SQLAlchemy does not autobegin.
        """
        get_raw_connection(connection).execute('PRAGMA foreign_keys = ON')
        logger.debug('Enabled foreign key enforcement on SQLite connection')

    def build_procedure_call(self, name: str, param_names: list[str]) -> str:
        raise ConfigurationError('SQLite does not support stored procedures ({})', name)

    def get_error_code(self, err: BaseException) -> int | None:
        """Extended result code (Python 3.11+ sqlite3 errors carry it)."""
        return getattr(err, 'sqlite_errorcode', None)
