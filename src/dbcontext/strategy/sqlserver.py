"""
SQL Server-specific strategy implementation.

This module implements the DatabaseStrategy interface for SQL Server through
pyodbc. It handles SQL Server's unique features such as:
- EXEC syntax with named ``@param`` arguments for stored procedures
- Square-bracket identifier quoting
- Native error numbers embedded in the ODBC error message; ``RAISERROR``
  and ``THROW`` without an explicit number report 50000
"""
import logging
import re
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbcontext.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbcontext.options import DatabaseOptions

logger = logging.getLogger(__name__)

USER_DEFINED_ERROR = 50000

# [42000] [Microsoft][ODBC Driver 18 for SQL Server][SQL Server]Item exists (50000) (SQLExecDirectW)
_NATIVE_CODE = re.compile(r'\((\d+)\)\s*\(SQL\w*\)')
_ODBC_PREFIX = re.compile(r'^(?:\[[^\]]*\]\s*)+')
_ODBC_SUFFIX = re.compile(r'\s*\(\d+\)\s*\(SQL\w*\).*$', re.DOTALL)


def _odbc_message(err: BaseException) -> str:
    """Return the driver's message text (pyodbc stores it as the second arg)."""
    args = getattr(err, 'args', ())
    if len(args) > 1 and isinstance(args[1], str):
        return args[1]
    return str(err)


@register_strategy('mssql')
class SQLServerStrategy(DatabaseStrategy):
    """SQL Server-specific operations.
    """

    user_error_code = USER_DEFINED_ERROR

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQL Server."""
        return 'mssql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQL Server over pyodbc."""
        query = {'driver': options.odbc_driver}
        if options.appname:
            query['APP'] = options.appname

        return sa.URL.create(
            drivername='mssql+pyodbc',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQL Server."""
        if options.timeout:
            return {'connect_args': {'timeout': options.timeout}}
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQL Server connections."""
        return ['hostname', 'database', 'odbc_driver']

    def configure_connection(self, connection: sa.Connection) -> None:
        """SQL Server settings are passed through the URL; nothing to do.
        """

    def quote_identifier(self, identifier: str) -> str:
        """Quote an identifier for SQL Server"""
        return f"[{identifier.replace(']', ']]')}]"

    def build_procedure_call(self, name: str, param_names: list[str]) -> str:
        """Build an EXEC statement binding every parameter by name.
        """
        quoted = '.'.join(self.quote_identifier(part) for part in name.split('.'))
        if not param_names:
            return f'EXEC {quoted}'
        args = ', '.join(f'@{p}=:{p}' for p in param_names)
        return f'EXEC {quoted} {args}'

    def get_error_code(self, err: BaseException) -> int | None:
        """Native error number parsed from the ODBC message.

        When several errors are reported the first one wins.
        """
        match = _NATIVE_CODE.search(_odbc_message(err))
        if match is None:
            logger.debug(f'No native error number in {err!r}')
            return None
        return int(match.group(1))

    def get_error_message(self, err: BaseException) -> str:
        """Server message with the ODBC source tags and error number removed.
        """
        message = _ODBC_PREFIX.sub('', _odbc_message(err))
        return _ODBC_SUFFIX.sub('', message).strip()
