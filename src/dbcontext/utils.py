"""Low-level connection utilities with no internal dependencies.

These utilities work with SQLAlchemy connections, engines and raw DBAPI
connections and import nothing from the rest of the package, making them
safe to use from any module without circular import concerns.
"""
import logging
from typing import Any

logger = logging.getLogger(__name__)


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a database connection or engine.
    """
    if hasattr(obj, 'dialect'):
        dialect = obj.dialect
        if isinstance(dialect, str):
            return dialect.lower()
        return str(dialect.name).lower()

    if hasattr(obj, 'engine') and hasattr(obj.engine, 'dialect'):
        return str(obj.engine.dialect.name).lower()

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'psycopg' in type_name:
        return 'postgresql'
    if 'sqlite3' in type_name:
        return 'sqlite'
    if 'pyodbc' in type_name:
        return 'mssql'

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw DBAPI connection from a SQLAlchemy connection."""
    raw_conn = connection
    if hasattr(connection, 'connection'):
        raw_conn = connection.connection
    if hasattr(raw_conn, 'driver_connection'):
        raw_conn = raw_conn.driver_connection
    return raw_conn


def enable_auto_commit(connection: Any) -> None:
    """Put a SQLAlchemy connection in auto-commit mode.

    Must be called before the connection begins its first transaction.
    """
    connection.execution_options(isolation_level='AUTOCOMMIT')
    logger.debug(f'Enabled auto-commit for connection {id(connection)}')


def strip_parameter_name(name: str) -> str:
    """Strip the marker a caller may have put in front of a parameter name.

    >>> strip_parameter_name('@CNTRY_CODE')
    'CNTRY_CODE'
    >>> strip_parameter_name(':id')
    'id'
    """
    name = name.strip()
    if name[:1] in {'@', ':'}:
        name = name[1:]
    if not name:
        raise ValueError('Parameter name cannot be empty')
    return name
