"""
Dialect strategies, looked up by SQLAlchemy dialect name.

Importing this package registers the PostgreSQL, SQLite and SQL Server
strategies. Strategies are stateless, so one cached instance per dialect is
shared by every connection.
"""
from functools import lru_cache

from dbcontext.strategy.base import _STRATEGY_REGISTRY
from dbcontext.strategy.base import DatabaseStrategy as DatabaseStrategy
from dbcontext.strategy.base import check_procedure_name as check_procedure_name
from dbcontext.strategy.base import register_strategy as register_strategy
from dbcontext.strategy.postgres import PostgresStrategy as PostgresStrategy
from dbcontext.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from dbcontext.strategy.sqlserver import SQLServerStrategy as SQLServerStrategy
from dbcontext.utils import get_dialect_name


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Strategy class registered for a dialect.

    Raises
        ValueError: If no strategy is registered for the dialect
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. '
                         f'Available: {get_available_dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for a dialect name."""
    return get_strategy_class(dialect)()


def get_db_strategy(cn) -> DatabaseStrategy:
    """Strategy for a SQLAlchemy connection or engine (or a DBAPI connection)."""
    return get_strategy(get_dialect_name(cn))


def get_available_dialects() -> list[str]:
    return list(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY
