"""
Connection options and the loaders that turn buffered rows into tables.

A data loader is called as ``loader(rows, columns, **kwargs)`` where
``rows`` is a list of dicts keyed by column name and ``columns`` the column
names in result order. Loaders must return an empty table, never None,
when there are no rows.
"""
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import pandas as pd
import pyarrow as pa
from dbcontext.exceptions import ConfigurationError
from dbcontext.strategy import get_available_dialects, get_strategy_class
from dbcontext.strategy import is_supported_dialect

from libb import ConfigOptions, scriptname

__all__ = [
    'DatabaseOptions',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
]

Rows = Sequence[dict[str, Any]]


def iterdict_data_loader(data: Rows, columns: Sequence[str], **kwargs) -> list[dict]:
    """Rows as a list of dicts. Extra keyword arguments are ignored.
    """
    return list(data or [])


def _empty_frame(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame(columns=list(columns))


def pandas_numpy_data_loader(data: Rows, columns: Sequence[str], **kwargs) -> pd.DataFrame:
    """NumPy-backed DataFrame; the default loader.

    Column order follows the result, including for empty results.
    """
    if not data:
        return _empty_frame(columns)
    return pd.DataFrame.from_records(list(data), columns=list(columns))


def pandas_pyarrow_data_loader(data: Rows, columns: Sequence[str], **kwargs) -> pd.DataFrame:
    """Arrow-backed DataFrame (``pd.ArrowDtype`` columns).
    """
    if not data:
        return _empty_frame(columns)
    names = list(columns)
    table = pa.table({name: [row[name] for row in data] for name in names})
    return table.to_pandas(types_mapper=pd.ArrowDtype)


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options describing where an `OptionsSource` connects to.

    drivername is the SQLAlchemy dialect: `postgresql`, `sqlite` or `mssql`.
    Which other fields are required depends on the dialect. `odbc_driver`
    only matters for `mssql`; `appname` defaults to the running script.

    Pooling is left to SQLAlchemy and off by default, so every command of an
    auto-commit context gets a fresh connection:
    - use_pool: Whether to keep a connection pool
    - pool_max_connections: Pool size
    - pool_max_idle_time: Seconds before a pooled connection is recycled
    - pool_wait_timeout: Seconds to wait for a free pooled connection
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    odbc_driver: str = 'ODBC Driver 18 for SQL Server'
    data_loader: Callable[..., Any] | None = None
    # Connection pooling parameters
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            raise ConfigurationError('drivername must be one of: {}', get_available_dialects())
        get_strategy_class(self.drivername).validate_options(self)
        self.appname = self.appname or scriptname() or 'python_console'
        self.data_loader = self.data_loader or pandas_numpy_data_loader
