"""
Connection sources.

This module provides:
1. The `ConnectionSource` contract consumed by execution contexts
2. `EngineSource`, a source over an existing SQLAlchemy engine
3. `OptionsSource` and the `connection_source()` factory, which build an
   engine from `DatabaseOptions` (a dict, an options object or a config path)
4. Engine creation and management through a thread-safe registry

A source hands out freshly opened SQLAlchemy connections. It never tracks
them; the execution context that asked for a connection owns it and is
responsible for closing it.
"""
import atexit
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import sqlalchemy as sa
from dbcontext.exceptions import ConfigurationError, DalError
from dbcontext.options import DatabaseOptions, pandas_numpy_data_loader
from dbcontext.strategy import get_db_strategy, get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'ConnectionSource',
    'EngineSource',
    'OptionsSource',
    'connection_source',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def _pool_kwargs(options: DatabaseOptions) -> dict[str, Any]:
    """Pooling arguments for create_engine; no pool unless asked for."""
    if not options.use_pool:
        return {'poolclass': NullPool}
    return {
        'pool_size': options.pool_max_connections,
        'pool_recycle': options.pool_max_idle_time,
        'pool_timeout': options.pool_wait_timeout,
        'pool_pre_ping': True,
        'pool_reset_on_return': 'rollback',
    }


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Engine shared by every source built from equal options.

    Extra keyword arguments are passed to ``engine_factory`` when the engine
    is first created.
    """
    key = str(options)
    with _engine_registry_lock:
        engine = _engine_registry.get(key)
        if engine is None:
            strategy = get_strategy(options.drivername)
            engine_kwargs = {**strategy.get_engine_kwargs(options), **_pool_kwargs(options), **kwargs}
            engine = engine_factory(strategy.build_connection_url(options), **engine_kwargs)
            _engine_registry[key] = engine
            logger.debug(f'Created {options.drivername} engine (pooled: {options.use_pool})')
        return engine


def dispose_all_engines() -> None:
    """Dispose every registered engine; also runs at interpreter exit.
    """
    with _engine_registry_lock:
        engines = list(_engine_registry.values())
        _engine_registry.clear()
    for engine in engines:
        engine.dispose()
    logger.debug(f'Disposed {len(engines)} engines')


atexit.register(dispose_all_engines)


class ConnectionSource(ABC):
    """Produces ready-to-use connections for execution contexts.

    Subclasses implement `_connect`; `get_connection` adds dialect
    configuration and turns every failure into `ConfigurationError`.
    """

    @abstractmethod
    def _connect(self) -> sa.Connection:
        """Open a new SQLAlchemy connection."""

    @property
    def data_loader(self) -> Callable[..., Any]:
        """Loader that turns buffered rows into the caller's tabular type."""
        return pandas_numpy_data_loader

    def get_connection(self) -> sa.Connection:
        """Open and configure a new connection.

        Raises
            ConfigurationError: If no usable connection could be produced
        """
        try:
            connection = self._connect()
        except DalError:
            raise
        except Exception as err:
            raise ConfigurationError('Could not create connection from {}. {}', self, err) from err

        try:
            get_db_strategy(connection).configure_connection(connection)
        except Exception as err:
            connection.close()
            raise ConfigurationError('Could not configure connection from {}. {}', self, err) from err

        logger.debug(f'Opened connection {id(connection)} from {self}')
        return connection


class EngineSource(ConnectionSource):
    """Connection source over an existing SQLAlchemy engine.
    """

    def __init__(self, engine: Engine,
                 data_loader: Callable[..., Any] | None = None) -> None:
        self.engine = engine
        self._data_loader = data_loader

    def __repr__(self) -> str:
        return f'EngineSource({self.engine.url.render_as_string(hide_password=True)})'

    @property
    def data_loader(self) -> Callable[..., Any]:
        return self._data_loader or pandas_numpy_data_loader

    def _connect(self) -> sa.Connection:
        return self.engine.connect()


class OptionsSource(ConnectionSource):
    """Configuration-based connection source.

    The engine is created lazily and shared through the engine registry by
    every source built from equal options.
    """

    def __init__(self, options: DatabaseOptions) -> None:
        self.options = options

    def __repr__(self) -> str:
        return f'OptionsSource({self.options.drivername}:{self.options.database})'

    @property
    def data_loader(self) -> Callable[..., Any]:
        return self.options.data_loader

    @property
    def engine(self) -> Engine:
        return get_engine_for_options(self.options)

    def _connect(self) -> sa.Connection:
        return self.engine.connect()


@load_options(cls=DatabaseOptions)
def connection_source(options: DatabaseOptions | dict[str, Any] | str,
                      config: Any | None = None, **kw: Any) -> OptionsSource:
    """Build a configuration-based connection source.

    ``options`` may be a `DatabaseOptions`, a dict of option values, or the
    name of a section of ``config`` (e.g. ``'postgresql'``); keyword
    arguments override individual options.

    Examples
        connection_source({'drivername': 'sqlite', 'database': 'app.db'})
        connection_source('postgresql', config=config, timeout=5)
    """
    if not isinstance(options, DatabaseOptions):
        options = load_options(cls=DatabaseOptions)(lambda o, c: o)(options, config, **kw)
    logger.debug(f'Connection source for {options.drivername}:{options.database}')
    return OptionsSource(options)
