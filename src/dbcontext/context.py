"""
Execution contexts: the shared contract of both execution strategies.

An execution context creates commands, runs them and owns the connection
they run on. Two variants implement the contract:

- `AutoCommitContext` (dbcontext.autocommit): one auto-committed
  connection per command, released when the command completes.
- `TransactionalContext` (dbcontext.transaction): one connection per
  explicit transaction, shared by every command until commit or rollback.

Every execute operation classifies failures at the driver call:

- the dialect's reserved application-raised code -> `UserRaisedDatabaseError`
- any other driver error -> `EngineError`
- anything else -> `UnexpectedError`

Nothing is retried.
"""
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from functools import wraps
from typing import Any, Self

import sqlalchemy as sa
from dbcontext.command import Command, CommandKind
from dbcontext.connection import ConnectionSource
from dbcontext.cursor import MarkupStream, StreamingCursor, execute_raw
from dbcontext.cursor import load_result_sets
from dbcontext.exceptions import DalError, EngineError, ProtocolViolationError
from dbcontext.exceptions import UnexpectedError, UserRaisedDatabaseError
from dbcontext.strategy import DatabaseStrategy, check_procedure_name
from dbcontext.strategy import get_db_strategy

logger = logging.getLogger(__name__)

__all__ = ['ContextState', 'ExecutionContext', 'dumpsql']


class ContextState(Enum):
    """Lifecycle state of an execution context."""
    IDLE = 'idle'
    CONNECTION_OPEN = 'connection_open'
    IN_TRANSACTION = 'in_transaction'


def dumpsql(func):
    """Decorator for logging commands, their parameters and timing."""
    @wraps(func)
    def wrapper(self, cmd: Command, *args: Any, **kwargs: Any):
        start = time.time()
        params = [(p.name, p.value) for p in getattr(cmd, 'parameters', ())]
        logger.debug(f'{func.__name__}: {cmd!r}\nargs: {params}')
        try:
            return func(self, cmd, *args, **kwargs)
        except Exception:
            logger.error(f'Error with command in {func.__name__}: {cmd!r}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class ExecutionContext(ABC):
    """Creates commands, executes them and manages their connection.

    A context is meant for one logical unit of work on one thread. Close it
    (or use it as a context manager) when done; closing is idempotent.
    """

    def __init__(self, source: ConnectionSource,
                 user_error_code: int | str | None = None,
                 data_loader: Callable[..., Any] | None = None) -> None:
        """Initialize an execution context.

        Args:
            source: Where connections come from
            user_error_code: Override the dialect's reserved application-raised code
            data_loader: Override the source's loader for tabular results
        """
        self._source = source
        self.user_error_code = user_error_code
        self._data_loader = data_loader
        self._connection: sa.Connection | None = None
        self._strategy: DatabaseStrategy | None = None
        self._dbapi: Any = None
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Release the context, without masking an exception in flight.
        """
        try:
            self.close()
        except Exception as e:
            if exc_type is None:
                raise
            logger.warning(f'Error closing {type(self).__name__} after {exc_type.__name__}: {e}')

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self._source!r}, state={self.state.value})'

    @property
    @abstractmethod
    def state(self) -> ContextState:
        """Current lifecycle state."""

    @property
    def connection_source(self) -> ConnectionSource:
        return self._source

    @connection_source.setter
    def connection_source(self, source: ConnectionSource) -> None:
        if self.state is not ContextState.IDLE:
            raise ProtocolViolationError('Cannot replace the connection source while {}', self.state.value)
        self._source = source

    @property
    def data_loader(self) -> Callable[..., Any]:
        return self._data_loader or self._source.data_loader

    @property
    def strategy(self) -> DatabaseStrategy | None:
        """Strategy of the most recently opened connection."""
        return self._strategy

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    # connection lifecycle

    def _open(self) -> sa.Connection:
        """Take a new connection from the source and make it the owned one."""
        connection = self._source.get_connection()
        self._connection = connection
        self._strategy = get_db_strategy(connection)
        self._dbapi = connection.dialect.loaded_dbapi
        logger.debug(f'Opened {self._strategy.dialect_name} connection for {type(self).__name__}')
        return connection

    def _release(self) -> None:
        """Close the owned connection, if any.
        """
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.close()
        except Exception as e:
            logger.debug(f'Error closing connection: {e}')
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per query)')

    @abstractmethod
    def _prepare_command(self) -> None:
        """Make sure a connection is available for a new command."""

    @abstractmethod
    def _finish(self, connection: sa.Connection | None = None) -> None:
        """Called when a command (or the stream it produced) completes."""

    @abstractmethod
    def close(self) -> None:
        """Release the context. Safe to call more than once."""

    # command creation

    def _new_command(self, text: str, kind: CommandKind) -> Command:
        self._prepare_command()
        return Command(self, text, kind, connection=self._connection)

    def create_command(self) -> Command:
        """Create a raw text command; set its ``text`` before executing.
        """
        return self._new_command('', CommandKind.TEXT)

    def create_stored_proc_command(self, name: str) -> Command:
        """Create a command that invokes a stored procedure.
        """
        return self._new_command(check_procedure_name(name), CommandKind.STORED_PROCEDURE)

    def create_text_command(self, text: str, *args: Any, **kwargs: Any) -> Command:
        """Create a text command.

        With ``args``/``kwargs`` the text is built with `str.format` before
        any parameter is bound. Those arguments are spliced into the SQL
        verbatim, so only static, trusted values may be passed; use ``:name``
        binds for everything else.
        """
        if args or kwargs:
            text = text.format(*args, **kwargs)
        return self._new_command(text, CommandKind.TEXT)

    # execution

    def _check_command(self, cmd: Command) -> None:
        if not isinstance(cmd, Command):
            raise ProtocolViolationError('Expected a Command, got {}', type(cmd).__name__)
        if cmd.context is not self:
            raise ProtocolViolationError('Command was created by another execution context: {!r}', cmd)
        if cmd.sealed:
            raise ProtocolViolationError('Command was already executed: {!r}', cmd)
        if self._connection is None or cmd._connection is not self._connection:
            raise ProtocolViolationError('Connection of command was already released: {!r}', cmd)

    def _driver_error(self, err: BaseException) -> BaseException | None:
        """Return the DBAPI error behind ``err``, or None for non-driver errors."""
        if isinstance(err, sa.exc.DBAPIError):
            return err.orig
        dbapi_error = getattr(self._dbapi, 'Error', None)
        if dbapi_error is not None and isinstance(err, dbapi_error):
            return err
        return None

    @contextmanager
    def _translate(self, operation: str) -> Iterator[None]:
        """Classify failures raised by the wrapped driver call.
        """
        try:
            yield
        except DalError:
            raise
        except Exception as err:
            driver_err = self._driver_error(err)
            if driver_err is None:
                raise UnexpectedError(operation, str(err)) from err
            if self._strategy.is_user_raised(driver_err, self.user_error_code):
                message = self._strategy.get_error_message(driver_err)
                logger.debug(f'Application-raised error in {operation}: {message}')
                raise UserRaisedDatabaseError(message, self._strategy.get_error_code(driver_err)) from err
            raise EngineError(operation, str(driver_err)) from err

    @contextmanager
    def _executing(self, operation: str, cmd: Command,
                   keep_open: bool = False) -> Iterator[sa.Connection]:
        """Run a command against the owned connection.

        Errors are classified; `_finish` runs on every exit path, except on
        success when ``keep_open`` hands the connection to a stream.
        """
        self._check_command(cmd)
        cmd.seal()
        connection = self._connection
        release = not keep_open
        try:
            with self._translate(operation):
                yield connection
        except BaseException:
            release = True
            raise
        finally:
            if release:
                self._finish(connection)

    def _stream_closer(self, connection: sa.Connection) -> Callable[[], None]:
        def on_close() -> None:
            self._finish(connection)
        return on_close

    @dumpsql
    def execute_non_query(self, cmd: Command) -> int:
        """Execute a command for its side effects. Best for update/delete.

        On PostgreSQL a stored-procedure command runs as ``SELECT * FROM
        fn(...)``, so the count is the number of rows the function returned
        (1 for a scalar or void function), not the rows it changed.

        Returns
            Number of rows affected
        """
        with self._executing('execute_non_query', cmd) as connection:
            result = connection.execute(cmd.statement(self._strategy))
            rowcount = result.rowcount
            result.close()
            return rowcount

    @dumpsql
    def execute_scalar(self, cmd: Command) -> Any | None:
        """Execute a command and return the first column of the first row.

        Returns None when the command produced no rows.
        """
        with self._executing('execute_scalar', cmd) as connection:
            result = connection.execute(cmd.statement(self._strategy))
            if not result.returns_rows:
                result.close()
                return None
            return result.scalar()

    @dumpsql
    def execute_rows(self, cmd: Command, **kwargs: Any) -> Any:
        """Execute a command and buffer its rows through the data loader.

        Extra keyword arguments are passed to the data loader.
        """
        with self._executing('execute_rows', cmd) as connection:
            result = connection.execute(cmd.statement(self._strategy))
            if not result.returns_rows:
                result.close()
                return self.data_loader([], [], **kwargs)
            columns = list(result.keys())
            data = [dict(row) for row in result.mappings()]
            logger.debug(f'execute_rows returned {len(data)} rows')
            return self.data_loader(data, columns, **kwargs)

    @dumpsql
    def execute_result_sets(self, cmd: Command, **kwargs: Any) -> list[Any]:
        """Execute a command and buffer every result set it returns.

        Each result set goes through the data loader.
        """
        with self._executing('execute_result_sets', cmd) as connection:
            cursor = execute_raw(connection, cmd.statement(self._strategy))
            try:
                return load_result_sets(cursor, self.data_loader, **kwargs)
            finally:
                cursor.close()

    @dumpsql
    def execute_cursor(self, cmd: Command) -> StreamingCursor:
        """Execute a command and return a forward-only cursor over its rows.

        The caller must close the cursor.
        """
        with self._executing('execute_cursor', cmd, keep_open=True) as connection:
            result = connection.execute(cmd.statement(self._strategy))
            return StreamingCursor(result, self._translate, self._stream_closer(connection))

    @dumpsql
    def execute_xml(self, cmd: Command) -> MarkupStream:
        """Execute a command returning markup and stream it.

        The caller must close the stream.
        """
        with self._executing('execute_xml', cmd, keep_open=True) as connection:
            result = connection.execute(cmd.statement(self._strategy))
            return MarkupStream(result, self._translate, self._stream_closer(connection))
