"""
Transactional execution: many commands on one connection and transaction.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Self

import sqlalchemy as sa
from dbcontext.connection import ConnectionSource
from dbcontext.context import ContextState, ExecutionContext
from dbcontext.exceptions import EngineError, ProtocolViolationError

logger = logging.getLogger(__name__)

__all__ = ['TransactionalContext']


class TransactionalContext(ExecutionContext):
    """Execution context that runs commands inside an explicit transaction.

    `begin` opens the connection and starts the transaction; every command
    created afterwards runs on that connection, in creation order, until
    `commit` or `rollback` closes it. Executing a command never closes the
    connection. Closing the context mid-transaction rolls back.

    The context is reusable: after commit or rollback another transaction
    can begin. Nested transactions are not supported.

    Examples
        with TransactionalContext(source) as ctx, ctx.transaction():
            cmd = ctx.create_stored_proc_command('UpsertItem')
            cmd.add_int('id', 7).add_string('name', name)
            ctx.execute_non_query(cmd)
    """

    def __init__(self, source: ConnectionSource, **kwargs: Any) -> None:
        super().__init__(source, **kwargs)
        self._transaction: sa.RootTransaction | None = None

    @property
    def state(self) -> ContextState:
        if self._transaction is not None:
            return ContextState.IN_TRANSACTION
        return ContextState.IDLE

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def _check_in_transaction(self, operation: str) -> None:
        if not self.in_transaction:
            raise ProtocolViolationError('Not in a transaction; cannot {}', operation)

    def begin(self) -> None:
        """Open the connection and start a transaction.
        """
        if self.in_transaction:
            raise ProtocolViolationError('Can not start a transaction at this point. '
                                         'Another transaction is in progress')
        connection = self._open()
        try:
            with self._translate('begin'):
                self._transaction = connection.begin()
        except BaseException:
            self._release()
            raise
        logger.debug(f'Started transaction for connection {id(connection)}')

    def commit(self) -> None:
        """Commit, close the connection and return to idle.

        If the commit itself fails the context stays in the transaction so
        that `rollback` or `close` can clean up.
        """
        self._check_in_transaction('commit')
        with self._translate('commit'):
            self._transaction.commit()
        logger.debug(f'Committed transaction for connection {id(self._connection)}')
        self._end_transaction()

    def rollback(self) -> None:
        """Roll back, close the connection and return to idle.

        The connection is released and the context returns to idle even if
        the rollback itself fails; that failure is raised as `EngineError`.
        """
        self._check_in_transaction('rollback')
        try:
            self._transaction.rollback()
            logger.warning('Rolled back the current transaction')
        except Exception as err:
            raise EngineError('rollback', f'Error occurred when rolling back transaction. {err}') from err
        finally:
            self._end_transaction()

    def _end_transaction(self) -> None:
        self._transaction = None
        self._release()
        logger.debug('Transaction cleanup complete')

    @contextmanager
    def transaction(self) -> Iterator[Self]:
        """Run a block in a transaction: commit on success, roll back on error.
        """
        self.begin()
        try:
            yield self
        except BaseException:
            if self.in_transaction:
                try:
                    self.rollback()
                except EngineError as e:
                    logger.warning(f'Rollback after failure also failed: {e}')
            raise
        if self.in_transaction:
            self.commit()

    def _prepare_command(self) -> None:
        if not self.in_transaction:
            raise ProtocolViolationError('Not in a transaction. Call begin() before creating commands')

    def _finish(self, connection: sa.Connection | None = None) -> None:
        """Commands share the connection; only commit or rollback close it."""

    def close(self) -> None:
        """Roll back a transaction still in progress."""
        if self.in_transaction:
            self.rollback()
