"""
Auto-commit execution: one connection per command.
"""
import logging

import sqlalchemy as sa
from dbcontext.context import ContextState, ExecutionContext
from dbcontext.exceptions import ConfigurationError, ProtocolViolationError
from dbcontext.utils import enable_auto_commit

logger = logging.getLogger(__name__)

__all__ = ['AutoCommitContext']


class AutoCommitContext(ExecutionContext):
    """Execution context without transactions.

    Creating a command opens an auto-committed connection; executing the
    command closes it again, whether it succeeds or fails. Cursors and
    markup streams keep the connection until the caller closes them.

    Creating a command while the previous command's connection is still
    open raises `ProtocolViolationError`: some earlier command was never
    executed or its cursor never closed.

    Examples
        with AutoCommitContext(source) as ctx:
            cmd = ctx.create_text_command('select count(*) from item')
            count = ctx.execute_scalar(cmd)
    """

    @property
    def state(self) -> ContextState:
        if self._connection is not None and not self._connection.closed:
            return ContextState.CONNECTION_OPEN
        return ContextState.IDLE

    def _prepare_command(self) -> None:
        if self.state is ContextState.CONNECTION_OPEN:
            raise ProtocolViolationError(
                'Previous connection was not closed. Execute every command created '
                'by this context and close every cursor before creating another command.')
        connection = self._open()
        try:
            enable_auto_commit(connection)
        except Exception as err:
            self._release()
            raise ConfigurationError('Could not enable auto-commit. {}', err) from err

    def _finish(self, connection: sa.Connection | None = None) -> None:
        """Close the command's connection, unless it was already replaced."""
        if connection is None or connection is self._connection:
            self._release()

    def close(self) -> None:
        """Close the open connection, if any."""
        self._release()
