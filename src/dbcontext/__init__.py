"""
Data access through execution contexts, for PostgreSQL, SQLite and SQL Server.

Callers never touch a connection. They take an execution context, let it
create a command, bind parameters, and hand the command back to the same
context to execute:

    source = dbcontext.connection_source({'drivername': 'sqlite', 'database': 'app.db'})

    with dbcontext.AutoCommitContext(source) as ctx:
        cmd = ctx.create_text_command('select name from item where id = :id')
        cmd.add_int('id', 7)
        name = ctx.execute_scalar(cmd)

    with dbcontext.TransactionalContext(source) as ctx, ctx.transaction():
        cmd = ctx.create_stored_proc_command('UpsertItem')
        cmd.add_int('id', 7).add_string('name', name)
        ctx.execute_non_query(cmd)
"""
__version__ = '0.1.0'

from dbcontext.autocommit import AutoCommitContext
from dbcontext.command import Command, CommandKind
from dbcontext.connection import ConnectionSource, EngineSource, OptionsSource
from dbcontext.connection import connection_source, dispose_all_engines
from dbcontext.context import ContextState, ExecutionContext
from dbcontext.cursor import MarkupStream, StreamingCursor
from dbcontext.dao import Dao
from dbcontext.exceptions import ConfigurationError, DalError, EngineError
from dbcontext.exceptions import ProtocolViolationError, UnexpectedError
from dbcontext.exceptions import UserRaisedDatabaseError, is_retryable_error
from dbcontext.options import DatabaseOptions, iterdict_data_loader
from dbcontext.options import pandas_numpy_data_loader
from dbcontext.options import pandas_pyarrow_data_loader
from dbcontext.params import LEGACY_INT_UNSET, Parameter
from dbcontext.transaction import TransactionalContext

__all__ = [
    'AutoCommitContext',
    'TransactionalContext',
    'ExecutionContext',
    'ContextState',
    'Command',
    'CommandKind',
    'Parameter',
    'LEGACY_INT_UNSET',
    'StreamingCursor',
    'MarkupStream',
    'Dao',
    'ConnectionSource',
    'EngineSource',
    'OptionsSource',
    'connection_source',
    'dispose_all_engines',
    'DatabaseOptions',
    'iterdict_data_loader',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'DalError',
    'ConfigurationError',
    'ProtocolViolationError',
    'UserRaisedDatabaseError',
    'EngineError',
    'UnexpectedError',
    'is_retryable_error',
]
