"""
Server-side functions on PostgreSQL, called as stored procedures.
"""
import pytest
from dbcontext import AutoCommitContext, TransactionalContext
from dbcontext.exceptions import EngineError, UserRaisedDatabaseError

pytestmark = pytest.mark.postgres


def upsert(ctx, item_id, name):
    cmd = ctx.create_stored_proc_command('upsert_item')
    cmd.add_int('p_id', item_id).add_string('p_name', name, preserve_case=True)
    return ctx.execute_scalar(cmd)


def test_function_call(psql_source):
    with AutoCommitContext(psql_source) as ctx:
        assert upsert(ctx, 7, 'widget') == 7
        cmd = ctx.create_text_command('select name from item where id = :id')
        cmd.add_int('id', 7)
        assert ctx.execute_scalar(cmd) == 'widget'


def test_raise_exception_is_user_raised(psql_source):
    with AutoCommitContext(psql_source) as ctx:
        with pytest.raises(UserRaisedDatabaseError) as exc_info:
            upsert(ctx, 7, '   ')
    assert exc_info.value.message == 'Name is required'
    assert exc_info.value.code == 'P0001'


def test_syntax_error_is_engine_error(psql_source):
    with AutoCommitContext(psql_source) as ctx:
        with pytest.raises(EngineError, match='syntax error'):
            ctx.execute_scalar(ctx.create_text_command('selec 1'))


def test_transaction_rollback(psql_source):
    with TransactionalContext(psql_source) as ctx:
        with pytest.raises(UserRaisedDatabaseError):
            with ctx.transaction():
                upsert(ctx, 1, 'first')
                upsert(ctx, 2, '')

    with AutoCommitContext(psql_source) as ctx:
        assert ctx.execute_scalar(ctx.create_text_command('select count(*) from item')) == 0


def test_non_query_counts_function_result_rows(psql_source):
    """A function call reports the rows it returned, not the rows it changed"""
    with AutoCommitContext(psql_source) as ctx:
        for item_id, name in ((1, 'a'), (2, 'b'), (3, 'c')):
            cmd = ctx.create_stored_proc_command('upsert_item')
            cmd.add_int('p_id', item_id).add_string('p_name', name)
            assert ctx.execute_non_query(cmd) == 1

        assert ctx.execute_non_query(ctx.create_stored_proc_command('clear_items')) == 1
        assert ctx.execute_scalar(ctx.create_text_command('select count(*) from item')) == 0
