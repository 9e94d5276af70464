"""
Unit tests for the error taxonomy.
"""
import pytest
from dbcontext.exceptions import ConfigurationError, DalError, EngineError
from dbcontext.exceptions import ProtocolViolationError, UnexpectedError
from dbcontext.exceptions import UserRaisedDatabaseError, is_retryable_error


def test_message_with_format_arguments():
    err = DalError('field {} cannot be None or {}', 'database', 0)
    assert str(err) == 'field database cannot be None or 0'
    assert err.message == 'field database cannot be None or 0'


def test_message_without_arguments_is_not_formatted():
    err = DalError('literal {braces}')
    assert err.message == 'literal {braces}'


def test_empty_message():
    assert DalError().message == ''


@pytest.mark.parametrize('cls', [ConfigurationError, ProtocolViolationError,
                                 UserRaisedDatabaseError, EngineError, UnexpectedError])
def test_taxonomy_shares_a_base(cls):
    assert issubclass(cls, DalError)


def test_user_raised_keeps_server_message():
    err = UserRaisedDatabaseError('Item already exists', 50000)
    assert err.message == 'Item already exists'
    assert err.code == 50000


def test_engine_error_names_operation():
    err = EngineError('execute_non_query', 'Invalid object name item.')
    assert err.operation == 'execute_non_query'
    assert err.message == 'Database error occurred in execute_non_query. Invalid object name item.'


def test_unexpected_error_names_operation():
    err = UnexpectedError('execute_scalar', 'boom')
    assert err.message == 'Error occurred in execute_scalar. boom'


class TestRetryable:

    @pytest.mark.parametrize('message', [
        'server closed the connection unexpectedly',
        'Communication link failure',
        'Login timeout expired',
        'database is locked',
        'SSL SYSCALL error: EOF detected',
    ])
    def test_transient_messages(self, message):
        assert is_retryable_error(Exception(message))

    @pytest.mark.parametrize('message', [
        'syntax error at or near "selec"',
        'UNIQUE constraint failed: item.name',
    ])
    def test_permanent_messages(self, message):
        assert not is_retryable_error(Exception(message))

    def test_follows_cause_chain(self):
        try:
            try:
                raise OSError('connection reset by peer')
            except OSError as e:
                raise EngineError('execute_scalar', 'wrapped') from e
        except EngineError as err:
            assert is_retryable_error(err)

    def test_user_raised_is_never_retryable(self):
        assert not is_retryable_error(UserRaisedDatabaseError('Lock timeout exceeded'))

    def test_protocol_violation_is_never_retryable(self):
        assert not is_retryable_error(ProtocolViolationError('timeout'))
