"""
PostgreSQL-specific strategy implementation.

Server-side logic lives in functions, invoked with named notation
(``SELECT * FROM fn(p => :p)``) so that both row-returning and
void functions work with every execute operation. ``RAISE EXCEPTION``
without an explicit SQLSTATE is reported as ``P0001`` (raise_exception),
which is the reserved application-raised code for this dialect.
"""
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbcontext.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbcontext.options import DatabaseOptions

RAISE_EXCEPTION = 'P0001'


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    user_error_code = RAISE_EXCEPTION

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for PostgreSQL."""
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']

    def configure_connection(self, connection: sa.Connection) -> None:
        """PostgreSQL settings are passed through the URL; nothing to do.
        """

    def build_procedure_call(self, name: str, param_names: list[str]) -> str:
        """Build a function call using named argument notation.
        """
        args = ', '.join(f'{p} => :{p}' for p in param_names)
        return f'SELECT * FROM {name}({args})'

    def get_error_code(self, err: BaseException) -> str | None:
        """SQLSTATE reported by psycopg."""
        return getattr(err, 'sqlstate', None)

    def get_error_message(self, err: BaseException) -> str:
        """Primary message without the DETAIL/CONTEXT lines.
        """
        diag = getattr(err, 'diag', None)
        message = getattr(diag, 'message_primary', None)
        if message:
            return message
        return super().get_error_message(err)
