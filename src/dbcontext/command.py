"""
Commands built by execution contexts.

A `Command` is created by an execution context, filled in by the caller and
handed back to the same context to run. Parameters are bound through the
typed ``add_*`` methods, which apply the NULL rules in `dbcontext.params`::

    cmd = ctx.create_stored_proc_command('UpsertItem')
    cmd.add_int('id', 7).add_string('name', name)
    ctx.execute_non_query(cmd)

Once a command has been handed to an execute operation it is sealed and can
no longer be changed.
"""
import datetime
import decimal
import io
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbcontext.exceptions import ProtocolViolationError
from dbcontext.params import Parameter, coerce_buffer, coerce_datetime
from dbcontext.params import coerce_enum, coerce_int, coerce_text
from dbcontext.strategy import check_procedure_name
from dbcontext.utils import strip_parameter_name

if TYPE_CHECKING:
    from dbcontext.context import ExecutionContext
    from dbcontext.strategy import DatabaseStrategy

logger = logging.getLogger(__name__)

__all__ = ['Command', 'CommandKind']

_INT32_MIN = -2**31
_INT32_MAX = 2**31 - 1


class CommandKind(Enum):
    """How the command text is interpreted."""
    TEXT = 'text'
    STORED_PROCEDURE = 'stored_procedure'


class Command:
    """Statement builder owned by the execution context that created it.
    """

    def __init__(self, context: 'ExecutionContext', text: str = '',
                 kind: CommandKind = CommandKind.TEXT, *,
                 connection: sa.Connection | None = None) -> None:
        if kind is CommandKind.STORED_PROCEDURE:
            text = check_procedure_name(text)
        self._context = context
        # connection the command was created on; never handed to callers
        self._connection = connection
        self._kind = kind
        self._text = text
        self._parameters: dict[str, Parameter] = {}
        self._sealed = False

    def __repr__(self) -> str:
        return (f'Command({self._kind.value}, {self._text!r}, '
                f'params={list(self._parameters)})')

    def __len__(self) -> int:
        return len(self._parameters)

    def __contains__(self, name: str) -> bool:
        return strip_parameter_name(name) in self._parameters

    def __getitem__(self, name: str) -> Parameter:
        return self._parameters[strip_parameter_name(name)]

    @property
    def context(self) -> 'ExecutionContext':
        return self._context

    @property
    def kind(self) -> CommandKind:
        return self._kind

    @property
    def text(self) -> str:
        """Statement text, or the procedure name for stored procedures."""
        return self._text

    @text.setter
    def text(self, value: str) -> None:
        self._check_mutable()
        if self._kind is CommandKind.STORED_PROCEDURE:
            value = check_procedure_name(value)
        self._text = value

    @property
    def parameters(self) -> tuple[Parameter, ...]:
        """Bound parameters in binding order."""
        return tuple(self._parameters.values())

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Forbid further changes; called when the command is executed."""
        self._sealed = True

    def _check_mutable(self) -> None:
        if self._sealed:
            raise ProtocolViolationError('Command was already executed and can no longer be changed: {!r}', self)

    def _add(self, name: str, type_: sa.types.TypeEngine, value: Any) -> 'Command':
        self._check_mutable()
        parameter = Parameter(strip_parameter_name(name), type_, value)
        self._parameters[parameter.name] = parameter
        return self

    def attach(self, *parameters: Parameter) -> 'Command':
        """Bind prebuilt parameters verbatim.
        """
        self._check_mutable()
        for parameter in parameters:
            self._parameters[parameter.name] = parameter
        return self

    def add_bool(self, name: str, value: bool | None) -> 'Command':
        return self._add(name, sa.Boolean(), value)

    def add_int(self, name: str, value: int | None) -> 'Command':
        """Bind a 32-bit integer; the legacy minimum sentinel binds NULL."""
        return self._add(name, sa.Integer(), coerce_int(value))

    def add_bigint(self, name: str, value: int | None) -> 'Command':
        return self._add(name, sa.BigInteger(), value)

    def add_decimal(self, name: str, value: decimal.Decimal | None) -> 'Command':
        return self._add(name, sa.Numeric(asdecimal=True), value)

    def add_float(self, name: str, value: float | None) -> 'Command':
        return self._add(name, sa.Float(), value)

    def add_money(self, name: str, value: decimal.Decimal | None) -> 'Command':
        return self._add(name, sa.Numeric(19, 4), value)

    def add_smallmoney(self, name: str, value: decimal.Decimal | None) -> 'Command':
        return self._add(name, sa.Numeric(10, 4), value)

    def add_datetime(self, name: str, value: datetime.date | None) -> 'Command':
        """Bind a datetime (or a date); the minimum instant binds NULL.

        A non-optional value that was never set reaches this method as the
        minimum instant and is silently bound as NULL. Callers relying on
        that should pass None instead.
        """
        if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
            type_ = sa.Date()
        else:
            type_ = sa.DateTime(timezone=getattr(value, 'tzinfo', None) is not None)
        return self._add(name, type_, coerce_datetime(value))

    def add_string(self, name: str, value: str | None,
                   preserve_case: bool = False) -> 'Command':
        """Bind text, trimmed and upper-cased unless ``preserve_case``.

        Empty and whitespace-only text binds NULL.
        """
        return self._add(name, sa.String(), coerce_text(value, preserve_case))

    def add_buffer(self, name: str, value: io.StringIO | None,
                   preserve_case: bool = False) -> 'Command':
        """Bind the content of a string buffer; an empty buffer binds NULL."""
        return self._add(name, sa.String(), coerce_buffer(value, preserve_case))

    def add_enum(self, name: str, value: Enum | None,
                 preserve_case: bool = False) -> 'Command':
        """Bind an enum member by name; the member named UNSET binds NULL."""
        return self._add(name, sa.String(), coerce_enum(value, preserve_case))

    def add_binary(self, name: str, value: bytes | None, length: int) -> 'Command':
        """Bind binary data with an explicit declared length."""
        return self._add(name, sa.LargeBinary(length), value)

    def add_varbinary(self, name: str, value: bytes | None) -> 'Command':
        return self._add(name, sa.LargeBinary(), value)

    def add_text(self, name: str, value: str | None) -> 'Command':
        """Bind long text as is; only None binds NULL."""
        return self._add(name, sa.Text(), value)

    def add_ntext(self, name: str, value: str | None) -> 'Command':
        """Bind unicode text as is; only None binds NULL."""
        return self._add(name, sa.Unicode(), value)

    def add_parameter(self, name: str, value: Any,
                      preserve_case: bool = False) -> 'Command':
        """Bind a value using the rule for its Python type.

        Integers outside the 32-bit range are bound as big integers.
        """
        if value is None:
            return self._add(name, sa.types.NULLTYPE, None)
        if isinstance(value, bool):
            return self.add_bool(name, value)
        if isinstance(value, Enum):
            return self.add_enum(name, value, preserve_case)
        if isinstance(value, int):
            if _INT32_MIN <= value <= _INT32_MAX:
                return self.add_int(name, value)
            return self.add_bigint(name, value)
        if isinstance(value, decimal.Decimal):
            return self.add_decimal(name, value)
        if isinstance(value, float):
            return self.add_float(name, value)
        if isinstance(value, datetime.date):
            return self.add_datetime(name, value)
        if isinstance(value, str):
            return self.add_string(name, value, preserve_case)
        if isinstance(value, io.StringIO):
            return self.add_buffer(name, value, preserve_case)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self.add_varbinary(name, bytes(value))
        raise TypeError(f'Cannot bind parameter {name!r} of type {type(value).__name__}')

    def statement(self, strategy: 'DatabaseStrategy') -> sa.TextClause:
        """Build the executable statement for the connection's dialect.
        """
        if self._kind is CommandKind.STORED_PROCEDURE:
            sql = strategy.build_procedure_call(self._text, list(self._parameters))
        else:
            sql = self._text
        binds = [p.bind() for p in self._parameters.values()]
        nulls = sum(p.is_null for p in self._parameters.values())
        logger.debug(f'Built {self._kind.value} statement with {len(binds)} parameters ({nulls} NULL)')
        return sa.text(sql).bindparams(*binds)
