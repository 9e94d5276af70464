"""
Result readers handed back by execution contexts.

- `StreamingCursor` is a forward-only reader over a live result.
- `MarkupStream` reads markup fragments (``FOR XML`` output and the like)
  and yields top-level elements as they complete.
- `execute_raw` and `load_result_sets` run a statement on the DBAPI
  cursor directly so that every result set a batch or procedure returns
  can be read with ``nextset()``.

Both readers keep their connection busy until they are closed. The
``on_close`` callback lets the owning context release the connection.
"""
import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from typing import Any, Self

import sqlalchemy as sa

logger = logging.getLogger(__name__)

__all__ = ['StreamingCursor', 'MarkupStream', 'execute_raw', 'load_result_sets']

Translator = Callable[[str], AbstractContextManager]

_FRAGMENT_ROOT = 'fragments'


class _ResultStream:
    """Common lifecycle for readers over a live result."""

    def __init__(self, result: sa.CursorResult, translate: Translator,
                 on_close: Callable[[], None] | None = None) -> None:
        self._result = result
        self._translate = translate
        self._on_close = on_close
        self.closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def close(self) -> None:
        """Close the result and release the connection if the context asked to.

        Safe to call more than once.
        """
        if self.closed:
            return
        self.closed = True
        try:
            self._result.close()
        except Exception as e:
            logger.debug(f'Error closing result: {e}')
        finally:
            if self._on_close is not None:
                self._on_close()
        logger.debug(f'Closed {type(self).__name__}')


class StreamingCursor(_ResultStream):
    """Forward-only cursor over a live result.

    Rows are returned as dicts keyed by column name. The caller owns the
    cursor and must close it (directly or with ``with``).

    Examples
        with ctx.execute_cursor(cmd) as cursor:
            for row in cursor:
                print(row['name'])
    """

    def __init__(self, result: sa.CursorResult, translate: Translator,
                 on_close: Callable[[], None] | None = None) -> None:
        super().__init__(result, translate, on_close)
        self._rows = result.mappings() if result.returns_rows else None

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while (row := self.fetchone()) is not None:
            yield row

    @property
    def columns(self) -> list[str]:
        """Column names of the result, empty when it returns no rows."""
        return list(self._result.keys()) if self._rows is not None else []

    @property
    def rowcount(self) -> int:
        return self._result.rowcount

    def fetchone(self) -> dict[str, Any] | None:
        """Fetch next row, or None when exhausted."""
        if self._rows is None:
            return None
        with self._translate('fetchone'):
            row = self._rows.fetchone()
        return dict(row) if row is not None else None

    def fetchmany(self, size: int = 1) -> list[dict[str, Any]]:
        """Fetch up to ``size`` rows."""
        if self._rows is None:
            return []
        with self._translate('fetchmany'):
            rows = self._rows.fetchmany(size)
        return [dict(row) for row in rows]

    def fetchall(self) -> list[dict[str, Any]]:
        """Fetch all remaining rows."""
        if self._rows is None:
            return []
        with self._translate('fetchall'):
            rows = self._rows.fetchall()
        return [dict(row) for row in rows]


class MarkupStream(_ResultStream):
    """Reads the first column of each row as a markup fragment.

    SQL Server splits ``FOR XML`` output over several rows and a result may
    hold several top-level elements, so fragments are fed to a pull parser
    under a synthetic root and elements are yielded as soon as they close.
    """

    def _fragments(self) -> Iterator[str]:
        if not self._result.returns_rows:
            return
        while True:
            with self._translate('read_markup'):
                row = self._result.fetchone()
            if row is None:
                return
            if row[0] is not None:
                yield row[0] if isinstance(row[0], str) else str(row[0])

    def read(self) -> str:
        """Return the remaining markup as one string."""
        return ''.join(self._fragments())

    def __iter__(self) -> Iterator[ET.Element]:
        parser = ET.XMLPullParser(events=('start', 'end'))
        parser.feed(f'<{_FRAGMENT_ROOT}>')
        root = None
        depth = 0

        def drain() -> Iterator[ET.Element]:
            nonlocal root, depth
            for event, elem in parser.read_events():
                if event == 'start':
                    if root is None:
                        root = elem
                    depth += 1
                    continue
                depth -= 1
                if depth == 1:
                    yield elem
                    root.remove(elem)

        with self._translate('parse_markup'):
            for fragment in self._fragments():
                parser.feed(fragment)
                yield from drain()
            parser.feed(f'</{_FRAGMENT_ROOT}>')
            yield from drain()
            parser.close()


def execute_raw(connection: sa.Connection, statement: sa.TextClause) -> Any:
    """Execute a statement on the DBAPI cursor of a SQLAlchemy connection.

    The statement is compiled for the connection's dialect so named binds
    come out in the driver's paramstyle, and each value goes through its
    type's bind processor (Decimal and datetime on SQLite, for one) just as
    `Connection.execute` would. Returns the open DBAPI cursor.
    """
    dialect = connection.dialect
    compiled = statement.compile(dialect=dialect)
    params = compiled.construct_params()
    for name, value in params.items():
        bind = compiled.binds.get(name)
        if bind is None or value is None:
            continue
        processor = bind.type.dialect_impl(dialect).bind_processor(dialect)
        if processor is not None:
            params[name] = processor(value)
    if compiled.positional:
        params = tuple(params[name] for name in compiled.positiontup)
    cursor = connection.connection.cursor()
    cursor.execute(str(compiled), params)
    return cursor


def load_result_sets(cursor: Any, data_loader: Callable[..., Any],
                     **kwargs: Any) -> list[Any]:
    """Load every result set from a DBAPI cursor through the data loader.

    Result sets without columns (row counts from DML inside a batch) are
    skipped. Drivers without ``nextset()`` yield a single result set.
    """
    result_sets: list[Any] = []
    while True:
        if cursor.description is not None:
            columns = [desc[0] for desc in cursor.description]
            data = [dict(zip(columns, row)) for row in cursor.fetchall()]
            result_sets.append(data_loader(data, columns, **kwargs))
            logger.debug(f'Loaded result set {len(result_sets)} with {len(data)} rows')
        if not hasattr(cursor, 'nextset') or not cursor.nextset():
            break
    return result_sets
