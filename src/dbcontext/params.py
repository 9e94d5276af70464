"""
Parameter values and the rules that decide when a value is bound as NULL.

Callers pass optional domain values straight through; these helpers absorb
the "no value" case so that statements never receive an accidental empty
string or epoch date where NULL was intended.

``None`` is the null marker at the API boundary. Two legacy sentinels are
still recognized for values that arrive from older call sites:

- ``LEGACY_INT_UNSET`` (the 32-bit integer minimum)
- ``datetime.datetime.min`` / ``datetime.date.min``

Both are a compatibility shim; new code should pass ``None``.
"""
import datetime
import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import sqlalchemy as sa

logger = logging.getLogger(__name__)

__all__ = [
    'Parameter',
    'LEGACY_INT_UNSET',
    'UNSET_MEMBER',
    'coerce_int',
    'coerce_datetime',
    'coerce_text',
    'coerce_buffer',
    'coerce_enum',
]

LEGACY_INT_UNSET = -2**31
UNSET_MEMBER = 'UNSET'


@dataclass(frozen=True, slots=True)
class Parameter:
    """A named, typed value bound to a command. ``value`` None means NULL.
    """
    name: str
    type: sa.types.TypeEngine
    value: Any = None

    @property
    def is_null(self) -> bool:
        return self.value is None

    def bind(self) -> sa.BindParameter:
        """Return the SQLAlchemy bind parameter for this value."""
        return sa.bindparam(self.name, self.value, type_=self.type)


def coerce_int(value: int | None) -> int | None:
    """NULL for None or the legacy unset sentinel.

    >>> coerce_int(LEGACY_INT_UNSET) is None
    True
    >>> coerce_int(0)
    0
    """
    if value is None:
        return None
    if value == LEGACY_INT_UNSET:
        logger.debug('Legacy integer sentinel bound as NULL')
        return None
    return value


def coerce_datetime(value: datetime.date | None) -> datetime.date | None:
    """NULL for None or the minimum representable date/datetime.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        unset = value.replace(tzinfo=None) == datetime.datetime.min
    else:
        unset = value == datetime.date.min
    if unset:
        logger.debug('Legacy minimum date sentinel bound as NULL')
        return None
    return value


def coerce_text(value: str | None, preserve_case: bool = False) -> str | None:
    """NULL for empty or whitespace-only text; otherwise trimmed and,
    unless ``preserve_case``, upper-cased.

    >>> coerce_text('  abc ')
    'ABC'
    >>> coerce_text('  abc ', preserve_case=True)
    'abc'
    >>> coerce_text('   ') is None
    True
    """
    if value is None or not value.strip():
        return None
    value = value.strip()
    return value if preserve_case else value.upper()


def coerce_buffer(buffer: io.StringIO | None,
                  preserve_case: bool = False) -> str | None:
    """NULL for a missing or empty buffer; content is not trimmed.
    """
    if buffer is None:
        return None
    value = buffer.getvalue()
    if not value:
        return None
    return value if preserve_case else value.upper()


def coerce_enum(member: Enum | None, preserve_case: bool = False) -> str | None:
    """NULL for the member named UNSET; otherwise its name through the text rule.
    """
    if member is None or member.name == UNSET_MEMBER:
        return None
    return coerce_text(member.name, preserve_case)
