"""
Unit tests for the rules deciding when a value binds as NULL.
"""
import datetime
import enum
import io

import pytest
import sqlalchemy as sa
from dbcontext.params import LEGACY_INT_UNSET, Parameter, coerce_buffer
from dbcontext.params import coerce_datetime, coerce_enum, coerce_int
from dbcontext.params import coerce_text


class Status(enum.Enum):
    UNSET = 0
    Active = 1
    on_hold = 2


class TestCoerceInt:

    def test_none_is_null(self):
        assert coerce_int(None) is None

    def test_legacy_sentinel_is_null(self):
        assert coerce_int(LEGACY_INT_UNSET) is None
        assert coerce_int(-2147483648) is None

    @pytest.mark.parametrize('value', [0, 1, -1, -2147483647, 2147483647])
    def test_other_values_bind_as_is(self, value):
        assert coerce_int(value) == value


class TestCoerceDatetime:

    def test_none_is_null(self):
        assert coerce_datetime(None) is None

    def test_minimum_datetime_is_null(self):
        assert coerce_datetime(datetime.datetime.min) is None

    def test_minimum_aware_datetime_is_null(self):
        value = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
        assert coerce_datetime(value) is None

    def test_minimum_date_is_null(self):
        assert coerce_datetime(datetime.date.min) is None

    def test_regular_values_bind_as_is(self):
        dt = datetime.datetime(2024, 1, 31, 8, 15)
        d = datetime.date(2024, 1, 31)
        assert coerce_datetime(dt) == dt
        assert coerce_datetime(d) == d

    def test_one_microsecond_after_minimum_binds(self):
        value = datetime.datetime.min + datetime.timedelta(microseconds=1)
        assert coerce_datetime(value) == value


class TestCoerceText:

    @pytest.mark.parametrize('value', [None, '', ' ', '\t\n  '])
    def test_empty_or_whitespace_is_null(self, value):
        assert coerce_text(value) is None
        assert coerce_text(value, preserve_case=True) is None

    def test_trims_and_uppercases(self):
        assert coerce_text('  us ') == 'US'

    def test_preserve_case_only_trims(self):
        assert coerce_text('  Mixed Case\t', preserve_case=True) == 'Mixed Case'

    def test_inner_whitespace_is_kept(self):
        assert coerce_text(' new  york ') == 'NEW  YORK'


class TestCoerceBuffer:

    def test_none_and_empty_are_null(self):
        assert coerce_buffer(None) is None
        assert coerce_buffer(io.StringIO()) is None

    def test_content_is_not_trimmed(self):
        assert coerce_buffer(io.StringIO(' abc ')) == ' ABC '

    def test_whitespace_only_content_binds(self):
        assert coerce_buffer(io.StringIO('  ')) == '  '

    def test_preserve_case(self):
        assert coerce_buffer(io.StringIO('Line 1\nLine 2'), preserve_case=True) == 'Line 1\nLine 2'


class TestCoerceEnum:

    def test_unset_member_is_null(self):
        assert coerce_enum(Status.UNSET) is None

    def test_none_is_null(self):
        assert coerce_enum(None) is None

    def test_member_name_through_text_rule(self):
        assert coerce_enum(Status.Active) == 'ACTIVE'
        assert coerce_enum(Status.on_hold, preserve_case=True) == 'on_hold'


class TestParameter:

    def test_null_parameter(self):
        param = Parameter('name', sa.String(), None)
        assert param.is_null

    def test_bind_carries_name_type_and_value(self):
        param = Parameter('id', sa.Integer(), 7)
        bind = param.bind()
        assert bind.key == 'id'
        assert bind.value == 7
        assert isinstance(bind.type, sa.Integer)

    def test_parameters_are_immutable(self):
        param = Parameter('id', sa.Integer(), 7)
        with pytest.raises(AttributeError):
            param.value = 8
