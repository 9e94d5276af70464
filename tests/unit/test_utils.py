import sqlite3

import pytest
from dbcontext.utils import get_dialect_name, get_raw_connection
from dbcontext.utils import strip_parameter_name


class TestGetDialectName:

    def test_sqlalchemy_connection(self, create_mock_connection):
        assert get_dialect_name(create_mock_connection('mssql')) == 'mssql'

    def test_raw_sqlite_connection(self):
        conn = sqlite3.connect(':memory:')
        try:
            assert get_dialect_name(conn) == 'sqlite'
        finally:
            conn.close()

    def test_unknown_object(self):
        with pytest.raises(AttributeError):
            get_dialect_name(object())


def test_get_raw_connection(mocker):
    connection = mocker.MagicMock()
    assert get_raw_connection(connection) is connection.connection.driver_connection


@pytest.mark.parametrize(('name', 'expected'), [
    ('@CNTRY_CODE', 'CNTRY_CODE'),
    (':id', 'id'),
    (' name ', 'name'),
    ('plain', 'plain'),
])
def test_strip_parameter_name(name, expected):
    assert strip_parameter_name(name) == expected


@pytest.mark.parametrize('name', ['', '@', ' : '])
def test_empty_parameter_name(name):
    with pytest.raises(ValueError):
        strip_parameter_name(name)
