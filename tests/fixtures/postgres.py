import logging

import pytest
from dbcontext import AutoCommitContext, connection_source
from testcontainers.postgres import PostgresContainer

from libb import Setting

import config

logger = logging.getLogger(__name__)

SCHEMA = [
    'drop function if exists upsert_item(integer, text)',
    'drop function if exists clear_items()',
    'drop table if exists item',
    """
create table item (
    id integer not null,
    name text not null,
    primary key (id)
)
""",
    """
create function upsert_item(p_id integer, p_name text) returns integer as $$
begin
    if p_name is null then
        raise exception 'Name is required';
    end if;
    insert into item (id, name) values (p_id, p_name)
    on conflict (id) do update set name = excluded.name;
    return p_id;
end
$$ language plpgsql
""",
    """
create function clear_items() returns void as $$
begin
    delete from item;
end
$$ language plpgsql
""",
]


@pytest.fixture(scope='session')
def psql_docker(request):
    """Session-scoped PostgreSQL container using testcontainers.

    Tests using it are skipped when no container runtime is available.
    """
    container = PostgresContainer(
        image='postgres:16',
        username=config.postgresql.username,
        password=config.postgresql.password,
        dbname=config.postgresql.database,
    )

    try:
        container.start()
    except Exception as e:
        logger.warning(f'Could not start postgres container: {e}')
        pytest.skip('PostgreSQL container not available')

    Setting.unlock()
    config.postgresql.hostname = container.get_container_host_ip()
    config.postgresql.port = int(container.get_exposed_port(5432))
    Setting.lock()
    logger.info(f'PostgreSQL container started at '
                f'{config.postgresql.hostname}:{config.postgresql.port}')

    def finalizer():
        try:
            container.stop()
            logger.info('PostgreSQL container stopped')
        except Exception as e:
            logger.warning(f'Error stopping container: {e}')

    request.addfinalizer(finalizer)
    return container


@pytest.fixture
def psql_source(psql_docker):
    """Connection source over the container database with a fresh schema"""
    source = connection_source('postgresql', config=config)
    with AutoCommitContext(source) as ctx:
        for sql in SCHEMA:
            ctx.execute_non_query(ctx.create_text_command(sql))
    return source
